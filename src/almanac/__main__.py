"""
Run the almanac CLI.

Usage:
    python -m almanac date 120 --calendar data/calendars/harptos.yaml
"""

import sys

from .interface.cli import main

if __name__ == "__main__":
    sys.exit(main())
