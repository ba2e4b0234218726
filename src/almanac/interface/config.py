"""
Engine configuration persistence.

Stores tuning knobs (cache window, simulation limits, default calendar)
in a JSON file.
"""

import json
from pathlib import Path
from typing import TypedDict


class EngineConfig(TypedDict, total=False):
    """Engine configuration."""
    buffer_size: int  # Days cached on either side of the current day
    max_simulation_days: int  # Longest span scanned for notable events
    checkpoint_interval: int  # Days between stored chain checkpoints
    calendar_id: str | None  # Calendar used when none is requested
    log_level: str  # DEBUG, INFO, WARNING, ...


DEFAULT_CONFIG: EngineConfig = {
    "buffer_size": 30,
    "max_simulation_days": 365,
    "checkpoint_interval": 64,
    "calendar_id": None,
    "log_level": "INFO",
}


def get_config_path(data_dir: Path | str = ".") -> Path:
    """Get path to config file."""
    return Path(data_dir) / ".almanac_config.json"


def load_config(path: Path | str | None = None) -> EngineConfig:
    """Load config from file, or return defaults if not found."""
    path = Path(path) if path else get_config_path()

    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        # Merge with defaults to handle missing keys
        config = DEFAULT_CONFIG.copy()
        config.update({k: v for k, v in saved.items() if k in DEFAULT_CONFIG})
        return config
    except (json.JSONDecodeError, AttributeError, IOError):
        return DEFAULT_CONFIG.copy()


def save_config(config: EngineConfig, path: Path | str | None = None) -> bool:
    """Save config to file. Returns True on success."""
    path = Path(path) if path else get_config_path()

    # Ensure directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False
