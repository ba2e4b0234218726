"""
Exception hierarchy for the almanac engine.

Editorial mistakes in definitions are reported as validation issues;
these exceptions cover hard failures only.
"""


class AlmanacError(Exception):
    """Base error for the engine."""
    pass


class DurationError(AlmanacError):
    """Duration notation could not be parsed or resolved."""
    pass


class DefinitionLoadError(AlmanacError):
    """A definition file could not be read or decoded."""
    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load definitions from {path}: {reason}")


class ServiceNotInitializedError(AlmanacError):
    """Operation requires initialize() to have run."""
    def __init__(self, service: str):
        self.service = service
        super().__init__(f"{service} not initialized. Call initialize() first.")


class CalendarNotFoundError(AlmanacError):
    """Requested calendar id is not registered."""
    def __init__(self, calendar_id: str):
        self.calendar_id = calendar_id
        super().__init__(f"Calendar not found: {calendar_id}")


class LeapRuleError(AlmanacError):
    """Leap rules repeat over a period too long to tabulate."""
    def __init__(self, period: int, limit: int):
        self.period = period
        self.limit = limit
        super().__init__(f"Leap rule period of {period} years exceeds the limit of {limit}")
