"""Schedule engine exceptions."""

# purpose: shared error hierarchy for the schedule engine services
# status: active


class ScheduleError(RuntimeError):
    """Base error for schedule engine operations."""


class ScheduleNotFound(ScheduleError):
    """Raised when an occurrence cannot be located."""


class ConfigurationNotFound(ScheduleError):
    """Raised when a maintenance configuration cannot be located."""


class InvalidTestData(ScheduleError):
    """Raised when submitted test data does not match the occurrence."""
