"""Exception hierarchy for the monitoring package.

- MonitoringError: base for all monitoring errors
- RuleDefinitionError: malformed alert rule definition (caller error)
- DispatchError: a notification channel failed to deliver
"""


class MonitoringError(Exception):
    """Base exception for all monitoring errors."""


class RuleDefinitionError(MonitoringError, ValueError):
    """Raised when an alert rule, condition or action is malformed."""


class DispatchError(MonitoringError):
    """Raised when a notification channel cannot deliver a message."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel
