"""Exceptions raised by natstop."""


class NatsTopError(Exception):
    """Base class for all natstop errors."""


class ConfigError(NatsTopError):
    """Fatal configuration problem detected before the UI starts."""


class UnknownSortKeyError(NatsTopError, ValueError):
    """Raised when a sort token is not one of the recognized keys."""

    def __init__(self, token: str) -> None:
        super().__init__(f"not a valid option to sort by: {token}")
        self.token = token


class MetricsSourceError(NatsTopError):
    """A single poll of the monitoring endpoint failed."""
