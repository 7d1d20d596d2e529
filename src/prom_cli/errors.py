from __future__ import annotations

from typing import Optional

TIME_FORMAT_HINT = "Use RFC3339 (2024-01-01T00:00:00Z) or relative (1h, 30m, now)"


class PromCliError(Exception):
    """Base error for this package."""

    exit_code = 1

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class ConfigError(PromCliError):
    """Config load/parse error."""


class InvalidQuery(PromCliError):
    """PromQL expression missing or empty."""


class InvalidTimeExpression(PromCliError):
    """Time string is neither RFC3339, a relative duration nor `now`."""

    def __init__(self, message: str, side: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message, hint=hint)
        self.side = side


class InvalidRange(PromCliError):
    """Start time is not before end time."""

    def __init__(self, start: int, end: int, hint: Optional[str] = None):
        super().__init__("Invalid time range. Start time must be before end time.", hint=hint)
        self.start = start
        self.end = end


class InvalidStep(PromCliError):
    """Step is not a positive integer number of seconds."""


class MissingMatchers(PromCliError):
    """`series` called without any label matcher."""


class UnsupportedResultType(PromCliError):
    """Prometheus returned a result shape we do not know how to present."""

    exit_code = 2

    def __init__(self, value: object):
        super().__init__(f"Unsupported result type: {value!r}")
        self.value = value


class ServerError(PromCliError):
    """Prometheus answered with status=error."""

    exit_code = 2

    def __init__(self, message: str, error_type: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message, hint=hint)
        self.error_type = error_type
        # bad_data means the server rejected what the user typed
        if error_type == "bad_data":
            self.exit_code = 1


class TransportError(PromCliError):
    """Prometheus could not be reached."""

    exit_code = 2


class AuthError(TransportError):
    """Prometheus refused our credentials."""
