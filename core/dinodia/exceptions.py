"""
Dinodia Custom Exceptions

Simple exception hierarchy for error handling. Every message is a complete
sentence that can be shown to the user as-is.
"""


class DinodiaError(Exception):
    """Base exception for Dinodia."""

    pass


class ConfigurationError(DinodiaError):
    """Configuration is invalid."""

    pass


class InvalidInputError(DinodiaError):
    """Caller-supplied data is malformed."""

    pass


class UserNotFoundError(DinodiaError):
    """User row does not exist."""

    def __init__(self, user_id: int):
        super().__init__("User not found.")
        self.user_id = user_id


class ConnectionMissingError(DinodiaError):
    """No Dinodia Hub is configured or reachable for this user and mode."""

    pass


class HubNetworkError(DinodiaError):
    """Cannot reach the Dinodia Hub."""

    def __init__(self, message: str, hints: list[str] | None = None):
        super().__init__(message)
        self.hints = hints or []


class HubServerError(DinodiaError):
    """Dinodia Hub answered with a non-success status."""

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StoreError(DinodiaError):
    """Relational store request failed."""

    def __init__(
        self,
        message: str = "We could not reach Dinodia right now. Please try again.",
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code


class InvalidValueError(DinodiaError):
    """Command requires a numeric value."""

    def __init__(self, command: str):
        super().__init__(f"Command {command} requires a numeric value.")
        self.command = command


class UnsupportedCommandError(DinodiaError):
    """Command cannot be applied to this entity."""

    def __init__(self, command: str, reason: str | None = None):
        message = f"Unsupported command {command}."
        if reason:
            message = f"Unsupported command {command}: {reason}."
        super().__init__(message)
        self.command = command


class UnableToLoadError(DinodiaError):
    """History could not be loaded from any source."""

    def __init__(self, message: str = "We could not load your history right now. Please try again."):
        super().__init__(message)


class AuthError(DinodiaError):
    """Login or password change was rejected."""

    pass
