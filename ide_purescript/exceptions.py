"""Exception hierarchy for the ide_purescript session layer."""


class IdePurescriptError(Exception):
    """Base exception for all ide_purescript errors."""

    pass


class ConfigurationError(IdePurescriptError):
    """Configuration is invalid or missing required values."""

    pass


class SessionError(IdePurescriptError):
    """Language server session operation failed."""

    def __init__(self, message: str, root: str | None = None):
        super().__init__(message)
        self.root = root


class SessionStartError(SessionError):
    """The language server process or connection could not be established."""

    pass


class SessionNotReadyError(SessionError):
    """The session has not finished starting."""

    pass


class SessionClosedError(SessionError):
    """The session's connection is closed; it will not be restarted."""

    pass


class InvalidSessionTransitionError(SessionError):
    """A lifecycle transition outside the session state machine was attempted."""

    pass
