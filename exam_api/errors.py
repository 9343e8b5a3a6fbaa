"""Exceptions raised by the exam session core."""


class SessionError(Exception):
    """Base class for exam session errors."""


class AlreadyActive(SessionError):
    """A session is already live for this manager."""

    def __init__(self, session_id: str | None = None):
        self.session_id = session_id
        message = "An exam session is already active"
        if session_id:
            message = f"{message} ({session_id})"
        super().__init__(message)


class PersistenceError(SessionError):
    """The persistence gateway failed to complete an operation."""

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        self.detail = detail
        message = f"Persistence operation '{operation}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
