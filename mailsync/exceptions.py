import enum
from typing import Any


class ErrorType(enum.Enum):
    AUTHENTICATION = "authentication"
    CONNECTION = "connection"
    INTERNAL_ERROR = "internal_error"
    INVALID_DATA = "invalid_data"
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    THROTTLED = "throttled"
    TRANSPORT = "transport"
    UNSPECIFIED = "unspecified"


class BaseError(Exception):
    extra: dict[str, Any]

    def __init__(self, message: str, error_type: ErrorType = ErrorType.UNSPECIFIED, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.extra = {}

        account_id = kwargs.get("account_id")
        if account_id is not None:
            self.extra["account_id"] = account_id
        folder = kwargs.get("folder")
        if folder:
            self.extra["folder"] = folder

    def __str__(self) -> str:
        return f"error: {self.error_type.value}; description: {self.message}"


class SyncError(BaseError):
    """Base class for failures raised while synchronizing a mailbox."""


class ThrottledError(SyncError):
    def __init__(self, message: str, error_type: ErrorType = ErrorType.THROTTLED, **kwargs: Any) -> None:
        super().__init__(message, error_type, **kwargs)


class AuthenticationError(SyncError):
    def __init__(self, message: str, error_type: ErrorType = ErrorType.AUTHENTICATION, **kwargs: Any) -> None:
        super().__init__(message, error_type, **kwargs)


class NotFoundError(SyncError):
    def __init__(self, message: str, error_type: ErrorType = ErrorType.NOT_FOUND, **kwargs: Any) -> None:
        super().__init__(message, error_type, **kwargs)


class TransientConnectionError(SyncError):
    """The connection dropped without an authentication signature; usually upstream rate limiting."""

    def __init__(self, message: str, error_type: ErrorType = ErrorType.CONNECTION, **kwargs: Any) -> None:
        super().__init__(message, error_type, **kwargs)


class UnhealthyConnectionError(SyncError):
    """A freshly created connection still failed its health check."""

    def __init__(self, message: str, error_type: ErrorType = ErrorType.CONNECTION, **kwargs: Any) -> None:
        super().__init__(message, error_type, **kwargs)


class NormalizationError(SyncError):
    def __init__(self, message: str, error_type: ErrorType = ErrorType.INVALID_DATA, **kwargs: Any) -> None:
        super().__init__(message, error_type, **kwargs)


class StorageError(SyncError):
    def __init__(self, message: str, error_type: ErrorType = ErrorType.STORAGE, **kwargs: Any) -> None:
        super().__init__(message, error_type, **kwargs)


class TransportError(SyncError):
    """The IMAP server answered a command with NO or BAD."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.TRANSPORT,
        code: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, **kwargs)
        self.code = code
