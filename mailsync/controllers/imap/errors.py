import asyncio
from enum import Enum

from aioimaplib import aioimaplib

from mailsync.exceptions import (
    AuthenticationError,
    NotFoundError,
    ThrottledError,
    TransientConnectionError,
    TransportError,
)
from settings.settings import IMAPErrorPatternSettings

DROPPED_CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionResetError,
    BrokenPipeError,
    asyncio.IncompleteReadError,
    aioimaplib.Abort,
)


class ErrorKind(Enum):
    throttled = "throttled"
    authentication = "authentication"
    not_found = "not_found"
    transient_connection = "transient_connection"
    unclassified = "unclassified"


class ErrorClassifier:
    """Maps transport failures onto a closed set of error kinds.

    Provider specific signatures come from ``IMAPErrorPatternSettings`` and are matched
    case-insensitively against the error text and server response code.
    """

    def __init__(self, patterns: IMAPErrorPatternSettings) -> None:
        self._ordered_patterns = [
            (ErrorKind.not_found, [pattern.lower() for pattern in patterns.not_found]),
            (ErrorKind.authentication, [pattern.lower() for pattern in patterns.auth]),
            (ErrorKind.throttled, [pattern.lower() for pattern in patterns.throttle]),
            (ErrorKind.transient_connection, [pattern.lower() for pattern in patterns.connection]),
        ]

    def classify(self, exc: BaseException) -> ErrorKind:
        if isinstance(exc, ThrottledError):
            return ErrorKind.throttled
        if isinstance(exc, AuthenticationError):
            return ErrorKind.authentication
        if isinstance(exc, NotFoundError):
            return ErrorKind.not_found
        if isinstance(exc, (TransientConnectionError, *DROPPED_CONNECTION_ERRORS)):
            return ErrorKind.transient_connection

        text = self._error_text(exc)
        for kind, patterns in self._ordered_patterns:
            if any(pattern in text for pattern in patterns):
                return kind
        return ErrorKind.unclassified

    @staticmethod
    def _error_text(exc: BaseException) -> str:
        text = getattr(exc, "message", None) or str(exc)
        if isinstance(exc, TransportError) and exc.code:
            text = f"[{exc.code}] {text}"
        return str(text).lower()
