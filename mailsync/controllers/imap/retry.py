import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from mailsync.controllers.imap.errors import ErrorClassifier, ErrorKind
from mailsync.exceptions import AuthenticationError, NotFoundError, ThrottledError, TransientConnectionError
from settings.settings import RetrySettings

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class RetryExecutor:
    """Runs a remote operation with bounded, error-kind aware retries.

    - throttled: exponential backoff, ``ThrottledError`` once the budget is spent
    - authentication: one reconnect through ``on_auth_error`` and a single retry
    - not found: never retried, ``NotFoundError``
    - transient connection: backoff, ``TransientConnectionError`` once spent
    - anything else: backoff, then the original exception
    """

    def __init__(self, classifier: ErrorClassifier, sleep: SleepFunc = asyncio.sleep) -> None:
        self._logger = logging.getLogger(__name__)
        self._classifier = classifier
        self._sleep = sleep

    @staticmethod
    def delay_for(attempt: int, policy: RetrySettings) -> float:
        return float(min(policy.base_delay * (2**attempt), policy.max_delay))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetrySettings,
        on_auth_error: Callable[[], Awaitable[None]] | None = None,
        description: str = "operation",
    ) -> T:
        attempt = 0
        reconnected = False

        while True:
            try:
                return await operation()
            except Exception as e:
                kind = self._classifier.classify(e)

                if kind is ErrorKind.not_found:
                    if isinstance(e, NotFoundError):
                        raise
                    raise NotFoundError(f"{description} failed: {getattr(e, 'message', None) or e}") from e

                if kind is ErrorKind.authentication:
                    if reconnected or on_auth_error is None:
                        if isinstance(e, AuthenticationError):
                            raise
                        raise AuthenticationError(f"{description} failed: {getattr(e, 'message', None) or e}") from e
                    self._logger.warning(f"Authentication error during {description}, reconnecting: {e}")
                    await on_auth_error()
                    reconnected = True
                    continue

                if attempt >= policy.max_retries:
                    if kind is ErrorKind.throttled:
                        raise ThrottledError(
                            f"{description} still throttled after {policy.max_retries} retries: {e}"
                        ) from e
                    if kind is ErrorKind.transient_connection:
                        raise TransientConnectionError(
                            f"{description} kept failing after {policy.max_retries} retries: {e}"
                        ) from e
                    raise

                delay = self.delay_for(attempt, policy)
                attempt += 1
                self._logger.info(
                    f"{description} failed ({kind.value}), retry {attempt}/{policy.max_retries} in {delay:.1f}s: {e}"
                )
                await self._sleep(delay)
