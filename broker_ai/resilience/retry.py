"""
Retry Executor

Bounded retries with exponential backoff around a single async operation.

The loop is iterative with an explicit attempt counter and an injectable
sleep, so tests can assert the exact delay schedule without waiting.

    delay(attempt) = min(base_delay * 2 ** (attempt - 1), max_delay)

With the default policy (3 attempts, 1s base, 10s cap) three transient
failures sleep 1s then 2s and propagate the third error. No jitter is added.

Reference Documents:
- Release It! (Nygard): Timeouts and retries
- GUIDELINES pp. 1224: Retry logic for LLM API calls
- GUIDELINES pp. 2309: Exponential backoff
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

from broker_ai.core.exceptions import AuthenticationError, UnsupportedOperationError
from broker_ai.resilience.metrics import record_retry_attempt

if TYPE_CHECKING:
    from broker_ai.core.config import Settings

T = TypeVar("T")

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    AuthenticationError,
    UnsupportedOperationError,
)


def is_retryable(error: Exception) -> bool:
    """
    Classify an error for the retry loop.

    Authentication (401/403) and unsupported-operation errors are fatal;
    everything else, including timeouts, 5xx and parse errors, is retried.
    """
    return not isinstance(error, NON_RETRYABLE_ERRORS)


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    Constant retry configuration.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        base_delay_seconds: Delay before the second attempt
        max_delay_seconds: Upper bound on any single delay
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff to sleep after the given failed attempt (1-based)."""
        return min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        """Build the policy from application Settings."""
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
        )


# =============================================================================
# Retry Executor
# =============================================================================


class RetryExecutor:
    """
    Runs an async operation with bounded retries.

    Delays always follow the policy schedule. A provider's Retry-After hint
    (TransientError.retry_after) is kept on the error for logs and callers,
    and does not change the wait.

    Example:
        >>> executor = RetryExecutor(RetryPolicy(max_attempts=3))
        >>> reply = await executor.run(lambda: provider.complete(...), "chat:openai")
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
        classifier: Callable[[Exception], bool] = is_retryable,
    ) -> None:
        """
        Initialize RetryExecutor.

        Args:
            policy: Default policy for run() (3 attempts, 1s/10s)
            sleep: Awaitable sleep, injectable for tests
            classifier: Returns True when an error may be retried
        """
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._classifier = classifier

    @property
    def policy(self) -> RetryPolicy:
        """Default retry policy."""
        return self._policy

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        context: str,
        policy: Optional[RetryPolicy] = None,
    ) -> T:
        """
        Invoke operation until it succeeds or the policy is exhausted.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            context: Label used in logs and metrics (e.g. "chat:openai")
            policy: Override for the executor's default policy

        Returns:
            The operation's result.

        Raises:
            Exception: The first non-retryable error, or the last error once
                max_attempts is reached. Errors are propagated unchanged.
        """
        active = policy or self._policy
        attempt = 1

        while True:
            try:
                return await operation()
            except Exception as e:
                if not self._classifier(e):
                    logger.warning(
                        "%s: non-retryable %s on attempt %d",
                        context,
                        type(e).__name__,
                        attempt,
                        extra={"context": context, "attempt": attempt, "error": str(e)},
                    )
                    raise

                if attempt >= active.max_attempts:
                    logger.error(
                        "%s: giving up after %d attempt(s): %s",
                        context,
                        attempt,
                        e,
                        extra={"context": context, "attempt": attempt, "error": str(e)},
                    )
                    raise

                delay = active.delay_for(attempt)
                logger.info(
                    "%s: attempt %d failed (%s), retrying in %.2fs",
                    context,
                    attempt,
                    type(e).__name__,
                    delay,
                    extra={
                        "context": context,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error": str(e),
                    },
                )
                record_retry_attempt(context, type(e).__name__)

            await self._sleep(delay)
            attempt += 1
