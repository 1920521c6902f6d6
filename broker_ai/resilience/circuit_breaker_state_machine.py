"""
Circuit Breaker State Machine

This module implements the circuit breaker state machine that guards the
primary model provider. One instance exists per dependency path and is
injected into the orchestrator; there is no module-level singleton.

Reference Documents:
- Building Reactive Microservices in Java (Escoffier) Ch.6, pp.54-62
- Release It! (Nygard): Stability patterns
- Microservices Anti-Patterns and Pitfalls (Richards) Ch.3, pp.19-28

State Machine:
    CLOSED: Normal operation, all requests pass through
    OPEN: Circuit tripped, requests fail fast with CircuitBreakerError
    HALF_OPEN: Reset timeout elapsed, trial requests pass through

Counting rules:
    - every failure increments failure_count and stamps last_failure_time
    - the circuit opens once failure_count reaches failure_threshold
    - only a HALF_OPEN success closes the circuit and zeroes the counter;
      a CLOSED success leaves the counter untouched

Anti-Pattern Compliance:
- AP-5: Exception uses CircuitBreakerError prefix
- AP-6: State protected by asyncio.Lock(); the lock is never held while the
  wrapped call is awaited
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from broker_ai.resilience.metrics import (
    record_circuit_rejection,
    record_circuit_state_transition,
)

if TYPE_CHECKING:
    from broker_ai.core.config import Settings

T = TypeVar("T")

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

ENV_FAILURE_THRESHOLD = "BROKER_AI_CIRCUIT_BREAKER_FAILURE_THRESHOLD"
ENV_RESET_TIMEOUT = "BROKER_AI_CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS"

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RESET_TIMEOUT_SECONDS = 60.0


# =============================================================================
# State Enum
# =============================================================================


class CircuitBreakerState(Enum):
    """
    State of a circuit breaker.

    States:
        CLOSED: Normal operation, all requests pass through
        OPEN: Circuit is tripped, requests fail immediately
        HALF_OPEN: Recovery testing, requests pass through as trials
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a breaker, for diagnostics and health output."""

    name: str
    state: CircuitBreakerState
    failure_count: int
    last_failure_time: Optional[float]


# =============================================================================
# Exception Class (AP-5 Compliance: CircuitBreakerError prefix)
# =============================================================================


class CircuitBreakerError(Exception):
    """
    Exception raised when a circuit breaker is open.

    Synthetic: raised without any call to the protected dependency. The
    orchestrator treats it as a total failure of the primary path.

    Attributes:
        circuit_name: Name of the circuit breaker that is open
        message: Additional context message
    """

    def __init__(self, circuit_name: str, message: str = "Circuit is open") -> None:
        self.circuit_name = circuit_name
        self.message = message
        super().__init__(f"CircuitBreakerError[{circuit_name}]: {message}")


# =============================================================================
# Circuit Breaker State Machine
# =============================================================================


class CircuitBreakerStateMachine:
    """
    Circuit breaker state machine for protecting against cascading failures.

    The state machine monitors failures of one downstream dependency.
    When failures reach the threshold, it trips and fails fast, sparing
    both the caller's latency budget and the provider's rate limit while
    the provider recovers.

    Example:
        >>> breaker = CircuitBreakerStateMachine(name="primary:openai")
        >>> result = await breaker.execute(some_async_func, arg1, kwarg1=value)

    Attributes:
        name: Identifier for this circuit breaker
        failure_threshold: Number of failures before opening
        reset_timeout_seconds: Seconds to wait before a half-open trial
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout_seconds: float = DEFAULT_RESET_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize CircuitBreakerStateMachine.

        Args:
            name: Name for identification and metrics
            failure_threshold: Number of failures before opening
            reset_timeout_seconds: Seconds to wait before attempting recovery
            clock: Monotonic time source, injectable for tests
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must be >= 0")

        self._name = name
        self._failure_threshold = failure_threshold
        self._reset_timeout_seconds = reset_timeout_seconds
        self._clock = clock

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

        self._lock = asyncio.Lock()

    # =========================================================================
    # Factory Methods
    # =========================================================================

    @classmethod
    def from_env(
        cls,
        name: str,
        failure_threshold: Optional[int] = None,
        reset_timeout_seconds: Optional[float] = None,
    ) -> "CircuitBreakerStateMachine":
        """
        Create a breaker with configuration from environment variables.

        Environment Variables:
            BROKER_AI_CIRCUIT_BREAKER_FAILURE_THRESHOLD: Number of failures
            BROKER_AI_CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS: Reset timeout

        Explicit arguments win over the environment, which wins over defaults.
        """
        env_threshold = os.environ.get(ENV_FAILURE_THRESHOLD)
        env_timeout = os.environ.get(ENV_RESET_TIMEOUT)

        resolved_threshold = failure_threshold
        if resolved_threshold is None:
            resolved_threshold = int(env_threshold) if env_threshold else DEFAULT_FAILURE_THRESHOLD

        resolved_timeout = reset_timeout_seconds
        if resolved_timeout is None:
            resolved_timeout = float(env_timeout) if env_timeout else DEFAULT_RESET_TIMEOUT_SECONDS

        return cls(
            name=name,
            failure_threshold=resolved_threshold,
            reset_timeout_seconds=resolved_timeout,
        )

    @classmethod
    def from_settings(
        cls,
        name: str,
        settings: "Settings",
        clock: Callable[[], float] = time.monotonic,
    ) -> "CircuitBreakerStateMachine":
        """Create a breaker from application Settings."""
        return cls(
            name=name,
            failure_threshold=settings.circuit_breaker_failure_threshold,
            reset_timeout_seconds=settings.circuit_breaker_reset_timeout_seconds,
            clock=clock,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def name(self) -> str:
        """Name of this circuit breaker."""
        return self._name

    @property
    def failure_threshold(self) -> int:
        """Number of failures required to open the circuit."""
        return self._failure_threshold

    @property
    def reset_timeout_seconds(self) -> float:
        """Seconds to wait before attempting recovery."""
        return self._reset_timeout_seconds

    @property
    def state(self) -> CircuitBreakerState:
        """
        Current state of the circuit breaker.

        Note: This returns cached state. For checks that may trigger the
        OPEN -> HALF_OPEN transition, use the get_state() coroutine.
        """
        return self._state

    @property
    def failure_count(self) -> int:
        """Failures counted since the circuit last closed."""
        return self._failure_count

    @property
    def last_failure_time(self) -> Optional[float]:
        """Clock reading of the most recent failure, None if none yet."""
        return self._last_failure_time

    def snapshot(self) -> CircuitSnapshot:
        """Return a read-only view of the current state."""
        return CircuitSnapshot(
            name=self._name,
            state=self._state,
            failure_count=self._failure_count,
            last_failure_time=self._last_failure_time,
        )

    # =========================================================================
    # State Management
    # =========================================================================

    def _should_attempt_recovery(self) -> bool:
        """Check if enough time has passed to attempt recovery."""
        if self._last_failure_time is None:
            return False

        elapsed = self._clock() - self._last_failure_time
        return elapsed >= self._reset_timeout_seconds

    def _transition(self, new_state: CircuitBreakerState) -> None:
        """Apply a state change. Caller must hold the lock."""
        old_state = self._state
        self._state = new_state
        record_circuit_state_transition(self._name, new_state.value, old_state.value)
        logger.warning(
            "Circuit %s: %s -> %s",
            self._name,
            old_state.value,
            new_state.value,
            extra={
                "circuit_name": self._name,
                "from_state": old_state.value,
                "to_state": new_state.value,
                "failure_count": self._failure_count,
            },
        )

    async def get_state(self) -> CircuitBreakerState:
        """
        Get current state with atomic OPEN -> HALF_OPEN transition check.

        Returns:
            Current CircuitBreakerState after any transitions
        """
        async with self._lock:
            if (
                self._state == CircuitBreakerState.OPEN
                and self._should_attempt_recovery()
            ):
                self._transition(CircuitBreakerState.HALF_OPEN)
            return self._state

    async def record_failure(self) -> None:
        """
        Record a failure.

        Increments the failure count, stamps the failure time and opens the
        circuit when the threshold is reached or a half-open trial failed.
        A failure while already OPEN (a call admitted before the trip) only
        refreshes the timestamp.
        """
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if (
                self._failure_count >= self._failure_threshold
                or self._state == CircuitBreakerState.HALF_OPEN
            ) and self._state != CircuitBreakerState.OPEN:
                self._transition(CircuitBreakerState.OPEN)

    async def record_success(self) -> None:
        """
        Record a success.

        HALF_OPEN -> CLOSED with the failure count reset. In CLOSED the
        success changes nothing.
        """
        async with self._lock:
            if self._state == CircuitBreakerState.HALF_OPEN:
                self._failure_count = 0
                self._transition(CircuitBreakerState.CLOSED)

    async def reset(self) -> None:
        """Force the circuit closed and clear failure history."""
        async with self._lock:
            self._failure_count = 0
            self._last_failure_time = None
            if self._state != CircuitBreakerState.CLOSED:
                self._transition(CircuitBreakerState.CLOSED)

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Execute an async function through the circuit breaker.

        Args:
            func: Async function to call
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            The result of the function call

        Raises:
            CircuitBreakerError: If the circuit is open; func is not called
            Exception: Any exception raised by the wrapped function
        """
        current_state = await self.get_state()

        if current_state == CircuitBreakerState.OPEN:
            record_circuit_rejection(self._name)
            raise CircuitBreakerError(
                self._name,
                f"Circuit is open - failing fast (threshold={self._failure_threshold})",
            )

        try:
            result = await func(*args, **kwargs)
        except Exception:
            await self.record_failure()
            raise

        await self.record_success()
        return result
