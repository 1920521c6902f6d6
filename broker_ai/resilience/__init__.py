"""
Resilience Package

Circuit breaker and retry primitives used by the orchestrator.

Reference Documents:
- Building Reactive Microservices in Java (Escoffier) Ch.6
- Release It! (Nygard): Stability patterns
"""

from broker_ai.resilience.circuit_breaker_state_machine import (
    CircuitBreakerError,
    CircuitBreakerState,
    CircuitBreakerStateMachine,
    CircuitSnapshot,
)
from broker_ai.resilience.retry import (
    RetryExecutor,
    RetryPolicy,
    is_retryable,
)

__all__ = [
    "CircuitBreakerError",
    "CircuitBreakerState",
    "CircuitBreakerStateMachine",
    "CircuitSnapshot",
    "RetryExecutor",
    "RetryPolicy",
    "is_retryable",
]
