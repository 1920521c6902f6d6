"""
Resilience Metrics

Prometheus metrics for the circuit breaker, retry executor and fallback chain.

Reference Documents:
- GUIDELINES pp. 2309-2319: Prometheus for metrics collection

Metrics Provided:
- Circuit breaker state transitions (counter) and current state (gauge)
- Retry attempts (counter)
- Fallback attempts and successes (counters)
"""

from prometheus_client import Counter, Gauge

# =============================================================================
# Constants
# =============================================================================

METRIC_CIRCUIT_TRANSITIONS = "broker_ai_circuit_breaker_state_transitions_total"
METRIC_CIRCUIT_STATE = "broker_ai_circuit_breaker_state"
METRIC_CIRCUIT_REJECTIONS = "broker_ai_circuit_breaker_rejections_total"
METRIC_RETRY_ATTEMPTS = "broker_ai_retry_attempts_total"
METRIC_FALLBACK_ATTEMPTS = "broker_ai_fallback_attempts_total"
METRIC_FALLBACK_SUCCESSES = "broker_ai_fallback_successes_total"


# =============================================================================
# Circuit Breaker Metrics
# =============================================================================

CIRCUIT_STATE_TRANSITIONS = Counter(
    name=METRIC_CIRCUIT_TRANSITIONS,
    documentation="Total number of circuit breaker state transitions",
    labelnames=["circuit_name", "to_state", "from_state"],
)

CIRCUIT_STATE_GAUGE = Gauge(
    name=METRIC_CIRCUIT_STATE,
    documentation="Current state of circuit breaker (0=closed, 1=half_open, 2=open)",
    labelnames=["circuit_name"],
)

CIRCUIT_REJECTIONS = Counter(
    name=METRIC_CIRCUIT_REJECTIONS,
    documentation="Calls rejected without invoking the dependency because the circuit was open",
    labelnames=["circuit_name"],
)

_STATE_TO_NUMERIC = {
    "closed": 0,
    "half_open": 1,
    "open": 2,
}


def record_circuit_state_transition(
    circuit_name: str,
    to_state: str,
    from_state: str,
) -> None:
    """
    Record a circuit breaker state transition and update the state gauge.

    Args:
        circuit_name: Name of the circuit breaker
        to_state: State transitioning to (closed, open, half_open)
        from_state: State transitioning from (closed, open, half_open)
    """
    CIRCUIT_STATE_TRANSITIONS.labels(
        circuit_name=circuit_name,
        to_state=to_state,
        from_state=from_state,
    ).inc()

    CIRCUIT_STATE_GAUGE.labels(circuit_name=circuit_name).set(
        _STATE_TO_NUMERIC.get(to_state, 0)
    )


def record_circuit_rejection(circuit_name: str) -> None:
    """Record a fail-fast rejection by an open circuit."""
    CIRCUIT_REJECTIONS.labels(circuit_name=circuit_name).inc()


# =============================================================================
# Retry Metrics
# =============================================================================

RETRY_ATTEMPTS = Counter(
    name=METRIC_RETRY_ATTEMPTS,
    documentation="Retries scheduled after a retryable failure",
    labelnames=["context", "error_type"],
)


def record_retry_attempt(context: str, error_type: str) -> None:
    """
    Record a scheduled retry.

    Args:
        context: Operation label passed to RetryExecutor.run()
        error_type: Class name of the error that triggered the retry
    """
    RETRY_ATTEMPTS.labels(context=context, error_type=error_type).inc()


# =============================================================================
# Fallback Chain Metrics
# =============================================================================

FALLBACK_ATTEMPTS = Counter(
    name=METRIC_FALLBACK_ATTEMPTS,
    documentation="Total number of fallback provider attempts",
    labelnames=["provider", "operation"],
)

FALLBACK_SUCCESSES = Counter(
    name=METRIC_FALLBACK_SUCCESSES,
    documentation="Total number of successful fallback provider calls",
    labelnames=["provider"],
)


def record_fallback_attempt(provider: str, operation: str) -> None:
    """
    Record a fallback provider attempt.

    Args:
        provider: Name of the fallback provider
        operation: Operation being performed (chat)
    """
    FALLBACK_ATTEMPTS.labels(provider=provider, operation=operation).inc()


def record_fallback_success(provider: str) -> None:
    """Record a successful fallback provider call."""
    FALLBACK_SUCCESSES.labels(provider=provider).inc()
