"""
Prometheus Metrics Module

Provider-call metrics for the orchestrator: request outcomes, latency,
token usage, cost and degraded replies.

Reference Documents:
- GUIDELINES pp. 2309-2319: "Prometheus for metrics collection and structured logging"
- Newman (Building Microservices pp. 273-275): Services "expose basic metrics
  themselves" including "response times and error rates"

Pattern: Metrics collection for observability
Anti-Pattern §1.1 Avoided: Uses Optional[T] with explicit None defaults
"""

from prometheus_client import REGISTRY, Counter, Histogram, generate_latest


# =============================================================================
# Metric Definitions
# =============================================================================

PROVIDER_REQUESTS_TOTAL = Counter(
    name="broker_ai_provider_requests_total",
    documentation="Metered provider calls by outcome",
    labelnames=["provider", "model", "operation", "outcome"],
)

PROVIDER_REQUEST_DURATION_SECONDS = Histogram(
    name="broker_ai_provider_request_duration_seconds",
    documentation="Wall time of a metered provider call, retries included",
    labelnames=["provider", "model", "operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

TOKEN_USAGE_TOTAL = Counter(
    name="broker_ai_tokens_total",
    documentation="Total tokens consumed",
    labelnames=["provider", "model"],
)

REQUEST_COST_DOLLARS = Histogram(
    name="broker_ai_request_cost_dollars",
    documentation="Derived cost of a metered provider call in USD",
    labelnames=["provider", "model"],
    buckets=(0.0001, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

DEGRADED_RESPONSES_TOTAL = Counter(
    name="broker_ai_degraded_responses_total",
    documentation="Chat calls answered with the degraded reply",
)

KNOWLEDGE_LOOKUPS_TOTAL = Counter(
    name="broker_ai_knowledge_lookups_total",
    documentation="Knowledge-base lookups by result",
    labelnames=["result"],
)


# =============================================================================
# Helper Functions
# =============================================================================


def record_provider_request(
    provider: str,
    model: str,
    operation: str,
    success: bool,
    duration_seconds: float,
) -> None:
    """
    Record one metered provider call.

    Args:
        provider: Provider name (openai, anthropic, ...)
        model: Model name
        operation: chat, embed or document
        success: Whether the call produced a usable result
        duration_seconds: Wall time of the call
    """
    PROVIDER_REQUESTS_TOTAL.labels(
        provider=provider,
        model=model,
        operation=operation,
        outcome="success" if success else "failure",
    ).inc()
    PROVIDER_REQUEST_DURATION_SECONDS.labels(
        provider=provider,
        model=model,
        operation=operation,
    ).observe(duration_seconds)


def record_token_usage(provider: str, model: str, count: int) -> None:
    """Record token usage for a provider call."""
    TOKEN_USAGE_TOTAL.labels(provider=provider, model=model).inc(count)


def record_request_cost(provider: str, model: str, cost: float) -> None:
    """Record the derived cost of a provider call in dollars."""
    REQUEST_COST_DOLLARS.labels(provider=provider, model=model).observe(cost)


def record_degraded_response() -> None:
    """Record a chat call that fell through to the degraded reply."""
    DEGRADED_RESPONSES_TOTAL.inc()


def record_knowledge_lookup(result: str) -> None:
    """
    Record a knowledge-base lookup.

    Args:
        result: "hit", "empty", "error" or "skipped"
    """
    KNOWLEDGE_LOOKUPS_TOTAL.labels(result=result).inc()


def generate_metrics() -> str:
    """
    Generate Prometheus metrics text format.

    Returns:
        Prometheus exposition format text
    """
    return generate_latest(REGISTRY).decode("utf-8")
