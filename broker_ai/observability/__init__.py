"""
Observability Package

- Structured JSON logging with correlation ids
- Prometheus metrics for provider calls
- Monitoring sinks for finished metric records

Reference Documents:
- GUIDELINES pp. 2309-2319: Observability = metrics + logging + cost tracking
"""

from broker_ai.observability.logging import (
    clear_correlation_id,
    configure_logging,
    correlation_id_context,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from broker_ai.observability.metrics import (
    generate_metrics,
    record_degraded_response,
    record_knowledge_lookup,
    record_provider_request,
    record_request_cost,
    record_token_usage,
)
from broker_ai.observability.sinks import (
    CompositeSink,
    LoggingSink,
    MonitoringSink,
    PrometheusSink,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    # Metrics
    "generate_metrics",
    "record_degraded_response",
    "record_knowledge_lookup",
    "record_provider_request",
    "record_request_cost",
    "record_token_usage",
    # Sinks
    "MonitoringSink",
    "LoggingSink",
    "PrometheusSink",
    "CompositeSink",
]
