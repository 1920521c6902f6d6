"""
Monitoring Sinks

Destinations for finished MetricRecords. MetricsCollector hands every
finished record to one sink as a fire-and-forget task; a sink may be slow
or fail without affecting the caller's response.

Implementations:
- LoggingSink: one structured log line per record
- PrometheusSink: request/latency/token/cost metrics
- CompositeSink: fan-out, isolating each child's failures
- RedisUsageSink (broker_ai.services.usage_store): daily usage aggregation
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

from broker_ai.observability.logging import get_logger
from broker_ai.observability.metrics import (
    record_provider_request,
    record_request_cost,
    record_token_usage,
)

if TYPE_CHECKING:
    from broker_ai.services.metrics_collector import MetricRecord


class MonitoringSink(ABC):
    """Capability: accept one finished metric record."""

    @abstractmethod
    async def record(self, record: "MetricRecord") -> None:
        """
        Deliver a finished record.

        Implementations may raise; MetricsCollector logs and drops the error.
        """


class LoggingSink(MonitoringSink):
    """Writes each record as a structured log event."""

    def __init__(self, event: str = "ai_call_metric") -> None:
        self._event = event
        self._logger = get_logger(__name__)

    async def record(self, record: "MetricRecord") -> None:
        log = self._logger.info if record.success else self._logger.warning
        log(self._event, **record.to_dict())


class PrometheusSink(MonitoringSink):
    """Feeds records into the prometheus_client collectors."""

    async def record(self, record: "MetricRecord") -> None:
        provider = record.provider or "unknown"
        record_provider_request(
            provider=provider,
            model=record.model,
            operation=record.operation,
            success=record.success,
            duration_seconds=(record.duration_ms or 0.0) / 1000.0,
        )
        if record.tokens:
            record_token_usage(provider, record.model, record.tokens)
        if record.cost is not None:
            record_request_cost(provider, record.model, record.cost)


class CompositeSink(MonitoringSink):
    """
    Fans a record out to several sinks.

    A failing child is logged and skipped; the remaining children still
    receive the record.
    """

    def __init__(self, sinks: Sequence[MonitoringSink]) -> None:
        self._sinks = list(sinks)
        self._logger = get_logger(__name__)

    @property
    def sinks(self) -> list[MonitoringSink]:
        return list(self._sinks)

    async def record(self, record: "MetricRecord") -> None:
        for sink in self._sinks:
            try:
                await sink.record(record)
            except Exception as e:
                self._logger.error(
                    "monitoring_sink_failed",
                    sink=type(sink).__name__,
                    record_id=record.id,
                    error=str(e),
                )
