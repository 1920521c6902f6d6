"""
Tests for monitoring sinks.

Test Categories:
- LoggingSink output
- PrometheusSink counters
- CompositeSink fan-out and failure isolation
"""

import json
from io import StringIO

import pytest
from prometheus_client import REGISTRY


def _record(success: bool = True, tokens=1500, cost=0.0075, model: str = "gpt-4o"):
    from broker_ai.services.metrics_collector import MetricRecord

    return MetricRecord(
        id="rec-1",
        model=model,
        provider="openai",
        operation="chat",
        start_time=1.0,
        end_time=1.5,
        duration_ms=500.0,
        tokens=tokens,
        cost=cost,
        success=success,
        error=None if success else "TransientError: 503",
        finished=True,
    )


class _BrokenSink:
    async def record(self, record) -> None:
        raise RuntimeError("broken")


class TestLoggingSink:
    """Tests for LoggingSink."""

    @pytest.mark.asyncio
    async def test_logs_record_fields(self) -> None:
        from broker_ai.observability.logging import configure_logging, reset_logging
        from broker_ai.observability.sinks import LoggingSink

        stream = StringIO()
        configure_logging(stream=stream, force=True)
        try:
            await LoggingSink().record(_record(success=False))
        finally:
            reset_logging()
            configure_logging(force=True)

        entry = json.loads(stream.getvalue().strip())
        assert entry["event"] == "ai_call_metric"
        assert entry["level"] == "warning"
        assert entry["model"] == "gpt-4o"
        assert entry["error"] == "TransientError: 503"


class TestPrometheusSink:
    """Tests for PrometheusSink."""

    @pytest.mark.asyncio
    async def test_counts_request_and_tokens(self) -> None:
        from broker_ai.observability.sinks import PrometheusSink

        model = "prom-sink-test-model"
        request_labels = {
            "provider": "openai",
            "model": model,
            "operation": "chat",
            "outcome": "success",
        }
        token_labels = {"provider": "openai", "model": model}
        before_requests = REGISTRY.get_sample_value(
            "broker_ai_provider_requests_total", request_labels
        ) or 0.0
        before_tokens = REGISTRY.get_sample_value("broker_ai_tokens_total", token_labels) or 0.0

        await PrometheusSink().record(_record(model=model))

        assert REGISTRY.get_sample_value(
            "broker_ai_provider_requests_total", request_labels
        ) - before_requests == 1.0
        assert REGISTRY.get_sample_value(
            "broker_ai_tokens_total", token_labels
        ) - before_tokens == 1500.0

    @pytest.mark.asyncio
    async def test_unknown_cost_not_observed(self) -> None:
        from broker_ai.observability.sinks import PrometheusSink

        model = "prom-sink-no-cost"
        await PrometheusSink().record(_record(success=False, tokens=None, cost=None, model=model))

        assert REGISTRY.get_sample_value(
            "broker_ai_request_cost_dollars_count", {"provider": "openai", "model": model}
        ) is None


class TestCompositeSink:
    """Tests for CompositeSink."""

    @pytest.mark.asyncio
    async def test_fans_out_to_all_children(self, recording_sink) -> None:
        from broker_ai.observability.sinks import CompositeSink

        other = type(recording_sink)()
        sink = CompositeSink([recording_sink, other])

        await sink.record(_record())

        assert len(recording_sink.records) == 1
        assert len(other.records) == 1

    @pytest.mark.asyncio
    async def test_failing_child_is_isolated(self, recording_sink) -> None:
        from broker_ai.observability.sinks import CompositeSink

        sink = CompositeSink([_BrokenSink(), recording_sink])

        await sink.record(_record())

        assert [r.id for r in recording_sink.records] == ["rec-1"]
        assert len(sink.sinks) == 2
