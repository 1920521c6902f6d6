"""
Pytest configuration for the Broker AI test suite.

Reference Documents:
- GUIDELINES pp. 155-157: "high and low gear" testing philosophy
- GUIDELINES pp. 157: FakeRepository pattern using duck typing
- GUIDELINES pp. 242 (Newman): AI tests require mocks simulating varying response times,
  occasional failures, and context-dependent outputs

This configuration sets up:
- Test markers for categorization
- Deterministic time: a manual clock and a recording sleep
- Fake providers, a recording monitoring sink and an orchestrator factory
"""

import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import fakeredis.aioredis
import pytest

# Add project root to Python path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from broker_ai.core.config import Settings  # noqa: E402
from broker_ai.observability.sinks import MonitoringSink  # noqa: E402
from broker_ai.providers.fake import FakeProvider  # noqa: E402


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config):
    """
    Register custom markers for test categorization.

    - unit: Low gear tests for individual components
    - integration: High gear tests composing the orchestrator
    - slow: Tests that take a long time to run
    """
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for service interactions")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# =============================================================================
# Test Doubles
# =============================================================================


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingSink(MonitoringSink):
    """Monitoring sink that keeps every delivered record."""

    def __init__(self) -> None:
        self.records: list[Any] = []

    async def record(self, record) -> None:
        self.records.append(record)


def make_reply(
    response: str = "Here is what you need.",
    actions: Optional[list[str]] = None,
    steps: Optional[list[str]] = None,
    confidence: float = 0.9,
) -> str:
    """JSON text in the shape chat models are asked to produce."""
    return json.dumps(
        {
            "response": response,
            "suggestedActions": actions or [],
            "nextSteps": steps or [],
            "confidence": confidence,
        }
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_redis():
    """
    Fake Redis client.

    Reference: GUIDELINES pp. 157 - FakeRepository pattern
    """
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with test keys and no external services."""
    return Settings(
        openai_api_key="sk-test",
        anthropic_api_key="sk-ant-test",
        environment="development",
        knowledge_base_url=None,
        redis_url=None,
        prometheus_enabled=False,
    )


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def reply_json() -> Callable[..., str]:
    """Factory for well-formed structured replies."""
    return make_reply


@pytest.fixture
def primary_provider() -> FakeProvider:
    return FakeProvider(name="primary-fake", model="gpt-4o", tokens_per_call=2000)


@pytest.fixture
def fallback_provider() -> FakeProvider:
    return FakeProvider(
        name="fallback-fake",
        model="claude-3-5-sonnet-20241022",
        default_reply=make_reply("Fallback answer", confidence=0.7),
        supports_embeddings=False,
    )


@pytest.fixture
def build_orchestrator(
    primary_provider,
    fallback_provider,
    manual_clock,
    sleep_recorder,
    recording_sink,
):
    """
    Factory for an orchestrator wired to fakes.

    Keyword overrides replace any collaborator; defaults use the fake
    providers, a manual clock for the breaker and a recording sleep.
    """
    from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine
    from broker_ai.resilience.retry import RetryExecutor, RetryPolicy
    from broker_ai.services.cost_table import ModelCostTable
    from broker_ai.services.metrics_collector import MetricsCollector
    from broker_ai.services.orchestrator import BrokerAIOrchestrator

    def _build(**overrides):
        components = {
            "primary": primary_provider,
            "fallback": fallback_provider,
            "breaker": CircuitBreakerStateMachine(
                name="primary:test",
                failure_threshold=5,
                reset_timeout_seconds=60.0,
                clock=manual_clock,
            ),
            "retry": RetryExecutor(
                RetryPolicy(max_attempts=3, base_delay_seconds=1.0, max_delay_seconds=10.0),
                sleep=sleep_recorder,
            ),
            "metrics": MetricsCollector(ModelCostTable(), sink=recording_sink),
        }
        components.update(overrides)
        return BrokerAIOrchestrator(**components)

    return _build
