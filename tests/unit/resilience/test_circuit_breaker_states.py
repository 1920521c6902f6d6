"""
Tests for CircuitBreakerStateMachine

Reference Documents:
- Building Reactive Microservices in Java (Escoffier) Ch.6, pp.54-62
- Release It! (Nygard): Stability patterns

Test Categories:
- Initial state and configuration
- CLOSED -> OPEN after the failure threshold
- Fail fast while OPEN (wrapped call never invoked)
- OPEN -> HALF_OPEN -> CLOSED / OPEN with an injected clock
- Concurrency: no lost failure increments
- Transition metrics
"""

import asyncio

import pytest
from prometheus_client import REGISTRY


async def _fail() -> None:
    raise RuntimeError("provider down")


async def _succeed() -> str:
    return "ok"


@pytest.fixture
def breaker(manual_clock):
    from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine

    return CircuitBreakerStateMachine(
        name="test-circuit",
        failure_threshold=5,
        reset_timeout_seconds=60.0,
        clock=manual_clock,
    )


async def _trip(breaker, times: int = 5) -> None:
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.execute(_fail)


# =============================================================================
# Initial State and Configuration
# =============================================================================


class TestInitialState:
    """Tests for breaker construction."""

    def test_starts_closed_with_zero_failures(self, breaker) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.last_failure_time is None

    def test_defaults_match_production_tuning(self) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine

        cb = CircuitBreakerStateMachine(name="defaults")

        assert cb.failure_threshold == 5
        assert cb.reset_timeout_seconds == 60.0

    def test_rejects_zero_threshold(self) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine

        with pytest.raises(ValueError):
            CircuitBreakerStateMachine(name="bad", failure_threshold=0)

    def test_from_env_reads_environment(self, monkeypatch) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine

        monkeypatch.setenv("BROKER_AI_CIRCUIT_BREAKER_FAILURE_THRESHOLD", "7")
        monkeypatch.setenv("BROKER_AI_CIRCUIT_BREAKER_RESET_TIMEOUT_SECONDS", "15")

        cb = CircuitBreakerStateMachine.from_env(name="env")

        assert cb.failure_threshold == 7
        assert cb.reset_timeout_seconds == 15.0

    def test_from_env_explicit_arguments_win(self, monkeypatch) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine

        monkeypatch.setenv("BROKER_AI_CIRCUIT_BREAKER_FAILURE_THRESHOLD", "7")

        cb = CircuitBreakerStateMachine.from_env(name="env", failure_threshold=2)

        assert cb.failure_threshold == 2

    def test_from_settings(self, test_settings) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine

        cb = CircuitBreakerStateMachine.from_settings("primary", test_settings)

        assert cb.failure_threshold == test_settings.circuit_breaker_failure_threshold
        assert cb.reset_timeout_seconds == test_settings.circuit_breaker_reset_timeout_seconds


# =============================================================================
# CLOSED -> OPEN
# =============================================================================


class TestOpening:
    """Tests for tripping the circuit."""

    @pytest.mark.asyncio
    async def test_stays_closed_below_threshold(self, breaker) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=4)

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 4

    @pytest.mark.asyncio
    async def test_opens_on_fifth_failure(self, breaker, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=5)

        assert breaker.state == CircuitBreakerState.OPEN
        assert breaker.failure_count == 5
        assert breaker.last_failure_time == manual_clock.now

    @pytest.mark.asyncio
    async def test_original_error_is_reraised(self, breaker) -> None:
        with pytest.raises(RuntimeError, match="provider down"):
            await breaker.execute(_fail)

    @pytest.mark.asyncio
    async def test_closed_success_keeps_failure_count(self, breaker) -> None:
        """A success while CLOSED does not reset the counter."""
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=4)
        assert await breaker.execute(_succeed) == "ok"
        assert breaker.failure_count == 4

        await _trip(breaker, times=1)
        assert breaker.state == CircuitBreakerState.OPEN


# =============================================================================
# Fail Fast While OPEN
# =============================================================================


class TestFailFast:
    """Tests for rejecting calls while the circuit is open."""

    @pytest.mark.asyncio
    async def test_sixth_call_rejected_without_invoking_operation(self, breaker) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerError

        await _trip(breaker, times=5)
        invocations = 0

        async def counted() -> str:
            nonlocal invocations
            invocations += 1
            return "should not run"

        with pytest.raises(CircuitBreakerError) as exc_info:
            await breaker.execute(counted)

        assert invocations == 0
        assert exc_info.value.circuit_name == "test-circuit"
        assert str(exc_info.value).startswith("CircuitBreakerError[test-circuit]")

    @pytest.mark.asyncio
    async def test_rejection_does_not_count_as_failure(self, breaker) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerError

        await _trip(breaker, times=5)
        with pytest.raises(CircuitBreakerError):
            await breaker.execute(_succeed)

        assert breaker.failure_count == 5

    @pytest.mark.asyncio
    async def test_still_open_just_before_timeout(self, breaker, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerError

        await _trip(breaker, times=5)
        manual_clock.advance(59.9)

        with pytest.raises(CircuitBreakerError):
            await breaker.execute(_succeed)


# =============================================================================
# Recovery via HALF_OPEN
# =============================================================================


class TestRecovery:
    """Tests for OPEN -> HALF_OPEN -> CLOSED/OPEN."""

    @pytest.mark.asyncio
    async def test_get_state_moves_to_half_open_after_timeout(self, breaker, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=5)
        manual_clock.advance(60.0)

        assert await breaker.get_state() == CircuitBreakerState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_successful_trial_closes_and_resets(self, breaker, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=5)
        manual_clock.advance(60.0)

        assert await breaker.execute(_succeed) == "ok"
        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_trial_reopens_with_new_timestamp(self, breaker, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=5)
        first_failure = breaker.last_failure_time
        manual_clock.advance(61.0)

        with pytest.raises(RuntimeError):
            await breaker.execute(_fail)

        assert breaker.state == CircuitBreakerState.OPEN
        assert breaker.last_failure_time == first_failure + 61.0

    @pytest.mark.asyncio
    async def test_reopened_circuit_waits_full_timeout_again(self, breaker, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerError

        await _trip(breaker, times=5)
        manual_clock.advance(60.0)
        with pytest.raises(RuntimeError):
            await breaker.execute(_fail)

        manual_clock.advance(30.0)
        with pytest.raises(CircuitBreakerError):
            await breaker.execute(_succeed)

    @pytest.mark.asyncio
    async def test_reset_forces_closed(self, breaker) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=5)
        await breaker.reset()

        assert breaker.state == CircuitBreakerState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.last_failure_time is None

    @pytest.mark.asyncio
    async def test_snapshot_reflects_state(self, breaker, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerState

        await _trip(breaker, times=2)
        snap = breaker.snapshot()

        assert snap.name == "test-circuit"
        assert snap.state == CircuitBreakerState.CLOSED
        assert snap.failure_count == 2
        assert snap.last_failure_time == manual_clock.now


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    """Tests for atomic counter updates."""

    @pytest.mark.asyncio
    async def test_concurrent_failures_are_all_counted(self, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import (
            CircuitBreakerState,
            CircuitBreakerStateMachine,
        )

        cb = CircuitBreakerStateMachine(
            name="concurrent",
            failure_threshold=100,
            reset_timeout_seconds=60.0,
            clock=manual_clock,
        )

        async def slow_fail() -> None:
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        results = await asyncio.gather(
            *(cb.execute(slow_fail) for _ in range(40)),
            return_exceptions=True,
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert cb.failure_count == 40
        assert cb.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_in_flight_failures_after_trip_do_not_double_open(self, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import (
            CircuitBreakerState,
            CircuitBreakerStateMachine,
        )

        cb = CircuitBreakerStateMachine(
            name="double-open",
            failure_threshold=3,
            reset_timeout_seconds=60.0,
            clock=manual_clock,
        )
        before = REGISTRY.get_sample_value(
            "broker_ai_circuit_breaker_state_transitions_total",
            {"circuit_name": "double-open", "to_state": "open", "from_state": "closed"},
        ) or 0.0

        async def slow_fail() -> None:
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        await asyncio.gather(*(cb.execute(slow_fail) for _ in range(6)), return_exceptions=True)

        after = REGISTRY.get_sample_value(
            "broker_ai_circuit_breaker_state_transitions_total",
            {"circuit_name": "double-open", "to_state": "open", "from_state": "closed"},
        )
        assert cb.state == CircuitBreakerState.OPEN
        assert after - before == 1.0


# =============================================================================
# Metrics
# =============================================================================


class TestTransitionMetrics:
    """Tests for Prometheus output on transitions."""

    @pytest.mark.asyncio
    async def test_state_gauge_tracks_transitions(self, manual_clock) -> None:
        from broker_ai.resilience.circuit_breaker_state_machine import CircuitBreakerStateMachine

        cb = CircuitBreakerStateMachine(
            name="gauge-circuit",
            failure_threshold=1,
            reset_timeout_seconds=10.0,
            clock=manual_clock,
        )

        with pytest.raises(RuntimeError):
            await cb.execute(_fail)
        assert REGISTRY.get_sample_value(
            "broker_ai_circuit_breaker_state", {"circuit_name": "gauge-circuit"}
        ) == 2.0

        manual_clock.advance(10.0)
        await cb.execute(_succeed)
        assert REGISTRY.get_sample_value(
            "broker_ai_circuit_breaker_state", {"circuit_name": "gauge-circuit"}
        ) == 0.0
