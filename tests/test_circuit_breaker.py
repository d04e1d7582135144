"""Tests for app.core.circuit_breaker."""

from unittest.mock import AsyncMock

import pytest

from app.core.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


class DependencyDown(Exception):
    pass


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("ml", failure_threshold=3, half_open_after_ms=1000, clock=clock)


async def _fail_times(breaker: CircuitBreaker, n: int) -> None:
    failing = AsyncMock(side_effect=DependencyDown("boom"))
    for _ in range(n):
        with pytest.raises(DependencyDown):
            await breaker.execute(failing)


def test_starts_closed(breaker):
    assert breaker.state() == CircuitState.CLOSED
    assert breaker.failures == 0


def test_rejects_invalid_threshold():
    with pytest.raises(ValueError):
        CircuitBreaker("x", failure_threshold=0)


@pytest.mark.asyncio
async def test_success_passes_result_through(breaker):
    ok = AsyncMock(return_value="result")
    assert await breaker.execute(ok) == "result"
    ok.assert_awaited_once()


@pytest.mark.asyncio
async def test_errors_are_rethrown_not_swallowed(breaker):
    with pytest.raises(DependencyDown):
        await breaker.execute(AsyncMock(side_effect=DependencyDown("x")))
    assert breaker.failures == 1
    assert breaker.state() == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_opens_after_threshold_consecutive_failures(breaker):
    await _fail_times(breaker, 2)
    assert breaker.state() == CircuitState.CLOSED

    await _fail_times(breaker, 1)
    assert breaker.state() == CircuitState.OPEN


@pytest.mark.asyncio
async def test_success_resets_failure_counter(breaker):
    await _fail_times(breaker, 2)
    await breaker.execute(AsyncMock(return_value=1))
    assert breaker.failures == 0

    await _fail_times(breaker, 2)
    assert breaker.state() == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_open_circuit_short_circuits_without_calling(breaker, clock):
    await _fail_times(breaker, 3)
    clock.advance(999)

    fn = AsyncMock(return_value="never")
    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.execute(fn)

    fn.assert_not_called()
    assert exc_info.value.name == "ml"
    assert exc_info.value.retry_after_ms == pytest.approx(1)


@pytest.mark.asyncio
async def test_state_query_lazily_moves_to_half_open(breaker, clock):
    await _fail_times(breaker, 3)
    clock.advance(1000)
    assert breaker.state() == CircuitState.HALF_OPEN


@pytest.mark.asyncio
async def test_successful_probe_after_cooldown_closes(breaker, clock):
    await _fail_times(breaker, 3)
    clock.advance(1000)

    probe = AsyncMock(return_value="ok")
    assert await breaker.execute(probe) == "ok"
    probe.assert_awaited_once()
    assert breaker.state() == CircuitState.CLOSED
    assert breaker.failures == 0


@pytest.mark.asyncio
async def test_failed_probe_reopens_and_restarts_cooldown(clock):
    breaker = CircuitBreaker("ml", failure_threshold=5, half_open_after_ms=1000, clock=clock)
    await _fail_times(breaker, 5)
    clock.advance(1500)

    # A single failed probe re-opens regardless of the threshold
    await _fail_times(breaker, 1)
    assert breaker.state() == CircuitState.OPEN

    clock.advance(999)
    with pytest.raises(CircuitOpenError):
        await breaker.execute(AsyncMock())
    clock.advance(1)
    assert breaker.state() == CircuitState.HALF_OPEN


@pytest.mark.asyncio
async def test_probe_via_execute_flips_half_open_before_call(breaker, clock):
    await _fail_times(breaker, 3)
    clock.advance(1000)
    seen = []

    async def probe():
        seen.append(breaker._state)
        return True

    await breaker.execute(probe)
    assert seen == [CircuitState.HALF_OPEN]


@pytest.mark.asyncio
async def test_reset_and_stats(breaker):
    await _fail_times(breaker, 3)
    stats = breaker.get_stats()
    assert stats["state"] == "open"
    assert stats["failures"] == 3

    breaker.reset()
    assert breaker.state() == CircuitState.CLOSED
    assert breaker.get_stats()["failures"] == 0
