"""Tests for bounded readiness polling."""

import asyncio

import pytest

from conftest import FakeClock
from kubeharness.core.errors import KubectlCommandError, ReadinessTimeout
from kubeharness.core.readiness_poller import poll_until_ready


def flaky_probe(clock: FakeClock, succeed_on: int, latency: float = 0.0):
    calls = {"n": 0}

    async def probe():
        calls["n"] += 1
        clock.advance(latency)
        if succeed_on is None or calls["n"] < succeed_on:
            raise KubectlCommandError(["version"], 1, f"attempt {calls['n']} refused")
        return "ok"

    return probe, calls


@pytest.mark.asyncio
@pytest.mark.parametrize("succeed_on", [1, 2, 3, 10, 61])
async def test_returns_after_exactly_n_attempts(succeed_on):
    clock = FakeClock()
    probe, calls = flaky_probe(clock, succeed_on)

    result = await poll_until_ready(probe, 1.0, 60.0, clock=clock, sleep=clock.sleep)

    assert result.attempts == succeed_on
    assert calls["n"] == succeed_on
    assert result.elapsed == pytest.approx(succeed_on - 1)
    assert clock.sleeps == [1.0] * (succeed_on - 1)


@pytest.mark.asyncio
async def test_never_ready_times_out_and_stops_probing():
    clock = FakeClock()
    probe, calls = flaky_probe(clock, None)

    with pytest.raises(ReadinessTimeout) as exc_info:
        await poll_until_ready(
            probe, 1.0, 60.0, description="kube-apiserver", clock=clock, sleep=clock.sleep
        )

    err = exc_info.value
    assert err.elapsed > 60.0
    assert err.attempts == calls["n"] == 62
    assert isinstance(err.last_error, KubectlCommandError)
    assert "attempt 62 refused" in err.output
    assert "kube-apiserver" in str(err)


@pytest.mark.asyncio
async def test_probe_latency_counts_against_budget():
    clock = FakeClock()
    probe, calls = flaky_probe(clock, None, latency=10.0)

    with pytest.raises(ReadinessTimeout):
        await poll_until_ready(probe, 1.0, 30.0, clock=clock, sleep=clock.sleep)

    # 10s per attempt + 1s sleep in between: 10, 21, 32 -> gives up on the third.
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_single_attempt_when_max_wait_equals_interval():
    clock = FakeClock()
    probe, calls = flaky_probe(clock, 2)

    result = await poll_until_ready(probe, 1.0, 1.0, clock=clock, sleep=clock.sleep)

    assert result.attempts == 2
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate():
    clock = FakeClock()

    async def probe():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await poll_until_ready(
            probe, 1.0, 60.0, retry_on=(KubectlCommandError,), clock=clock, sleep=clock.sleep
        )
    assert clock.sleeps == []


@pytest.mark.asyncio
@pytest.mark.parametrize("interval,max_wait", [(0, 10), (-1, 10), (2, 1)])
async def test_rejects_invalid_budget(interval, max_wait):
    async def probe():
        return None

    with pytest.raises(ValueError):
        await poll_until_ready(probe, interval, max_wait)


@pytest.mark.asyncio
async def test_hung_probe_is_abandoned_when_budget_runs_out():
    cancelled = []

    async def hung_probe():
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    with pytest.raises(ReadinessTimeout) as exc_info:
        await asyncio.wait_for(
            poll_until_ready(hung_probe, 0.05, 0.1, description="kube-apiserver"),
            timeout=5,
        )

    err = exc_info.value
    assert err.attempts == 1
    assert err.elapsed >= 0.1
    assert "did not return" in str(err)
    assert cancelled == [True]


@pytest.mark.asyncio
async def test_probe_raising_timeout_error_is_retried():
    clock = FakeClock()
    calls = {"n": 0}

    async def probe():
        calls["n"] += 1
        if calls["n"] < 3:
            raise asyncio.TimeoutError("request timed out")

    result = await poll_until_ready(
        probe, 1.0, 60.0, retry_on=(asyncio.TimeoutError,), clock=clock, sleep=clock.sleep
    )

    assert result.attempts == 3
