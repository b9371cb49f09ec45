"""
Bounded-retry readiness polling.

A probe is an async zero-argument callable that returns normally once the
thing it observes is usable and raises while it is not. The poller keeps
calling it, sleeping ``interval`` seconds after each failure, until it
succeeds or the time since the first attempt exceeds ``max_wait``.

Each attempt is itself bounded by the remaining budget plus one interval, so
a probe that hangs (an API server that accepts connections but never answers)
still ends the wait.

Usage:
    result = await poll_until_ready(
        lambda: kubectl.run("version"),
        interval=1.0,
        max_wait=60.0,
        description="kube-apiserver to be ready",
    )
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from kubeharness.core.errors import ReadinessTimeout

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class PollResult:
    """Outcome of a successful poll."""
    attempts: int
    elapsed: float


async def poll_until_ready(
    probe: Probe,
    interval: float,
    max_wait: float,
    description: str = "readiness",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> PollResult:
    """
    Invoke ``probe`` until it succeeds or ``max_wait`` is exceeded.

    Args:
        probe: Async callable; raising one of ``retry_on`` means "not yet"
        interval: Seconds to sleep after a failed attempt (> 0)
        max_wait: Budget in seconds measured from the first attempt (>= interval)
        description: Human-readable name used in logs and the timeout error
        retry_on: Exception types treated as retryable; others propagate
        clock: Monotonic time source
        sleep: Async sleep function

    Returns:
        PollResult with the number of attempts and elapsed seconds

    Raises:
        ReadinessTimeout: with the last probe error once the budget is spent
    """
    if interval <= 0:
        raise ValueError(f"interval must be > 0, got {interval}")
    if max_wait < interval:
        raise ValueError(f"max_wait ({max_wait}) must be >= interval ({interval})")

    logger.info(f"[Readiness] Waiting for {description}...")
    start = clock()
    attempts = 0
    last_error: Optional[BaseException] = None

    while True:
        attempts += 1
        attempt_timeout = max(max_wait - (clock() - start), 0.0) + interval
        attempt = asyncio.ensure_future(probe())
        try:
            done, _ = await asyncio.wait({attempt}, timeout=attempt_timeout)
        finally:
            if not attempt.done():
                attempt.cancel()

        if not done:
            await asyncio.gather(attempt, return_exceptions=True)
            hung = asyncio.TimeoutError(
                f"attempt {attempts} did not return within {attempt_timeout:.1f}s"
            )
            logger.warning(f"[Readiness] Gave up on {description}: {hung}")
            raise ReadinessTimeout(
                description,
                elapsed=max(clock() - start, max_wait),
                last_error=hung,
                attempts=attempts,
            )

        try:
            attempt.result()
        except retry_on as e:
            last_error = e
        else:
            elapsed = clock() - start
            logger.info(
                f"[Readiness] Done waiting for {description} "
                f"({attempts} attempt(s), {elapsed:.1f}s)"
            )
            return PollResult(attempts=attempts, elapsed=elapsed)

        elapsed = clock() - start
        if elapsed > max_wait:
            logger.warning(
                f"[Readiness] Gave up on {description} after {attempts} attempt(s), "
                f"{elapsed:.1f}s: {last_error}"
            )
            raise ReadinessTimeout(
                description,
                elapsed=elapsed,
                last_error=last_error,
                attempts=attempts,
            )

        logger.debug(f"[Readiness] Still waiting for {description} (attempt {attempts}): {last_error}")
        await sleep(interval)
