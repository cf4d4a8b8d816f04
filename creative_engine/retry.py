import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PollOutcome(Generic[T]):
    """Result of a bounded poll: the last value seen and whether it satisfied the predicate"""
    value: T
    done: bool
    attempts: int
    elapsed: float


# --- BOUNDED POLLING ---

async def poll_until(
    check: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    initial: T,
    interval: float = 2.0,
    timeout: float = 60.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    label: str = "resource",
) -> PollOutcome[T]:
    """
    Re-run ``check`` every ``interval`` seconds until ``is_done`` holds or
    ``timeout`` seconds have passed.

    ``initial`` is evaluated first, so an already-finished value costs zero
    checks. A check that raises or outlives the budget is logged and retried
    on the next tick; it never aborts the wait. Each check runs under
    ``asyncio.wait_for`` so the whole wait ends within ``timeout + interval``.
    The delay goes through ``sleep`` (``asyncio.sleep`` by default) so
    cancelling the caller cancels the wait.
    """
    start = clock()
    value = initial
    attempts = 0

    while not is_done(value):
        elapsed = clock() - start
        if elapsed >= timeout:
            return PollOutcome(value=value, done=False, attempts=attempts, elapsed=elapsed)

        await sleep(interval)
        attempts += 1
        # The last tick may start after the deadline; it only gets what is left of one interval
        allowance = max(0.0, timeout + interval - (clock() - start))
        try:
            value = await asyncio.wait_for(check(), timeout=allowance)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Status check {attempts} for {label} timed out after {allowance:.1f}s")
        except Exception as e:
            logger.warning(f"⚠️ Status check {attempts} for {label} failed, retrying: {e}")

    return PollOutcome(value=value, done=True, attempts=attempts, elapsed=clock() - start)
