# services/ui_service/app/progress.py
"""
Simulated upload progress.

The gateway gives no byte-level progress, so widgets show a deterministic
indicator: a finite sequence of percentages emitted on a fixed interval while
the real call is pending, cancelled the moment the call resolves.
"""
import asyncio
import contextlib
import math
from typing import Awaitable, Callable, Iterable, Iterator, Optional, TypeVar

from core.config import settings

T = TypeVar("T")


def simulated_progress(
    steps: Optional[int] = None,
    step_size: Optional[int] = None,
    cap: Optional[int] = None,
) -> Iterator[int]:
    """Fixed increments for a single file: 9, 18, ... capped below completion."""
    steps = settings.PROGRESS_STEPS if steps is None else steps
    step_size = settings.PROGRESS_STEP_SIZE if step_size is None else step_size
    cap = settings.PROGRESS_CAP if cap is None else cap
    for step in range(1, steps + 1):
        yield min(cap, step * step_size)


def batch_progress(
    index: int,
    total: int,
    steps: Optional[int] = None,
    cap: Optional[int] = None,
) -> Iterator[int]:
    """Progress within file `index`'s share of the overall 0-100 range."""
    steps = settings.PROGRESS_STEPS if steps is None else steps
    cap = settings.PROGRESS_CAP if cap is None else cap
    base = batch_base_progress(index, total)
    target = math.floor((index + 1) / total * 100)
    increment = (target - base) / steps
    for step in range(1, steps + 1):
        yield min(base + math.floor(increment * step), cap)


def batch_base_progress(index: int, total: int) -> int:
    return math.floor(index / total * 100)


async def run_with_progress(
    call: Awaitable[T],
    values: Iterable[int],
    on_progress: Callable[[int], None],
    interval: Optional[float] = None,
) -> T:
    """Await `call`, feeding `values` to on_progress every `interval` seconds until it resolves."""
    interval = settings.PROGRESS_TICK_SECONDS if interval is None else interval

    async def ticker():
        for value in values:
            await asyncio.sleep(interval)
            on_progress(value)

    ticker_task = asyncio.create_task(ticker())
    try:
        return await call
    finally:
        ticker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await ticker_task
