"""Wall-clock-bounded driver that repeats live sync cycles in one process."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from ..errors import FATAL_ERRORS

logger = logging.getLogger(__name__)

LOOP_DURATION = 55 * 60   # seconds; the next scheduled run takes over after this
CYCLE_INTERVAL = 120.0    # seconds between cycle starts
MIN_PAUSE = 1.0


async def run_live_loop(
    run_cycle: Callable[[], Awaitable[Any]],
    duration: float = LOOP_DURATION,
    interval: float = CYCLE_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> int:
    """Run *run_cycle* every *interval* seconds until *duration* is spent.

    A cycle in flight always finishes; no new cycle starts once the budget
    is gone.  Returns the number of cycles run.
    """
    end = clock() + duration
    cycles = 0
    logger.info("Starting live sync loop for %.0f minutes...", duration / 60)

    while clock() < end:
        cycle_start = clock()
        logger.info("--- Cycle %d start ---", cycles + 1)
        try:
            summary = await run_cycle()
            logger.info("--- Cycle %d complete: %s ---", cycles + 1, summary)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            logger.error("Cycle %d failed: %s", cycles + 1, e)
        cycles += 1

        pause = max(MIN_PAUSE, interval - (clock() - cycle_start))
        if clock() + pause >= end:
            break
        logger.info("Waiting %.0fs for next cycle...", pause)
        await sleep(pause)

    logger.info("Loop duration reached after %d cycles. Exiting.", cycles)
    return cycles
