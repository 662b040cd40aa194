"""Periodic cleanup of the in-memory limiter stores."""
import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


async def run_periodic_sweep(name: str, sweep: Callable[[], int], interval_seconds: float):
    """Call sweep() every interval until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = sweep()
            if removed:
                logger.debug(f"{name} sweep: removed {removed} expired entries")
        except Exception as e:
            logger.error(f"{name} sweep error: {e}")


def start_sweeps(stores: dict[str, tuple[Callable[[], int], float]]) -> list[asyncio.Task]:
    return [
        asyncio.create_task(run_periodic_sweep(name, sweep, interval), name=f"sweep:{name}")
        for name, (sweep, interval) in stores.items()
    ]


async def stop_sweeps(tasks: list[asyncio.Task]):
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
