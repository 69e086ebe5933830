"""Background task that periodically expires finished jobs."""

import asyncio
import logging

from duet.registry.job_registry import JobRegistry

logger = logging.getLogger(__name__)

# Housekeeping tick in seconds
DEFAULT_SWEEP_INTERVAL = 30.0


async def run_sweeper(registry: JobRegistry, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
    """Call ``registry.sweep()`` every ``interval`` seconds until cancelled."""
    logger.info("Job sweeper started (interval=%.0fs, grace=%.0fs)", interval, registry.grace_period.total_seconds())

    while True:
        try:
            await asyncio.sleep(interval)
            registry.sweep()
        except asyncio.CancelledError:
            logger.info("Job sweeper stopped")
            break
        except Exception as exc:
            logger.exception("Job sweeper error: %s", exc)
            # Continue running despite errors
