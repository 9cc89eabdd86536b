"""Background auto-confirmation of pending matches past their deadline."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .. import config
from ..db import get_sessionmaker
from ..services.confirmation import expire_due_matches

logger = logging.getLogger(__name__)


async def run_expiry_once(now: Optional[datetime] = None) -> list[str]:
    """Run a single sweep across every league."""

    async with get_sessionmaker()() as session:
        return await expire_due_matches(session, now=now)


async def expiry_loop(interval_seconds: float) -> None:
    logger.info("Starting pending-match expiry loop every %ss", interval_seconds)
    while True:
        try:
            expired = await run_expiry_once()
            if expired:
                logger.info("Expiry sweep auto-confirmed %d match(es)", len(expired))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Expiry sweep failed; retrying next tick", exc_info=True)
        await asyncio.sleep(interval_seconds)


def start_expiry_task(
    interval_seconds: Optional[float] = None,
) -> Optional[asyncio.Task]:
    """Start the sweeper on the running loop; ``None`` when disabled."""

    interval = (
        config.EXPIRY_SWEEP_INTERVAL_SECONDS
        if interval_seconds is None
        else interval_seconds
    )
    if interval <= 0:
        logger.info("Pending-match expiry sweeper disabled")
        return None
    return asyncio.create_task(expiry_loop(interval), name="pending-match-expiry")


async def stop_expiry_task(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
