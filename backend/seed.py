"""Create the default league so requests that name no league have a home."""

import asyncio
import logging

from ladder.config import DEFAULT_LEAGUE_ID
from ladder.db import dispose_engine, get_sessionmaker
from ladder.models import League

logger = logging.getLogger(__name__)


async def main() -> None:
    async with get_sessionmaker()() as s:
        if await s.get(League, DEFAULT_LEAGUE_ID) is None:
            s.add(
                League(
                    id=DEFAULT_LEAGUE_ID,
                    name="Default League",
                    description="League used when a request names none.",
                )
            )
            logger.info("Seeded league %s", DEFAULT_LEAGUE_ID)
        await s.commit()
    await dispose_engine()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
