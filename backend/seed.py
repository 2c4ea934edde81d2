import asyncio
import logging
import os

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from leaguecore.db import build_engine
from leaguecore.services.rulesets import seed_rule_sets
from leaguecore.utils.sentry import init_sentry

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")

engine = build_engine(DATABASE_URL)
Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

async def main():
    async with Session() as s:
        added = await seed_rule_sets(s)
        await s.commit()
    logger.info("Seeded %d rule sets: %s", len(added), ", ".join(added) or "-")
    await engine.dispose()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_sentry()
    asyncio.run(main())
