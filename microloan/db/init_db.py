import asyncio
import logging

from microloan.core.logging import configure_logging
from microloan.db.session import AsyncSessionLocal
from microloan.services import rate_catalog

logger = logging.getLogger(__name__)


async def init_db() -> int:
    """Seed the default rate catalog into an empty database."""
    async with AsyncSessionLocal() as session:
        inserted = await rate_catalog.seed_default_rate_plans(session)
        await session.commit()
    if not inserted:
        logger.info("Rate catalog already present; nothing to seed")
    return inserted


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
