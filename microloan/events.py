import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from microloan.core.settings import settings
from microloan.db.init_db import init_db
from microloan.db.session import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup environment=%s", settings.environment)
    if settings.seed_rate_plans:
        await init_db()
    try:
        yield
    finally:
        logger.info("Application shutdown")
        await engine.dispose()
