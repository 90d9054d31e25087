import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from authcore.core.config import settings
from authcore.helpers.getters import isDebugMode

logger = logging.getLogger(__name__)

if isDebugMode():
    logger.info("Using debug database engine (SQL echo on)")

engine = create_async_engine(settings.DATABASE_URL, future=True, echo=isDebugMode(), pool_pre_ping=True)
SessionAsync = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
