import asyncio

from celery.utils.log import get_task_logger
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from busbook.celery_app import celery_app
from busbook.db.session import DATABASE_URL
from busbook.services.bus_cleanup import remove_expired_buses
from busbook.services.errors import StorageFailure

logger = get_task_logger(__name__)


async def _cleanup() -> int:
    # workers run each task on a fresh event loop, so pooled connections cannot be shared
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        return await remove_expired_buses(factory, trigger="celery")
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="busbook.cleanup.cleanup_expired_buses", autoretry_for=(StorageFailure,), retry_backoff=True, retry_backoff_max=600, max_retries=3)
def cleanup_expired_buses_task(self):
    """Celery entry point for the expired bus sweep; returns the deleted count."""
    deleted = asyncio.run(_cleanup())
    logger.info("Expired bus cleanup removed %s buses", deleted)
    return deleted
