"""Retention sweep: delete buses whose travel date is before today.

The sweep runs in-process through :class:`BusCleanupScheduler` (once at
startup, every ``BUS_CLEANUP_INTERVAL_SECONDS``, and at every local midnight)
or from the Celery beat schedule in :mod:`busbook.celery_app`.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from busbook.config import settings
from busbook.db.session import async_session
from busbook.metrics import BUSES_REMOVED
from busbook.models.models import Bus
from busbook.services.audit import log_audit
from busbook.services.errors import StorageFailure

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


def _today() -> date:
    return date.today()


async def remove_expired_buses(session_factory: Optional[async_sessionmaker] = None, trigger: str = "manual") -> int:
    """Delete every bus dated strictly before the local calendar day.
    Dates are ``YYYY-MM-DD`` strings, so string ordering is date ordering."""
    session_factory = session_factory or async_session
    today = _today().isoformat()
    async with session_factory() as session:
        try:
            result = await session.execute(sa_delete(Bus).where(Bus.date < today))
            deleted = result.rowcount or 0
            if deleted or trigger == "manual":
                await log_audit(session, action="cleanup_expired_buses", object_type="bus", detail={"deleted": deleted, "before": today, "trigger": trigger})
            await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Expired bus cleanup failed")
            raise StorageFailure("Failed to cleanup expired buses") from exc
    if deleted:
        BUSES_REMOVED.labels(trigger=trigger).inc(deleted)
        logger.info("Removed %s expired buses", deleted, extra={"before": today, "trigger": trigger})
    return deleted


def seconds_until_midnight(now: datetime) -> float:
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return (tomorrow - now).total_seconds()


class BusCleanupScheduler:
    """Process-wide sweeper handle. ``start()`` spawns the interval and midnight
    loops on the running event loop; ``stop()`` cancels them."""

    def __init__(self, interval_seconds: Optional[int] = None, cleanup: Optional[Callable[..., Awaitable[int]]] = None):
        self.interval_seconds = interval_seconds or settings.BUS_CLEANUP_INTERVAL_SECONDS
        self.cleanup = cleanup or remove_expired_buses
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def run_once(self, trigger: str) -> int:
        try:
            return await self.cleanup(trigger=trigger)
        except Exception:
            # a failed sweep must not kill the loop; the next tick retries
            logger.exception("Scheduled bus cleanup failed", extra={"trigger": trigger})
            return 0

    async def _interval_loop(self):
        await self.run_once("startup")
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once("interval")

    async def _midnight_loop(self):
        await asyncio.sleep(seconds_until_midnight(datetime.now()))
        while True:
            await self.run_once("midnight")
            await asyncio.sleep(DAY_SECONDS)

    def start(self) -> "BusCleanupScheduler":
        if self._tasks:
            return self
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._interval_loop(), name="bus-cleanup-interval"),
            loop.create_task(self._midnight_loop(), name="bus-cleanup-midnight"),
        ]
        logger.info("Bus cleanup scheduler started", extra={"interval_seconds": self.interval_seconds})
        return self

    async def stop(self):
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Bus cleanup scheduler stopped")
