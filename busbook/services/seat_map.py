"""Seat map store for a single bus row.

Seat state lives on the ``buses`` row itself: ``seats_booked`` is the list of
committed seat numbers and ``seat_locks`` the list of temporary lock entries
(``seatNumber``, ``lockedAt``, ``expiresAt``, ``passengerName``,
``passengerEmail``). Expired locks are treated as absent by every read and are
pruned opportunistically.

All seat-state writes go through :meth:`SeatMapStore.mutate`, a
read-modify-write cycle guarded by the row ``version`` column. A concurrent
writer that committed first makes our UPDATE match zero rows, SQLAlchemy raises
``StaleDataError`` and the whole cycle is replayed against a fresh read, so a
conflict check never runs against a stale seat map.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import select as sa_select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from busbook.config import settings
from busbook.db.session import async_session
from busbook.metrics import EXPIRED_LOCKS_PRUNED, SEAT_WRITE_RETRIES
from busbook.models.models import Bus
from busbook.schemas.bus import BusCreate, BusOut, SeatLockOut
from busbook.services.errors import NotFoundError, SeatConflictError, SeatValidationError, StorageFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def lock_ttl() -> timedelta:
    return timedelta(seconds=settings.SEAT_LOCK_TTL_SECONDS)


def _parse_ts(value) -> datetime:
    ts = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def make_lock(seat_number: int, now: datetime, holder_name: Optional[str], holder_email: Optional[str]) -> dict:
    return {
        "seatNumber": seat_number,
        "lockedAt": now.isoformat(),
        "expiresAt": (now + lock_ttl()).isoformat(),
        "passengerName": holder_name,
        "passengerEmail": holder_email,
    }


def is_live(lock: dict, now: datetime) -> bool:
    return _parse_ts(lock["expiresAt"]) > now


def live_locks(locks: Optional[Iterable[dict]], now: datetime) -> List[dict]:
    return [lock for lock in (locks or []) if is_live(lock, now)]


def prune_expired(bus: Bus, now: datetime) -> int:
    """Drop locks whose ``expiresAt <= now``; returns the number removed."""
    locks = list(bus.seat_locks or [])
    live = live_locks(locks, now)
    removed = len(locks) - len(live)
    if removed:
        # assign a new list so the JSON column is flagged dirty
        bus.seat_locks = live
    return removed


def check_seat_numbers(seats: Sequence[int], total_seats: int) -> None:
    if not seats:
        raise SeatValidationError("No seats provided")
    if len(set(seats)) != len(seats):
        raise SeatValidationError("Duplicate seat numbers in request")
    out_of_range = [s for s in seats if s < 1 or s > total_seats]
    if out_of_range:
        raise SeatValidationError(f"Seat numbers out of range 1..{total_seats}: {out_of_range}")


def to_snapshot(bus: Bus, locks: Optional[List[dict]] = None) -> BusOut:
    locks = bus.seat_locks if locks is None else locks
    return BusOut(
        id=bus.id,
        bus_name=bus.bus_name,
        source=bus.source,
        destination=bus.destination,
        date=bus.date,
        departure_time=bus.departure_time,
        arrival_time=bus.arrival_time,
        price=float(bus.price),
        total_seats=bus.total_seats,
        seats_booked=sorted(bus.seats_booked or []),
        seat_locks=[SeatLockOut.model_validate(lock) for lock in (locks or [])],
        version=bus.version,
        created_at=bus.created_at,
        updated_at=bus.updated_at,
    )


class SeatMapStore:
    def __init__(self, session_factory: Optional[async_sessionmaker] = None, max_retries: Optional[int] = None):
        self.session_factory = session_factory or async_session
        self.max_retries = settings.SEAT_WRITE_MAX_RETRIES if max_retries is None else max_retries

    async def load(self, session: AsyncSession, bus_id: int) -> Bus:
        bus = await session.get(Bus, bus_id)
        if bus is None:
            raise NotFoundError("Bus not found")
        return bus

    async def create_bus(self, data: BusCreate) -> BusOut:
        bus = Bus(
            bus_name=data.bus_name,
            source=data.source,
            destination=data.destination,
            date=data.date,
            departure_time=data.departure_time,
            arrival_time=data.arrival_time,
            price=data.price,
            total_seats=data.total_seats,
            seats_booked=[],
            seat_locks=[],
        )
        async with self.session_factory() as session:
            try:
                session.add(bus)
                await session.commit()
            except SQLAlchemyError as exc:
                logger.exception("Failed to create bus")
                raise StorageFailure("Failed to add bus") from exc
            logger.info("Bus created", extra={"bus_id": bus.id, "date": bus.date, "total_seats": bus.total_seats})
            return to_snapshot(bus)

    async def get_bus(self, bus_id: int) -> BusOut:
        """Return the bus with expired locks filtered out."""
        async with self.session_factory() as session:
            try:
                bus = await self.load(session, bus_id)
            except SQLAlchemyError as exc:
                raise StorageFailure("Failed to fetch bus") from exc
            snapshots = await self._prune_on_read(session, [bus])
            return snapshots[0]

    async def list_buses(self, source: Optional[str] = None, destination: Optional[str] = None, date: Optional[str] = None) -> List[BusOut]:
        stmt = sa_select(Bus)
        if source:
            stmt = stmt.where(Bus.source == source)
        if destination:
            stmt = stmt.where(Bus.destination == destination)
        if date:
            stmt = stmt.where(Bus.date == date)
        stmt = stmt.order_by(Bus.date, Bus.departure_time, Bus.id)
        async with self.session_factory() as session:
            try:
                res = await session.execute(stmt)
                buses = list(res.scalars().all())
            except SQLAlchemyError as exc:
                raise StorageFailure("Failed to fetch buses") from exc
            return await self._prune_on_read(session, buses)

    async def _prune_on_read(self, session: AsyncSession, buses: List[Bus]) -> List[BusOut]:
        # snapshots are taken before the write so a failed commit cannot touch them
        now = _now()
        snapshots = []
        pruned = []
        removed = 0
        for i, bus in enumerate(buses):
            live = live_locks(bus.seat_locks, now)
            snapshots.append(to_snapshot(bus, live))
            if len(live) != len(bus.seat_locks or []):
                removed += len(bus.seat_locks) - len(live)
                bus.seat_locks = live
                pruned.append(i)
        if removed:
            try:
                await session.commit()
            except SQLAlchemyError:
                # best-effort: a concurrent writer already replaced the lock list
                await session.rollback()
                logger.warning("Could not persist pruned seat locks", exc_info=True)
                return snapshots
            EXPIRED_LOCKS_PRUNED.labels(path="read").inc(removed)
            # the commit bumped version and updated_at on the pruned rows
            for i in pruned:
                snapshots[i] = to_snapshot(buses[i])
        return snapshots

    async def run_versioned(self, fn: Callable[[AsyncSession], Awaitable[T]], bus_id: Optional[int] = None) -> T:
        """Run ``await fn(session)`` in a fresh session and commit.

        Any bus row ``fn`` modifies is written with a version check; if another
        writer got there first the whole cycle is replayed, at most
        ``max_retries`` times, then ``SeatConflictError`` is raised. Other
        database errors propagate to the caller.
        """
        attempt = 0
        while True:
            attempt += 1
            async with self.session_factory() as session:
                try:
                    result = await fn(session)
                    await session.commit()
                except StaleDataError:
                    await session.rollback()
                    if attempt > self.max_retries:
                        logger.warning("Seat map write abandoned after %s attempts", attempt, extra={"bus_id": bus_id})
                        raise SeatConflictError("Seat map changed concurrently, please retry")
                    SEAT_WRITE_RETRIES.inc()
                    logger.info("Version conflict on bus write, retrying", extra={"bus_id": bus_id, "attempt": attempt})
                    continue
                return result

    async def mutate(self, bus_id: int, fn: Callable[[Bus, datetime], T], prune: bool = True) -> Tuple[T, BusOut]:
        """Apply ``fn(bus, now)`` to a fresh copy of the bus and persist it.

        Expired locks are dropped before ``fn`` runs unless ``prune`` is False.
        ``fn`` signals business failures by raising; nothing is written then.
        """

        async def _cycle(session: AsyncSession):
            bus = await self.load(session, bus_id)
            now = _now()
            pruned = prune_expired(bus, now) if prune else 0
            return fn(bus, now), pruned, bus

        try:
            result, pruned, bus = await self.run_versioned(_cycle, bus_id)
        except SQLAlchemyError as exc:
            logger.exception("Seat map write failed", extra={"bus_id": bus_id})
            raise StorageFailure("Failed to update seat map") from exc
        if pruned:
            EXPIRED_LOCKS_PRUNED.labels(path="write").inc(pruned)
        return result, to_snapshot(bus)


seat_map_store = SeatMapStore()
