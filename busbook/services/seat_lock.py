import logging
import time
from datetime import datetime
from typing import List, Optional

from busbook.metrics import EXPIRED_LOCKS_PRUNED, SEAT_LOCK_ATTEMPTS, SEAT_LOCK_LATENCY, SEAT_UNLOCKS
from busbook.models.models import Bus
from busbook.services.errors import BookingError, SeatConflictError
from busbook.services.seat_map import (
    SeatMapStore,
    check_seat_numbers,
    lock_ttl,
    make_lock,
    prune_expired,
    seat_map_store,
)

logger = logging.getLogger(__name__)


def unavailable_seats(bus: Bus, seats: List[int]) -> List[int]:
    """Seats that are booked or carry a lock. Callers prune expired locks first."""
    locked = {lock["seatNumber"] for lock in bus.seat_locks or []}
    booked = set(bus.seats_booked or [])
    return [s for s in seats if s in booked or s in locked]


async def lock_seats(bus_id: int, seats: List[int], holder_name: str, holder_email: str, store: Optional[SeatMapStore] = None) -> datetime:
    """Hold ``seats`` for the lock TTL. Returns the expiry of the new locks.

    A seat held by a live lock is rejected even when the same holder asks again.
    """
    store = store or seat_map_store
    start = time.perf_counter()

    def _apply(bus: Bus, now: datetime) -> datetime:
        check_seat_numbers(seats, bus.total_seats)
        taken = unavailable_seats(bus, seats)
        if taken:
            raise SeatConflictError(f"Seat already locked or booked: {taken}")
        bus.seat_locks = list(bus.seat_locks or []) + [make_lock(s, now, holder_name, holder_email) for s in seats]
        return now + lock_ttl()

    try:
        expires_at, _ = await store.mutate(bus_id, _apply)
    except SeatConflictError:
        SEAT_LOCK_ATTEMPTS.labels(result="conflict").inc()
        raise
    except BookingError:
        SEAT_LOCK_ATTEMPTS.labels(result="failed").inc()
        raise
    SEAT_LOCK_ATTEMPTS.labels(result="success").inc()
    SEAT_LOCK_LATENCY.observe(time.perf_counter() - start)
    logger.info("Seats locked", extra={"bus_id": bus_id, "seats": seats, "expires_at": expires_at.isoformat()})
    return expires_at


async def unlock_seats(bus_id: int, seats: List[int], store: Optional[SeatMapStore] = None) -> int:
    """Remove every lock entry for ``seats``, expired or not, whoever holds it.
    Returns the number of entries removed; unlocking a free seat is a no-op."""
    store = store or seat_map_store

    def _apply(bus: Bus, now: datetime) -> int:
        check_seat_numbers(seats, bus.total_seats)
        requested = set(seats)
        locks = list(bus.seat_locks or [])
        kept = [lock for lock in locks if lock["seatNumber"] not in requested]
        removed = len(locks) - len(kept)
        if removed:
            bus.seat_locks = kept
        return removed

    removed, _ = await store.mutate(bus_id, _apply, prune=False)
    SEAT_UNLOCKS.inc(removed)
    logger.info("Seat locks released", extra={"bus_id": bus_id, "seats": seats, "removed": removed})
    return removed


async def release_expired_locks(bus_id: int, store: Optional[SeatMapStore] = None) -> int:
    """Explicit sweep of locks with ``expiresAt <= now``; returns count removed."""
    store = store or seat_map_store
    removed, _ = await store.mutate(bus_id, prune_expired, prune=False)
    if removed:
        EXPIRED_LOCKS_PRUNED.labels(path="sweep").inc(removed)
    return removed
