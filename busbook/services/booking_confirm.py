import logging
from datetime import datetime
from typing import List, Optional

from busbook.config import settings
from busbook.metrics import BOOKING_CONFIRMATIONS
from busbook.models.models import Bus
from busbook.schemas.bus import BusOut
from busbook.services.errors import BookingError, LockMissingError, SeatValidationError
from busbook.services.seat_map import SeatMapStore, check_seat_numbers, seat_map_store

logger = logging.getLogger(__name__)


def _holds(lock: dict, seat: int, holder_email: Optional[str]) -> bool:
    if lock["seatNumber"] != seat:
        return False
    if holder_email is None:
        return True
    return (lock.get("passengerEmail") or "").lower() == holder_email.lower()


async def confirm_booking(bus_id: int, seats: List[int], holder_email: Optional[str] = None, store: Optional[SeatMapStore] = None) -> BusOut:
    """Move locked seats to ``seats_booked`` and drop their locks in one write.

    Every requested seat needs a live lock; when ``holder_email`` is given the
    lock must also belong to that passenger.
    """
    store = store or seat_map_store

    def _apply(bus: Bus, now: datetime) -> None:
        if settings.CONFIRM_REQUIRES_HOLDER and not holder_email:
            raise SeatValidationError("passengerEmail is required to confirm seats")
        check_seat_numbers(seats, bus.total_seats)
        locks = list(bus.seat_locks or [])
        missing = [s for s in seats if not any(_holds(lock, s, holder_email) for lock in locks)]
        if missing:
            raise LockMissingError(f"Some seats were not locked: {missing}")
        requested = set(seats)
        # a booked seat never carries a live lock, so no duplicate check is needed
        bus.seats_booked = list(bus.seats_booked or []) + list(seats)
        bus.seat_locks = [lock for lock in locks if lock["seatNumber"] not in requested]

    try:
        _, snapshot = await store.mutate(bus_id, _apply)
    except LockMissingError:
        BOOKING_CONFIRMATIONS.labels(result="lock_missing").inc()
        raise
    except BookingError:
        BOOKING_CONFIRMATIONS.labels(result="failed").inc()
        raise
    BOOKING_CONFIRMATIONS.labels(result="confirmed").inc()
    logger.info("Seats confirmed", extra={"bus_id": bus_id, "seats": seats})
    return snapshot
