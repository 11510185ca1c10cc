import logging
from typing import List, Optional

from sqlalchemy import select as sa_select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from busbook.db.session import async_session
from busbook.metrics import BOOKINGS_CANCELLED, BOOKINGS_CREATED
from busbook.models.models import Booking, Bus
from busbook.schemas.booking import BookingCreate, BookingOut, BusDetails, OrphanedSeats, ReconciliationReport
from busbook.services.audit import log_audit
from busbook.services.errors import NotFoundError, SeatConflictError, SeatValidationError, StorageFailure
from busbook.services.seat_map import SeatMapStore, check_seat_numbers, seat_map_store

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
CANCELLED = "cancelled"


def to_booking_out(booking: Booking) -> BookingOut:
    return BookingOut(
        id=booking.id,
        bus_id=booking.bus_id,
        user_id=booking.user_id,
        passenger_name=booking.passenger_name,
        passenger_email=booking.passenger_email,
        seats=list(booking.seats),
        total_price=float(booking.total_price),
        transaction_id=booking.transaction_id,
        bus_details=BusDetails.model_validate(booking.bus_details),
        status=booking.status,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


def _bus_details(bus: Bus) -> dict:
    return {
        "busName": bus.bus_name,
        "source": bus.source,
        "destination": bus.destination,
        "date": bus.date,
        "departureTime": bus.departure_time,
        "arrivalTime": bus.arrival_time,
    }


async def _find_by_transaction(session: AsyncSession, transaction_id: str) -> Optional[Booking]:
    res = await session.execute(sa_select(Booking).where(Booking.transaction_id == transaction_id))
    return res.scalars().first()


async def _covered_seats(session: AsyncSession, bus_id: int) -> set:
    res = await session.execute(sa_select(Booking.seats).where(Booking.bus_id == bus_id, Booking.status == CONFIRMED))
    covered = set()
    for seats in res.scalars().all():
        covered.update(seats)
    return covered


class BookingService:
    """Audit records of completed purchases.

    A booking is written after the seats were confirmed on the bus; it only
    references the bus by id and keeps a snapshot of the bus details, so it
    outlives the retention sweep.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None, store: Optional[SeatMapStore] = None):
        self.session_factory = session_factory or async_session
        self.store = store or seat_map_store

    async def create_booking(self, data: BookingCreate) -> BookingOut:
        """Insert the booking and re-save the bus row in one transaction.

        The bus row is read before the coverage check and written back with a
        version check, so two requests claiming the same seat cannot both
        commit: the later one is replayed and sees the other booking.
        """

        async def _insert(session: AsyncSession):
            if data.transaction_id:
                existing = await _find_by_transaction(session, data.transaction_id)
                if existing is not None:
                    return existing, False
            bus = await self.store.load(session, data.bus_id)
            check_seat_numbers(data.seats, bus.total_seats)
            unconfirmed = [s for s in data.seats if s not in set(bus.seats_booked or [])]
            if unconfirmed:
                raise SeatValidationError(f"Seats are not confirmed on this bus: {unconfirmed}")
            taken = sorted(set(data.seats) & await _covered_seats(session, bus.id))
            if taken:
                raise SeatConflictError(f"Seats already belong to another booking: {taken}")

            booking = Booking(
                bus_id=bus.id,
                user_id=data.user_id,
                passenger_name=data.passenger_name,
                passenger_email=data.passenger_email,
                seats=list(data.seats),
                total_price=data.total_price,
                transaction_id=data.transaction_id,
                bus_details=_bus_details(bus),
                status=CONFIRMED,
            )
            session.add(booking)
            flag_modified(bus, "seats_booked")
            return booking, True

        try:
            booking, created = await self.store.run_versioned(_insert, data.bus_id)
        except IntegrityError:
            # lost a race on the transaction id: the other request wrote it first
            existing = await self._by_transaction(data.transaction_id) if data.transaction_id else None
            if existing is None:
                raise StorageFailure("Failed to create booking")
            return self._replay(existing, data)
        except SQLAlchemyError as exc:
            logger.exception("Failed to create booking", extra={"bus_id": data.bus_id})
            raise StorageFailure("Failed to create booking") from exc
        if not created:
            return self._replay(booking, data)

        BOOKINGS_CREATED.inc()
        logger.info("Booking created", extra={"booking_id": booking.id, "bus_id": booking.bus_id, "user_id": booking.user_id})
        return to_booking_out(booking)

    async def _by_transaction(self, transaction_id: str) -> Optional[Booking]:
        async with self.session_factory() as session:
            try:
                return await _find_by_transaction(session, transaction_id)
            except SQLAlchemyError as exc:
                raise StorageFailure("Failed to create booking") from exc

    def _replay(self, existing: Booking, data: BookingCreate) -> BookingOut:
        if existing.bus_id != data.bus_id or sorted(existing.seats) != sorted(data.seats):
            raise SeatConflictError("transactionId already used for a different booking")
        logger.info("Booking replayed for transaction", extra={"booking_id": existing.id, "transaction_id": existing.transaction_id})
        return to_booking_out(existing)

    async def _list(self, *criteria) -> List[BookingOut]:
        stmt = sa_select(Booking).where(*criteria).order_by(Booking.created_at.desc(), Booking.id.desc())
        async with self.session_factory() as session:
            try:
                res = await session.execute(stmt)
            except SQLAlchemyError as exc:
                raise StorageFailure("Failed to fetch bookings") from exc
            return [to_booking_out(b) for b in res.scalars().all()]

    async def list_bookings(self) -> List[BookingOut]:
        return await self._list()

    async def list_user_bookings(self, user_id: str) -> List[BookingOut]:
        return await self._list(Booking.user_id == user_id, Booking.status == CONFIRMED)

    async def list_bus_bookings(self, bus_id: int) -> List[BookingOut]:
        return await self._list(Booking.bus_id == bus_id, Booking.status == CONFIRMED)

    async def cancel_booking(self, booking_id: int, actor_id: Optional[str] = None) -> BookingOut:
        """Mark the booking cancelled and release its seats on the bus.

        Both changes commit together, so a failed cancel leaves the booking
        confirmed with its seats still booked and can simply be retried.
        Cancelling an already cancelled booking changes nothing. If the bus has
        already been swept there are no seats left to release.
        """

        async def _cancel(session: AsyncSession):
            booking = await session.get(Booking, booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            if booking.status == CANCELLED:
                return booking, None
            released = 0
            bus = await session.get(Bus, booking.bus_id)
            if bus is None:
                logger.info("Bus already removed, no seats to release", extra={"booking_id": booking_id, "bus_id": booking.bus_id})
            else:
                seats = set(booking.seats)
                kept = [s for s in bus.seats_booked or [] if s not in seats]
                released = len(bus.seats_booked or []) - len(kept)
                if released:
                    bus.seats_booked = kept
            booking.status = CANCELLED
            await log_audit(session, action="cancel_booking", actor_id=actor_id, object_type="booking", object_id=str(booking_id), detail={"bus_id": booking.bus_id, "seats": booking.seats})
            return booking, released

        try:
            booking, released = await self.store.run_versioned(_cancel)
        except SQLAlchemyError as exc:
            logger.exception("Failed to cancel booking", extra={"booking_id": booking_id})
            raise StorageFailure("Failed to cancel booking") from exc
        if released is not None:
            BOOKINGS_CANCELLED.inc()
            logger.info("Booking cancelled", extra={"booking_id": booking_id, "bus_id": booking.bus_id, "released": released})
        return to_booking_out(booking)

    async def reconcile(self) -> ReconciliationReport:
        """Seats committed on a bus that no confirmed booking accounts for, e.g.
        a crash between seat confirmation and booking creation."""
        async with self.session_factory() as session:
            try:
                buses = (await session.execute(sa_select(Bus).order_by(Bus.id))).scalars().all()
                rows = (await session.execute(sa_select(Booking.bus_id, Booking.seats).where(Booking.status == CONFIRMED))).all()
            except SQLAlchemyError as exc:
                raise StorageFailure("Failed to build reconciliation report") from exc
        covered = {}
        for bus_id, seats in rows:
            covered.setdefault(bus_id, set()).update(seats)
        orphaned = []
        for bus in buses:
            missing = sorted(set(bus.seats_booked or []) - covered.get(bus.id, set()))
            if missing:
                orphaned.append(OrphanedSeats(bus_id=bus.id, orphaned_seats=missing))
        return ReconciliationReport(buses_checked=len(buses), orphaned=orphaned)


booking_service = BookingService()
