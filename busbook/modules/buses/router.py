from typing import List, Optional

from fastapi import APIRouter, status

from busbook.config import settings
from busbook.schemas.bus import (
    BusCreate,
    BusOut,
    CleanupResponse,
    ConfirmSeatsRequest,
    ConfirmSeatsResponse,
    LocksRemovedResponse,
    SeatLockRequest,
    SeatLockResponse,
    SeatUnlockRequest,
)
from busbook.services.booking_confirm import confirm_booking
from busbook.services.bus_cleanup import remove_expired_buses
from busbook.services.seat_lock import lock_seats, release_expired_locks, unlock_seats
from busbook.services.seat_map import seat_map_store

router = APIRouter()


@router.get("", response_model=List[BusOut])
async def list_buses(source: Optional[str] = None, destination: Optional[str] = None, date: Optional[str] = None):
    """Search buses by route and travel date; every filter is optional."""
    return await seat_map_store.list_buses(source=source, destination=destination, date=date)


@router.post("", response_model=BusOut, status_code=status.HTTP_201_CREATED)
async def create_bus(req: BusCreate):
    return await seat_map_store.create_bus(req)


@router.get("/{bus_id}", response_model=BusOut)
async def get_bus(bus_id: int):
    """Fetch a single bus with fresh lock state."""
    return await seat_map_store.get_bus(bus_id)


@router.post("/lock/{bus_id}", response_model=SeatLockResponse)
async def lock_seats_endpoint(bus_id: int, req: SeatLockRequest):
    """Hold seats for the lock TTL while the passenger pays."""
    expires_at = await lock_seats(bus_id, req.seats, req.passenger_name, req.passenger_email)
    return SeatLockResponse(message=f"Seats locked for {settings.SEAT_LOCK_TTL_SECONDS // 60} minutes", expires_at=expires_at)


@router.post("/unlock/{bus_id}", response_model=LocksRemovedResponse)
async def unlock_seats_endpoint(bus_id: int, req: SeatUnlockRequest):
    removed = await unlock_seats(bus_id, req.seats)
    return LocksRemovedResponse(message="Seat locks released", removed=removed)


@router.post("/confirm/{bus_id}", response_model=ConfirmSeatsResponse)
async def confirm_booking_endpoint(bus_id: int, req: ConfirmSeatsRequest):
    """Final confirmation after payment: locked seats become booked."""
    bus = await confirm_booking(bus_id, req.seats, holder_email=req.passenger_email)
    return ConfirmSeatsResponse(message="Booking confirmed", bus=bus)


@router.patch("/release-locks/{bus_id}", response_model=LocksRemovedResponse)
async def release_locks_endpoint(bus_id: int):
    removed = await release_expired_locks(bus_id)
    return LocksRemovedResponse(message="Expired locks released", removed=removed)


@router.delete("/cleanup/expired", response_model=CleanupResponse)
async def cleanup_expired_buses():
    """Operator-triggered removal of buses whose travel date has passed."""
    deleted = await remove_expired_buses(trigger="manual")
    return CleanupResponse(success=True, message=f"Removed {deleted} expired buses", deleted_count=deleted)
