from typing import List

from fastapi import APIRouter, status

from busbook.schemas.booking import BookingCreate, BookingOut, CancelBookingResponse
from busbook.services.bookings import booking_service

router = APIRouter()


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
async def create_booking(req: BookingCreate):
    """Record a completed purchase for seats already confirmed on the bus.
    Repeating the same transactionId returns the original booking."""
    return await booking_service.create_booking(req)


@router.get("", response_model=List[BookingOut])
async def list_bookings():
    return await booking_service.list_bookings()


@router.get("/user/{user_id}", response_model=List[BookingOut])
async def list_user_bookings(user_id: str):
    return await booking_service.list_user_bookings(user_id)


@router.get("/bus/{bus_id}", response_model=List[BookingOut])
async def list_bus_bookings(bus_id: int):
    """Confirmed bookings for one bus (admin view)."""
    return await booking_service.list_bus_bookings(bus_id)


@router.delete("/{booking_id}", response_model=CancelBookingResponse)
async def cancel_booking(booking_id: int):
    booking = await booking_service.cancel_booking(booking_id)
    return CancelBookingResponse(message="Booking cancelled", booking=booking)
