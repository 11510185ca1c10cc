from datetime import datetime
from typing import List, Optional

from pydantic import Field

from busbook.schemas.bus import CamelModel


class BookingCreate(CamelModel):
    bus_id: int
    user_id: str = Field(..., min_length=1)
    passenger_name: str = Field(..., min_length=1)
    passenger_email: str = Field(..., min_length=3)
    seats: List[int] = Field(..., min_length=1)
    total_price: float = Field(..., ge=0)
    transaction_id: Optional[str] = None


class BusDetails(CamelModel):
    bus_name: str
    source: str
    destination: str
    date: str
    departure_time: str
    arrival_time: str


class BookingOut(CamelModel):
    id: int
    bus_id: int
    user_id: str
    passenger_name: str
    passenger_email: str
    seats: List[int]
    total_price: float
    transaction_id: Optional[str] = None
    bus_details: BusDetails
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CancelBookingResponse(CamelModel):
    message: str
    booking: BookingOut


class OrphanedSeats(CamelModel):
    bus_id: int
    orphaned_seats: List[int]


class ReconciliationReport(CamelModel):
    buses_checked: int
    orphaned: List[OrphanedSeats]
