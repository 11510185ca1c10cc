from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BusCreate(CamelModel):
    bus_name: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="Travel date, YYYY-MM-DD")
    departure_time: str = Field(..., min_length=1)
    arrival_time: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    total_seats: int = Field(..., gt=0)


class SeatLockOut(CamelModel):
    seat_number: int
    locked_at: datetime
    expires_at: datetime
    passenger_name: Optional[str] = None
    passenger_email: Optional[str] = None


class BusOut(CamelModel):
    id: int
    bus_name: str
    source: str
    destination: str
    date: str
    departure_time: str
    arrival_time: str
    price: float
    total_seats: int
    seats_booked: List[int]
    seat_locks: List[SeatLockOut]
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SeatLockRequest(CamelModel):
    seats: List[int] = Field(..., min_length=1)
    passenger_name: str = Field(..., min_length=1)
    passenger_email: str = Field(..., min_length=3)


class SeatLockResponse(CamelModel):
    message: str
    expires_at: datetime


class SeatUnlockRequest(CamelModel):
    seats: List[int] = Field(..., min_length=1)


class ConfirmSeatsRequest(CamelModel):
    seats: List[int] = Field(..., min_length=1)
    # binds the confirmation to the passenger holding the locks
    passenger_email: Optional[str] = None


class ConfirmSeatsResponse(CamelModel):
    message: str
    bus: BusOut


class LocksRemovedResponse(CamelModel):
    message: str
    removed: int


class CleanupResponse(CamelModel):
    success: bool
    message: str
    deleted_count: int
