from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    JSON,
    Index,
)
from sqlalchemy.sql import func

from busbook.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Bus(Base):
    """One row per bus departure. Seat state is embedded in the row:
    ``seats_booked`` holds committed seat numbers and ``seat_locks`` holds the
    temporary lock sub-documents. Every UPDATE is guarded by ``version``."""

    __tablename__ = "buses"
    id = Column(Integer, primary_key=True)
    bus_name = Column(String(255), nullable=False)
    source = Column(String(128), nullable=False, index=True)
    destination = Column(String(128), nullable=False, index=True)
    # travel date as YYYY-MM-DD, compared as a string by the cleanup sweep
    date = Column(String(10), nullable=False, index=True)
    departure_time = Column(String(16), nullable=False)
    arrival_time = Column(String(16), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total_seats = Column(Integer, nullable=False)
    seats_booked = Column(JSON, nullable=False, default=list)
    seat_locks = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (Index("ix_bus_route_date", "source", "destination", "date"),)


class Booking(Base):
    __tablename__ = "bookings"
    id = Column(Integer, primary_key=True)
    # plain identifiers, no foreign keys: buses are swept after travel
    bus_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    passenger_name = Column(String(255), nullable=False)
    passenger_email = Column(String(255), nullable=False)
    seats = Column(JSON, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    transaction_id = Column(String(128), nullable=True, unique=True)
    bus_details = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="confirmed", index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    actor_id = Column(String(64), nullable=True, index=True)
    action = Column(String(255), nullable=False)
    object_type = Column(String(128), nullable=True)
    object_id = Column(String(128), nullable=True)
    detail = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
