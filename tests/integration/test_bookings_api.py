import asyncio
from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from busbook.schemas.booking import BookingCreate
from busbook.services import bookings, bus_cleanup
from busbook.services.audit import log_audit
from busbook.services.bookings import booking_service
from busbook.services.errors import SeatConflictError


@pytest.fixture
async def confirmed_bus(client, bus_payload, clock):
    """A bus where seats 1 and 2 are locked and confirmed for Alice."""
    resp = await client.post("/buses", json=bus_payload(totalSeats=10))
    bus = resp.json()
    await client.post(f"/buses/lock/{bus['id']}", json={"seats": [1, 2], "passengerName": "Alice", "passengerEmail": "alice@example.com"})
    resp = await client.post(f"/buses/confirm/{bus['id']}", json={"seats": [1, 2], "passengerEmail": "alice@example.com"})
    assert resp.status_code == 200, resp.text
    return resp.json()["bus"]


def _booking_body(bus_id, **overrides):
    body = {
        "busId": bus_id,
        "userId": "user-1",
        "passengerName": "Alice",
        "passengerEmail": "alice@example.com",
        "seats": [1, 2],
        "totalPrice": 900.0,
        "transactionId": "TXN_1",
    }
    body.update(overrides)
    return body


async def test_create_booking_snapshots_bus(client, confirmed_bus):
    resp = await client.post("/bookings", json=_booking_body(confirmed_bus["id"]))
    assert resp.status_code == 201, resp.text
    booking = resp.json()
    assert booking["status"] == "confirmed"
    assert booking["seats"] == [1, 2]
    assert booking["busDetails"] == {
        "busName": "Express 101",
        "source": "Pune",
        "destination": "Mumbai",
        "date": "2099-12-31",
        "departureTime": "08:00",
        "arrivalTime": "11:30",
    }

    by_bus = (await client.get(f"/bookings/bus/{confirmed_bus['id']}")).json()
    by_user = (await client.get("/bookings/user/user-1")).json()
    assert [b["id"] for b in by_bus] == [booking["id"]]
    assert [b["id"] for b in by_user] == [booking["id"]]
    assert (await client.get("/bookings/user/someone-else")).json() == []


async def test_retried_transaction_returns_same_booking(client, confirmed_bus):
    first = await client.post("/bookings", json=_booking_body(confirmed_bus["id"]))
    second = await client.post("/bookings", json=_booking_body(confirmed_bus["id"]))
    assert second.json()["id"] == first.json()["id"]
    assert len((await client.get("/bookings")).json()) == 1

    reused = await client.post("/bookings", json=_booking_body(confirmed_bus["id"], seats=[1]))
    assert reused.status_code == 400


async def test_booking_requires_confirmed_seats(client, confirmed_bus):
    resp = await client.post("/bookings", json=_booking_body(confirmed_bus["id"], seats=[3], transactionId="TXN_2"))
    assert resp.status_code == 400
    assert "not confirmed" in resp.json()["error"]

    resp = await client.post("/bookings", json=_booking_body(999, transactionId="TXN_3"))
    assert resp.status_code == 404


async def test_seats_cannot_be_booked_twice(client, confirmed_bus):
    await client.post("/bookings", json=_booking_body(confirmed_bus["id"]))
    resp = await client.post("/bookings", json=_booking_body(confirmed_bus["id"], seats=[2], transactionId="TXN_2"))
    assert resp.status_code == 400
    assert "another booking" in resp.json()["error"]


async def test_cancel_releases_seats(client, confirmed_bus):
    booking = (await client.post("/bookings", json=_booking_body(confirmed_bus["id"]))).json()

    resp = await client.delete(f"/bookings/{booking['id']}")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Booking cancelled"
    assert resp.json()["booking"]["status"] == "cancelled"

    bus = (await client.get(f"/buses/{confirmed_bus['id']}")).json()
    assert bus["seatsBooked"] == []
    assert (await client.get(f"/bookings/bus/{confirmed_bus['id']}")).json() == []

    lock = await client.post(f"/buses/lock/{confirmed_bus['id']}", json={"seats": [1], "passengerName": "Bob", "passengerEmail": "bob@example.com"})
    assert lock.status_code == 200

    again = await client.delete(f"/bookings/{booking['id']}")
    assert again.status_code == 200
    assert again.json()["booking"]["status"] == "cancelled"


async def test_cancel_missing_booking_is_404(client):
    resp = await client.delete("/bookings/4242")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Booking not found"}


async def test_reconciliation_reports_orphaned_seats(client, confirmed_bus):
    report = (await client.get("/admin/reports/reconciliation")).json()
    assert report == {"busesChecked": 1, "orphaned": [{"busId": confirmed_bus["id"], "orphanedSeats": [1, 2]}]}

    await client.post("/bookings", json=_booking_body(confirmed_bus["id"], seats=[1]))
    report = (await client.get("/admin/reports/reconciliation")).json()
    assert report["orphaned"] == [{"busId": confirmed_bus["id"], "orphanedSeats": [2]}]


async def test_concurrent_bookings_for_one_seat_commit_once(client, confirmed_bus):
    results = await asyncio.gather(
        booking_service.create_booking(BookingCreate.model_validate(_booking_body(confirmed_bus["id"], seats=[1], transactionId="T1"))),
        booking_service.create_booking(BookingCreate.model_validate(_booking_body(confirmed_bus["id"], seats=[1], transactionId="T2"))),
        return_exceptions=True,
    )

    created = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(created) == 1
    assert len(failed) == 1 and isinstance(failed[0], SeatConflictError)
    assert len(await booking_service.list_bus_bookings(confirmed_bus["id"])) == 1


async def test_rival_booking_between_check_and_insert_is_caught(client, confirmed_bus, monkeypatch):
    covered_seats = bookings._covered_seats
    raced = False

    async def racing_covered_seats(session, bus_id):
        nonlocal raced
        seen = await covered_seats(session, bus_id)
        if not raced:
            raced = True
            # a rival booking for seat 2 commits after our check and before our insert
            await booking_service.create_booking(BookingCreate.model_validate(_booking_body(bus_id, seats=[2], transactionId="TXN_RIVAL")))
        return seen

    monkeypatch.setattr(bookings, "_covered_seats", racing_covered_seats)
    with pytest.raises(SeatConflictError, match="another booking"):
        await booking_service.create_booking(BookingCreate.model_validate(_booking_body(confirmed_bus["id"])))

    confirmed = await booking_service.list_bus_bookings(confirmed_bus["id"])
    assert [b.transaction_id for b in confirmed] == ["TXN_RIVAL"]


async def test_failed_cancel_keeps_booking_and_seats(client, confirmed_bus, monkeypatch):
    booking = (await client.post("/bookings", json=_booking_body(confirmed_bus["id"]))).json()

    async def failing_audit(*args, **kwargs):
        raise SQLAlchemyError("audit table unavailable")

    monkeypatch.setattr(bookings, "log_audit", failing_audit)
    resp = await client.delete(f"/bookings/{booking['id']}")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to cancel booking"}
    assert [b["id"] for b in (await client.get(f"/bookings/bus/{confirmed_bus['id']}")).json()] == [booking["id"]]
    assert (await client.get(f"/buses/{confirmed_bus['id']}")).json()["seatsBooked"] == [1, 2]

    # retrying once the audit write works releases the seats
    monkeypatch.setattr(bookings, "log_audit", log_audit)
    resp = await client.delete(f"/bookings/{booking['id']}")
    assert resp.status_code == 200
    assert (await client.get(f"/buses/{confirmed_bus['id']}")).json()["seatsBooked"] == []


async def test_cancel_after_bus_removed(client, confirmed_bus, monkeypatch):
    booking = (await client.post("/bookings", json=_booking_body(confirmed_bus["id"]))).json()
    monkeypatch.setattr(bus_cleanup, "_today", lambda: date(2100, 1, 1))
    await client.delete("/buses/cleanup/expired")

    resp = await client.delete(f"/bookings/{booking['id']}")
    assert resp.status_code == 200
    assert resp.json()["booking"]["status"] == "cancelled"
    assert resp.json()["booking"]["busDetails"]["busName"] == "Express 101"
