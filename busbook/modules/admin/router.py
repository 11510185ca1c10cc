from fastapi import APIRouter

from busbook.schemas.booking import ReconciliationReport
from busbook.services.bookings import booking_service

router = APIRouter()


@router.get("/")
async def admin_root():
    return {"module": "admin", "status": "ok"}


@router.get("/reports/reconciliation", response_model=ReconciliationReport)
async def reconciliation_report():
    """Seats booked on a bus without a confirmed booking record behind them."""
    return await booking_service.reconcile()
