from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.api.deps import get_actor
from radioplan.core.database import get_db
from radioplan.core.logging_config import get_logger
from radioplan.models import Reservation, ReservationStatus
from radioplan.schemas.reservation import (
    ConvertReservationResponse,
    ExpirySweepResponse,
    ReservationCancel,
    ReservationConvert,
    ReservationCreate,
    ReservationDraft,
    ReservationListResponse,
    ReservationResponse,
)
from radioplan.services import reservation_ledger, scheduling
from radioplan.services.expiry_sweep import run_expiry_sweep

logger = get_logger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


def _reservation_to_response(r: Reservation) -> ReservationResponse:
    return ReservationResponse(
        id=r.id,
        reservation_number=r.reservation_number,
        customer_id=r.customer_id,
        product_id=r.product_id,
        window_id=r.window_id,
        slot_id=r.slot_id,
        requested_date=r.requested_date,
        requested_activity=r.requested_activity,
        activity_unit=r.activity_unit,
        number_of_doses=r.number_of_doses,
        estimated_minutes=r.estimated_minutes,
        status=r.status.value,
        notes=r.notes,
        expires_at=r.expires_at,
        converted_order_id=r.converted_order_id,
        created_at=r.created_at,
    )


@router.post("", response_model=ReservationResponse, status_code=201)
async def post_reservation(
    data: ReservationCreate,
    db: AsyncSession = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
):
    reservation = await scheduling.create_reservation(db, data, actor=actor)
    return _reservation_to_response(reservation)


@router.get("", response_model=ReservationListResponse)
async def get_reservations(
    status: Optional[ReservationStatus] = None,
    customer_id: Optional[int] = None,
    product_id: Optional[int] = None,
    window_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    items = await reservation_ledger.list_reservations(
        db,
        status=status,
        customer_id=customer_id,
        product_id=product_id,
        window_id=window_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return ReservationListResponse(items=[_reservation_to_response(r) for r in items])


@router.post("/expire", response_model=ExpirySweepResponse)
async def post_expire():
    """Разовый проход истечения (то же, что делает фоновая задача)."""
    return await run_expiry_sweep()


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(reservation_id: int, db: AsyncSession = Depends(get_db)):
    reservation = await reservation_ledger.get_reservation(db, reservation_id)
    return _reservation_to_response(reservation)


@router.post("/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation(
    reservation_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
):
    reservation = await scheduling.confirm_reservation(db, reservation_id, actor=actor)
    return _reservation_to_response(reservation)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int,
    data: Optional[ReservationCancel] = None,
    db: AsyncSession = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
):
    reason = data.reason if data else None
    reservation = await scheduling.cancel_reservation(db, reservation_id, reason=reason, actor=actor)
    return _reservation_to_response(reservation)


@router.post("/{reservation_id}/convert", response_model=ConvertReservationResponse)
async def convert_reservation(
    reservation_id: int,
    data: Optional[ReservationConvert] = None,
    db: AsyncSession = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
):
    reservation, order = await scheduling.convert_reservation(db, reservation_id, data, actor=actor)
    return ConvertReservationResponse(
        reservation=_reservation_to_response(reservation),
        created_order_id=order.id,
    )


@router.get("/{reservation_id}/copy", response_model=ReservationDraft)
async def copy_reservation(reservation_id: int, db: AsyncSession = Depends(get_db)):
    return await scheduling.copy_reservation_as_draft(db, reservation_id)
