from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ReservationCreate(BaseModel):
    """Запрос резерва ёмкости (портал заказчика или стол заказов)."""
    customer_id: int
    product_id: int
    requested_date: date
    requested_activity: float = Field(..., gt=0)
    activity_unit: str = "mCi"
    number_of_doses: int = Field(default=1, ge=1)
    notes: Optional[str] = None
    # Не задано — берётся самое раннее окно даты с достаточным запасом минут
    window_id: Optional[int] = None
    # Слот доставки внутри окна; без window_id окно берётся из слота
    slot_id: Optional[int] = None
    expires_at: Optional[datetime] = None


class ReservationCancel(BaseModel):
    reason: Optional[str] = None


class ReservationConvert(BaseModel):
    delivery_time_start: Optional[datetime] = None
    delivery_time_end: Optional[datetime] = None
    special_notes: Optional[str] = None


class ReservationDraft(BaseModel):
    """Заготовка нового резерва по образцу существующего: дату и окно выбирают заново."""
    customer_id: int
    product_id: int
    requested_activity: float
    activity_unit: str
    number_of_doses: int
    notes: Optional[str] = None
    requested_date: Optional[date] = None
    window_id: Optional[int] = None
    source_reservation_id: int
    source_reservation_number: str


class ReservationResponse(BaseModel):
    id: int
    reservation_number: str
    customer_id: int
    product_id: int
    window_id: Optional[int] = None
    slot_id: Optional[int] = None
    requested_date: date
    requested_activity: float
    activity_unit: str
    number_of_doses: int
    estimated_minutes: int
    status: str
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    converted_order_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConvertReservationResponse(BaseModel):
    reservation: ReservationResponse
    created_order_id: int


class ExpirySweepResponse(BaseModel):
    checked: int
    expired: int
    skipped: int
    failed: int


class ReservationListResponse(BaseModel):
    items: List[ReservationResponse]
