from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ScheduleIssue(BaseModel):
    """Почему предложение нельзя выполнить как есть (код ошибки INFEASIBLE_SCHEDULE)."""
    code: str = "INFEASIBLE_SCHEDULE"
    reason: str
    message: str


class BackwardScheduleOut(BaseModel):
    synthesis_start: datetime
    qc_start: datetime
    packaging_start: datetime
    dispatch_time: datetime
    delivery_time: datetime


class SuggestedOrder(BaseModel):
    order_id: int
    order_number: str
    customer_id: int
    requested_activity: float
    delivery_time: datetime
    # Доля активности, доживающая до доставки: exp(-λ·Δt); чем позже доставка, тем меньше
    decay_factor: float
    production_activity: float


class BatchSuggestion(BaseModel):
    product_id: int
    product_name: str = ""
    orders: List[SuggestedOrder]
    order_ids: List[int]
    order_count: int
    requested_activity_total: float
    total_activity: float
    activity_unit: str = "mCi"
    anchor_time: datetime
    earliest_delivery: datetime
    latest_delivery: datetime
    suggested_start_time: datetime
    suggested_end_time: datetime
    production_minutes: int
    schedule: BackwardScheduleOut
    window_id: Optional[int] = None
    feasible: bool = True
    issues: List[ScheduleIssue] = []


class SuggestBatchesRequest(BaseModel):
    date: date


class AcceptSuggestionRequest(BaseModel):
    product_id: int
    order_ids: List[int] = Field(..., min_length=1)
    suggested_start_time: datetime
    suggested_end_time: datetime
    total_activity: float = Field(..., gt=0)
    window_id: Optional[int] = None


class AcceptSuggestionResponse(BaseModel):
    batch_id: int
    batch_number: str
    window_id: int
    committed_minutes: int


class PlannerOrder(BaseModel):
    order_id: int
    order_number: str
    product_id: int
    customer_id: int
    requested_activity: float
    activity_unit: str
    delivery_time_start: datetime
    delivery_time_end: datetime
    status: str
    schedule: BackwardScheduleOut
