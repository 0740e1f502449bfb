from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field


class WindowDraft(BaseModel):
    """Окно до сохранения (результат генератора или ручного ввода)."""
    name: str = ""
    date: date
    start_time: datetime
    end_time: datetime
    capacity_minutes: int = Field(..., gt=0)


class WindowCreate(WindowDraft):
    allow_overlap: bool = False


class WindowUpdate(BaseModel):
    name: Optional[str] = None
    capacity_minutes: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


class WindowGenerateRequest(BaseModel):
    start_date: date
    end_date: date
    daily_start_time: time
    daily_end_time: time
    capacity_minutes: int = Field(..., gt=0)
    exclude_weekends: bool = False
    allow_overlap: bool = False


class WindowUtilization(BaseModel):
    committed_minutes: int
    available_minutes: int
    utilization_percent: int
    status: str


class WindowResponse(BaseModel):
    id: int
    name: str
    date: date
    start_time: datetime
    end_time: datetime
    capacity_minutes: int
    used_minutes: int
    reserved_minutes: int
    committed_minutes: int
    available_minutes: int
    utilization_percent: int
    status: str
    is_active: bool


class GenerateWindowsResponse(BaseModel):
    created: int
    skipped: int
    windows: List[WindowResponse]


class CapacitySummary(BaseModel):
    total_capacity_minutes: int = 0
    total_reserved_minutes: int = 0
    total_used_minutes: int = 0
    total_available_minutes: int = 0
    window_count: int = 0
    full_windows: int = 0
    near_full_windows: int = 0


class CapacityCalendarResponse(BaseModel):
    windows: List[WindowResponse]
    summary: CapacitySummary


class CapacityCheckRequest(BaseModel):
    window_id: int
    requested_minutes: int = Field(..., gt=0)


class CapacityCheckResponse(BaseModel):
    window_id: int
    capacity_minutes: int
    reserved_minutes: int
    used_minutes: int
    available_minutes: int
    requested_minutes: int
    can_book: bool
    would_overbook_by: int
    message: str


class SlotCreate(BaseModel):
    window_id: int
    slot_time: datetime
    duration_minutes: int = Field(..., gt=0)
    capacity_minutes: int = Field(..., gt=0)


class SlotResponse(BaseModel):
    id: int
    window_id: int
    slot_time: datetime
    end_time: datetime
    duration_minutes: int
    capacity_minutes: int
    used_minutes: int
    reserved_minutes: int
    available_minutes: int
    utilization_percent: int
    status: str
    is_available: bool
