from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.core.database import get_db
from radioplan.schemas.capacity import (
    CapacityCalendarResponse,
    CapacityCheckRequest,
    CapacityCheckResponse,
    GenerateWindowsResponse,
    SlotCreate,
    SlotResponse,
    WindowCreate,
    WindowDraft,
    WindowGenerateRequest,
    WindowResponse,
    WindowUpdate,
)
from radioplan.services import capacity_store, scheduling
from radioplan.services.errors import ValidationFailed

router = APIRouter(prefix="/capacity", tags=["capacity"])


@router.get("/calendar", response_model=CapacityCalendarResponse)
async def get_calendar(
    start_date: date,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
):
    """Окна за период с загрузкой и сводкой. Без end_date — один день."""
    end_date = end_date or start_date
    if end_date < start_date:
        raise ValidationFailed("Дата окончания раньше даты начала")
    windows = await scheduling.get_capacity_calendar(db, start_date, end_date)
    return CapacityCalendarResponse(windows=windows, summary=capacity_store.summarize(windows))


@router.post("/windows/generate", response_model=GenerateWindowsResponse, status_code=201)
async def generate_windows(data: WindowGenerateRequest, db: AsyncSession = Depends(get_db)):
    created, skipped = await scheduling.generate_windows(db, data)
    return GenerateWindowsResponse(
        created=len(created),
        skipped=skipped,
        windows=[capacity_store.window_to_response(w) for w in created],
    )


@router.post("/windows", response_model=WindowResponse, status_code=201)
async def create_window(data: WindowCreate, db: AsyncSession = Depends(get_db)):
    draft = WindowDraft(**data.model_dump(exclude={"allow_overlap"}))
    window = await capacity_store.create_window(db, draft, allow_overlap=data.allow_overlap)
    return capacity_store.window_to_response(window)


@router.get("/windows/{window_id}", response_model=WindowResponse)
async def get_window(window_id: int, db: AsyncSession = Depends(get_db)):
    window = await capacity_store.get_window(db, window_id)
    return capacity_store.window_to_response(window)


@router.patch("/windows/{window_id}", response_model=WindowResponse)
async def patch_window(window_id: int, data: WindowUpdate, db: AsyncSession = Depends(get_db)):
    """Название, ёмкость, деактивация. Окна не удаляются: на них ссылаются резервы и партии."""
    window = await capacity_store.update_window(
        db,
        window_id,
        name=data.name,
        capacity_minutes=data.capacity_minutes,
        is_active=data.is_active,
    )
    return capacity_store.window_to_response(window)


@router.post("/check", response_model=CapacityCheckResponse)
async def check_capacity(data: CapacityCheckRequest, db: AsyncSession = Depends(get_db)):
    return await capacity_store.check_capacity(db, data.window_id, data.requested_minutes)


@router.get("/slots", response_model=List[SlotResponse])
async def get_slots(
    window_id: Optional[int] = None,
    day: Optional[date] = Query(None, alias="date"),
    is_available: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    slots = await capacity_store.list_slots(db, window_id=window_id, day=day, is_available=is_available)
    return [capacity_store.slot_to_response(s) for s in slots]


@router.post("/slots", response_model=SlotResponse, status_code=201)
async def create_slot(data: SlotCreate, db: AsyncSession = Depends(get_db)):
    """Слот доставки внутри окна: отдельный лимит минут на интервал отгрузки."""
    slot = await capacity_store.create_slot(db, data)
    return capacity_store.slot_to_response(slot)
