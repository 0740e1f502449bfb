from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.api.deps import get_actor
from radioplan.core.database import get_db
from radioplan.schemas.planner import (
    AcceptSuggestionRequest,
    AcceptSuggestionResponse,
    BatchSuggestion,
    PlannerOrder,
    SuggestBatchesRequest,
)
from radioplan.services import batch_planner, scheduling

router = APIRouter(prefix="/planner", tags=["planner"])


@router.get("/orders", response_model=List[PlannerOrder])
async def get_planner_orders(date: date, db: AsyncSession = Depends(get_db)):
    """Заказы VALIDATED без партии на дату доставки, с обратным расчётом этапов."""
    return await batch_planner.planner_orders(db, date)


@router.post("/suggestions", response_model=List[BatchSuggestion])
async def post_suggestions(data: SuggestBatchesRequest, db: AsyncSession = Depends(get_db)):
    return await scheduling.suggest_batches(db, data.date)


@router.post("/suggestions/accept", response_model=AcceptSuggestionResponse, status_code=201)
async def accept_suggestion(
    data: AcceptSuggestionRequest,
    db: AsyncSession = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
):
    return await scheduling.accept_suggestion(db, data, actor=actor)
