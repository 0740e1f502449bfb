"""Учёт ёмкости окон.

Счётчики окна меняются только тремя примитивами: reserve_minutes, release_minutes,
commit_minutes; у слотов доставки те же три операции с суффиксом _slot_minutes.
Каждый примитив — один условный UPDATE (сравнение-и-замена по счётчикам),
поэтому два конкурентных резерва не могут вместе превысить ёмкость окна или слота
ни в PostgreSQL, ни в SQLite. Производные значения (доступно, загрузка, статус) считаются
только здесь.
"""
import math
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.config import settings
from radioplan.core.logging_config import get_logger
from radioplan.models import CapacityWindow, DeliverySlot
from radioplan.schemas.capacity import (
    CapacityCheckResponse,
    CapacitySummary,
    SlotCreate,
    SlotResponse,
    WindowDraft,
    WindowResponse,
    WindowUtilization,
)
from radioplan.services.errors import (
    CapacityExceeded,
    DuplicateWindow,
    InsufficientReserved,
    NotFound,
    ValidationFailed,
)

logger = get_logger(__name__)

STATUS_OPEN = "OPEN"
STATUS_NEAR_FULL = "NEAR_FULL"
STATUS_FULL = "FULL"


async def get_window(db: AsyncSession, window_id: int) -> CapacityWindow:
    q = (
        select(CapacityWindow)
        .where(CapacityWindow.id == window_id)
        .execution_options(populate_existing=True)
    )
    window = (await db.execute(q)).scalar_one_or_none()
    if window is None:
        raise NotFound(f"Окно ёмкости {window_id} не найдено", {"window_id": window_id})
    return window


def _check_minutes(minutes: int) -> None:
    if minutes <= 0:
        raise ValidationFailed("Количество минут должно быть больше нуля", {"minutes": minutes})


def _reserve_stmt(model, row_id: int, minutes: int, active):
    return (
        update(model)
        .where(
            model.id == row_id,
            active == True,
            model.used_minutes + model.reserved_minutes + minutes <= model.capacity_minutes,
        )
        .values(reserved_minutes=model.reserved_minutes + minutes, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


def _release_stmt(model, row_id: int, minutes: int):
    return (
        update(model)
        .where(model.id == row_id)
        .values(
            reserved_minutes=case(
                (model.reserved_minutes >= minutes, model.reserved_minutes - minutes),
                else_=0,
            ),
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


def _commit_stmt(model, row_id: int, minutes: int):
    return (
        update(model)
        .where(model.id == row_id, model.reserved_minutes >= minutes)
        .values(
            reserved_minutes=model.reserved_minutes - minutes,
            used_minutes=model.used_minutes + minutes,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


async def reserve_minutes(db: AsyncSession, window_id: int, minutes: int) -> CapacityWindow:
    """Занять minutes в reserved_minutes, если used + reserved + minutes <= capacity.

    Иначе CapacityExceeded и никаких изменений.
    """
    _check_minutes(minutes)
    result = await db.execute(_reserve_stmt(CapacityWindow, window_id, minutes, CapacityWindow.is_active))
    window = await get_window(db, window_id)
    if result.rowcount != 1:
        available = compute_utilization(window).available_minutes
        reason = "окно деактивировано" if not window.is_active else "недостаточно минут"
        raise CapacityExceeded(
            f"Недостаточно ёмкости окна {window_id}: доступно {max(available, 0)} мин, "
            f"требуется {minutes} мин ({reason})",
            {"window_id": window_id, "available_minutes": max(available, 0), "requested_minutes": minutes},
        )
    logger.info("Окно id=%s: зарезервировано %s мин (reserved=%s)", window_id, minutes, window.reserved_minutes)
    return window


async def release_minutes(db: AsyncSession, window_id: int, minutes: int) -> CapacityWindow:
    """Вернуть minutes из reserved_minutes; не уходит ниже нуля (повторное освобождение безопасно)."""
    _check_minutes(minutes)
    result = await db.execute(_release_stmt(CapacityWindow, window_id, minutes))
    if result.rowcount != 1:
        raise NotFound(f"Окно ёмкости {window_id} не найдено", {"window_id": window_id})
    window = await get_window(db, window_id)
    logger.info("Окно id=%s: освобождено %s мин (reserved=%s)", window_id, minutes, window.reserved_minutes)
    return window


async def commit_minutes(db: AsyncSession, window_id: int, minutes: int) -> CapacityWindow:
    """Перенести minutes из reserved_minutes в used_minutes."""
    _check_minutes(minutes)
    result = await db.execute(_commit_stmt(CapacityWindow, window_id, minutes))
    window = await get_window(db, window_id)
    if result.rowcount != 1:
        raise InsufficientReserved(
            f"В окне {window_id} в резерве {window.reserved_minutes} мин, списать нужно {minutes} мин",
            {"window_id": window_id, "reserved_minutes": window.reserved_minutes, "minutes": minutes},
        )
    logger.info("Окно id=%s: %s мин переведены в used (used=%s)", window_id, minutes, window.used_minutes)
    return window


async def get_slot(db: AsyncSession, slot_id: int) -> DeliverySlot:
    q = (
        select(DeliverySlot)
        .where(DeliverySlot.id == slot_id)
        .execution_options(populate_existing=True)
    )
    slot = (await db.execute(q)).scalar_one_or_none()
    if slot is None:
        raise NotFound(f"Слот доставки {slot_id} не найден", {"slot_id": slot_id})
    return slot


async def reserve_slot_minutes(db: AsyncSession, slot_id: int, minutes: int) -> DeliverySlot:
    """То же, что reserve_minutes, но для слота доставки (недоступный слот не резервируется)."""
    _check_minutes(minutes)
    result = await db.execute(_reserve_stmt(DeliverySlot, slot_id, minutes, DeliverySlot.is_available))
    slot = await get_slot(db, slot_id)
    if result.rowcount != 1:
        available = compute_utilization(slot).available_minutes
        reason = "слот недоступен" if not slot.is_available else "недостаточно минут"
        raise CapacityExceeded(
            f"Недостаточно ёмкости слота {slot_id}: доступно {max(available, 0)} мин, "
            f"требуется {minutes} мин ({reason})",
            {"slot_id": slot_id, "available_minutes": max(available, 0), "requested_minutes": minutes},
        )
    logger.info("Слот id=%s: зарезервировано %s мин (reserved=%s)", slot_id, minutes, slot.reserved_minutes)
    return slot


async def release_slot_minutes(db: AsyncSession, slot_id: int, minutes: int) -> DeliverySlot:
    _check_minutes(minutes)
    result = await db.execute(_release_stmt(DeliverySlot, slot_id, minutes))
    if result.rowcount != 1:
        raise NotFound(f"Слот доставки {slot_id} не найден", {"slot_id": slot_id})
    slot = await get_slot(db, slot_id)
    logger.info("Слот id=%s: освобождено %s мин (reserved=%s)", slot_id, minutes, slot.reserved_minutes)
    return slot


async def commit_slot_minutes(db: AsyncSession, slot_id: int, minutes: int) -> DeliverySlot:
    _check_minutes(minutes)
    result = await db.execute(_commit_stmt(DeliverySlot, slot_id, minutes))
    slot = await get_slot(db, slot_id)
    if result.rowcount != 1:
        raise InsufficientReserved(
            f"В слоте {slot_id} в резерве {slot.reserved_minutes} мин, списать нужно {minutes} мин",
            {"slot_id": slot_id, "reserved_minutes": slot.reserved_minutes, "minutes": minutes},
        )
    logger.info("Слот id=%s: %s мин переведены в used (used=%s)", slot_id, minutes, slot.used_minutes)
    return slot


def compute_utilization(window) -> WindowUtilization:
    """Загрузка окна или слота доставки (по capacity/used/reserved)."""
    busy = window.used_minutes + window.reserved_minutes
    available = window.capacity_minutes - busy
    percent = math.floor(100 * busy / window.capacity_minutes + 0.5) if window.capacity_minutes else 0
    if available <= 0:
        status = STATUS_FULL
    elif percent >= settings.near_full_percent:
        status = STATUS_NEAR_FULL
    else:
        status = STATUS_OPEN
    return WindowUtilization(
        committed_minutes=window.used_minutes,
        available_minutes=available,
        utilization_percent=percent,
        status=status,
    )


def window_to_response(window: CapacityWindow) -> WindowResponse:
    u = compute_utilization(window)
    return WindowResponse(
        id=window.id,
        name=window.name or "",
        date=window.date,
        start_time=window.start_time,
        end_time=window.end_time,
        capacity_minutes=window.capacity_minutes,
        used_minutes=window.used_minutes,
        reserved_minutes=window.reserved_minutes,
        committed_minutes=u.committed_minutes,
        available_minutes=u.available_minutes,
        utilization_percent=u.utilization_percent,
        status=u.status,
        is_active=window.is_active,
    )


def summarize(windows: Iterable[WindowResponse]) -> CapacitySummary:
    s = CapacitySummary()
    for w in windows:
        s.total_capacity_minutes += w.capacity_minutes
        s.total_reserved_minutes += w.reserved_minutes
        s.total_used_minutes += w.used_minutes
        s.total_available_minutes += max(w.available_minutes, 0)
        s.window_count += 1
        if w.status == STATUS_FULL:
            s.full_windows += 1
        elif w.status == STATUS_NEAR_FULL:
            s.near_full_windows += 1
    return s


async def list_windows_in_range(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    active_only: bool = True,
) -> Sequence[CapacityWindow]:
    q = (
        select(CapacityWindow)
        .where(CapacityWindow.date >= start_date, CapacityWindow.date <= end_date)
        .order_by(CapacityWindow.date, CapacityWindow.start_time)
        .execution_options(populate_existing=True)
    )
    if active_only:
        q = q.where(CapacityWindow.is_active == True)
    r = await db.execute(q)
    return r.scalars().all()


async def find_best_fit_window(
    db: AsyncSession,
    day: date,
    minutes: int,
    exclude_ids: Iterable[int] = (),
) -> Optional[CapacityWindow]:
    """Самое раннее активное окно даты, где хватает свободных минут (кроме exclude_ids)."""
    q = (
        select(CapacityWindow)
        .where(
            CapacityWindow.date == day,
            CapacityWindow.is_active == True,
            CapacityWindow.capacity_minutes - CapacityWindow.used_minutes - CapacityWindow.reserved_minutes
            >= minutes,
        )
        .order_by(CapacityWindow.start_time, CapacityWindow.id)
    )
    excluded = set(exclude_ids)
    if excluded:
        q = q.where(CapacityWindow.id.not_in(excluded))
    return (await db.execute(q.limit(1))).scalar_one_or_none()


async def find_window_at(db: AsyncSession, moment: datetime) -> Optional[CapacityWindow]:
    """Активное окно, в интервал которого попадает moment."""
    q = (
        select(CapacityWindow)
        .where(
            CapacityWindow.is_active == True,
            CapacityWindow.start_time <= moment,
            CapacityWindow.end_time > moment,
        )
        .order_by(CapacityWindow.start_time, CapacityWindow.id)
        .limit(1)
    )
    return (await db.execute(q)).scalar_one_or_none()


async def _find_conflict(db: AsyncSession, draft: WindowDraft, allow_overlap: bool) -> Optional[CapacityWindow]:
    exact = and_(
        CapacityWindow.date == draft.date,
        CapacityWindow.start_time == draft.start_time,
        CapacityWindow.end_time == draft.end_time,
    )
    if allow_overlap:
        cond = exact
    else:
        cond = and_(
            CapacityWindow.date == draft.date,
            CapacityWindow.start_time < draft.end_time,
            CapacityWindow.end_time > draft.start_time,
        )
    q = select(CapacityWindow).where(cond).limit(1)
    return (await db.execute(q)).scalar_one_or_none()


def _validate_draft(draft: WindowDraft) -> None:
    if draft.end_time <= draft.start_time:
        raise ValidationFailed("Окончание окна должно быть позже начала")
    if draft.start_time.date() != draft.date:
        raise ValidationFailed("Начало окна должно приходиться на его дату")


async def create_window(db: AsyncSession, draft: WindowDraft, allow_overlap: bool = False) -> CapacityWindow:
    """Создать окно. Точный дубль (дата, начало, конец) отклоняется всегда,
    пересекающееся окно — если не задан allow_overlap."""
    _validate_draft(draft)
    conflict = await _find_conflict(db, draft, allow_overlap)
    if conflict is not None:
        raise DuplicateWindow(
            f"На {draft.date} уже есть окно {conflict.start_time:%H:%M}–{conflict.end_time:%H:%M}",
            {"window_id": conflict.id},
        )
    window = CapacityWindow(
        name=draft.name or f"Окно {draft.date.isoformat()}",
        date=draft.date,
        start_time=draft.start_time,
        end_time=draft.end_time,
        capacity_minutes=draft.capacity_minutes,
        used_minutes=0,
        reserved_minutes=0,
        is_active=True,
    )
    db.add(window)
    await db.flush()
    logger.info("Создано окно id=%s %s %s–%s (%s мин)", window.id, window.date,
                window.start_time.time(), window.end_time.time(), window.capacity_minutes)
    return window


async def provision_windows(
    db: AsyncSession,
    drafts: Iterable[WindowDraft],
    allow_overlap: bool = False,
) -> tuple[list[CapacityWindow], int]:
    """Массовое создание: конфликтующие окна пропускаются. Возвращает (созданные, пропущено)."""
    created: list[CapacityWindow] = []
    skipped = 0
    for draft in drafts:
        try:
            created.append(await create_window(db, draft, allow_overlap=allow_overlap))
        except DuplicateWindow:
            skipped += 1
    return created, skipped


async def update_window(
    db: AsyncSession,
    window_id: int,
    name: Optional[str] = None,
    capacity_minutes: Optional[int] = None,
    is_active: Optional[bool] = None,
) -> CapacityWindow:
    """Изменить название, ёмкость или активность. Ёмкость нельзя опустить ниже used + reserved."""
    window = await get_window(db, window_id)
    if capacity_minutes is not None:
        stmt = (
            update(CapacityWindow)
            .where(
                CapacityWindow.id == window_id,
                CapacityWindow.used_minutes + CapacityWindow.reserved_minutes <= capacity_minutes,
            )
            .values(capacity_minutes=capacity_minutes, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.rowcount != 1:
            window = await get_window(db, window_id)
            raise CapacityExceeded(
                f"Нельзя уменьшить ёмкость окна {window_id} до {capacity_minutes} мин: "
                f"занято {window.used_minutes + window.reserved_minutes} мин",
                {"window_id": window_id},
            )
    values = {}
    if name is not None:
        values["name"] = name
    if is_active is not None:
        values["is_active"] = is_active
    if values:
        await db.execute(
            update(CapacityWindow)
            .where(CapacityWindow.id == window_id)
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
    window = await get_window(db, window_id)
    logger.info("Окно id=%s изменено: capacity=%s active=%s", window_id, window.capacity_minutes, window.is_active)
    return window


async def check_capacity(db: AsyncSession, window_id: int, requested_minutes: int) -> CapacityCheckResponse:
    """Только чтение: хватит ли окну requested_minutes."""
    window = await get_window(db, window_id)
    available = compute_utilization(window).available_minutes
    can_book = window.is_active and available >= requested_minutes
    overbook = 0 if can_book else max(requested_minutes - max(available, 0), 0)
    if can_book:
        message = f"Доступно {available} мин, запрошено {requested_minutes} мин"
    elif not window.is_active:
        message = "Окно деактивировано"
    else:
        message = f"Недостаточно ёмкости: превышение на {overbook} мин"
    return CapacityCheckResponse(
        window_id=window.id,
        capacity_minutes=window.capacity_minutes,
        reserved_minutes=window.reserved_minutes,
        used_minutes=window.used_minutes,
        available_minutes=available,
        requested_minutes=requested_minutes,
        can_book=can_book,
        would_overbook_by=overbook,
        message=message,
    )


def slot_to_response(slot: DeliverySlot) -> SlotResponse:
    u = compute_utilization(slot)
    return SlotResponse(
        id=slot.id,
        window_id=slot.window_id,
        slot_time=slot.slot_time,
        end_time=slot.end_time,
        duration_minutes=slot.duration_minutes,
        capacity_minutes=slot.capacity_minutes,
        used_minutes=slot.used_minutes,
        reserved_minutes=slot.reserved_minutes,
        available_minutes=u.available_minutes,
        utilization_percent=u.utilization_percent,
        status=u.status,
        is_available=slot.is_available,
    )


async def list_slots(
    db: AsyncSession,
    window_id: Optional[int] = None,
    day: Optional[date] = None,
    is_available: Optional[bool] = None,
) -> Sequence[DeliverySlot]:
    q = (
        select(DeliverySlot)
        .order_by(DeliverySlot.slot_time, DeliverySlot.id)
        .execution_options(populate_existing=True)
    )
    if window_id is not None:
        q = q.where(DeliverySlot.window_id == window_id)
    if day is not None:
        q = q.join(CapacityWindow, CapacityWindow.id == DeliverySlot.window_id).where(CapacityWindow.date == day)
    if is_available is not None:
        q = q.where(DeliverySlot.is_available == is_available)
    r = await db.execute(q)
    return r.scalars().all()


async def create_slot(db: AsyncSession, data: SlotCreate) -> DeliverySlot:
    """Слот должен лежать внутри окна и не превышать его ёмкость."""
    window = await get_window(db, data.window_id)
    slot = DeliverySlot(
        window_id=window.id,
        slot_time=data.slot_time,
        duration_minutes=data.duration_minutes,
        capacity_minutes=data.capacity_minutes,
        used_minutes=0,
        reserved_minutes=0,
        is_available=True,
    )
    if slot.slot_time < window.start_time or slot.end_time > window.end_time:
        raise ValidationFailed(
            f"Слот {slot.slot_time:%H:%M}–{slot.end_time:%H:%M} выходит за окно "
            f"{window.start_time:%H:%M}–{window.end_time:%H:%M}",
            {"window_id": window.id},
        )
    if slot.capacity_minutes > window.capacity_minutes:
        raise ValidationFailed(
            f"Ёмкость слота {slot.capacity_minutes} мин больше ёмкости окна {window.capacity_minutes} мин",
            {"window_id": window.id},
        )
    existing = await db.execute(
        select(DeliverySlot.id).where(
            DeliverySlot.window_id == window.id, DeliverySlot.slot_time == data.slot_time
        )
    )
    conflict_id = existing.scalar_one_or_none()
    if conflict_id is not None:
        raise DuplicateWindow(
            f"В окне {window.id} уже есть слот на {data.slot_time:%H:%M}",
            {"slot_id": conflict_id},
        )
    db.add(slot)
    await db.flush()
    logger.info("Создан слот id=%s окно=%s %s (%s мин)", slot.id, window.id, slot.slot_time, slot.capacity_minutes)
    return slot
