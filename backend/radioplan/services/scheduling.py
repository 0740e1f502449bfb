"""Фасад планирования: операции для модулей заказов, портала и производства.

Здесь же нарушения целостности учёта (INSUFFICIENT_RESERVED) переводятся в общую
внутреннюю ошибку: пишется тревога в лог, пользователю детали не отдаются.
"""
import functools
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.core.logging_config import get_logger
from radioplan.models import CapacityWindow, Order, OrderStatus, Reservation
from radioplan.schemas.capacity import WindowDraft, WindowGenerateRequest, WindowResponse
from radioplan.schemas.planner import AcceptSuggestionRequest, AcceptSuggestionResponse, BatchSuggestion
from radioplan.schemas.reservation import ReservationConvert, ReservationCreate, ReservationDraft
from radioplan.services import (
    batch_planner,
    capacity_store,
    collaborators,
    reservation_ledger,
    window_generator,
)
from radioplan.services.errors import (
    CapacityExceeded,
    InfeasibleSchedule,
    InsufficientReserved,
    InternalSchedulingError,
    NoCapacity,
    NotFound,
    StaleSuggestion,
)

logger = get_logger(__name__)

# Допуск сравнения активности при повторной проверке предложения
_ACTIVITY_TOLERANCE = 1e-6


@contextmanager
def _integrity_guard(operation: str, **ids) -> Iterator[None]:
    try:
        yield
    except InsufficientReserved as e:
        logger.error("нарушение целостности учёта ёмкости: %s %s: %s %s", operation, ids, e.message, e.details)
        raise InternalSchedulingError("Внутренняя ошибка планирования. Обратитесь к администратору.") from e


async def create_reservation(db: AsyncSession, data: ReservationCreate, actor: Optional[str] = None) -> Reservation:
    customer = await collaborators.get_customer(db, data.customer_id)
    if customer is None:
        raise NotFound(f"Заказчик {data.customer_id} не найден", {"customer_id": data.customer_id})
    product = await collaborators.get_product(db, data.product_id)
    if product is None:
        raise NotFound(f"Продукт {data.product_id} не найден", {"product_id": data.product_id})

    create = functools.partial(
        reservation_ledger.create_reservation,
        db,
        customer_id=customer.id,
        product=product,
        requested_date=data.requested_date,
        requested_activity=data.requested_activity,
        number_of_doses=data.number_of_doses,
        notes=data.notes,
        activity_unit=data.activity_unit,
        expires_at=data.expires_at,
        actor=actor,
        slot_id=data.slot_id,
    )
    if data.window_id is not None or data.slot_id is not None:
        return await create(window_id=data.window_id)

    # Окно выбирается автоматически: если его заняли между выбором и резервом, берём следующее
    minutes = reservation_ledger.estimate_minutes(product, data.number_of_doses)
    tried: list[int] = []
    while True:
        window = await capacity_store.find_best_fit_window(db, data.requested_date, minutes, exclude_ids=tried)
        if window is None:
            raise NoCapacity(
                f"Нет свободной ёмкости на {data.requested_date}: требуется {minutes} мин",
                {"requested_date": data.requested_date.isoformat(), "requested_minutes": minutes},
            )
        try:
            return await create(window_id=window.id)
        except CapacityExceeded:
            logger.info("Окно id=%s занято параллельным запросом, ищем другое", window.id)
            tried.append(window.id)


async def confirm_reservation(db: AsyncSession, reservation_id: int, actor: Optional[str] = None) -> Reservation:
    return await reservation_ledger.confirm_reservation(db, reservation_id, actor=actor)


async def cancel_reservation(
    db: AsyncSession, reservation_id: int, reason: Optional[str] = None, actor: Optional[str] = None
) -> Reservation:
    return await reservation_ledger.cancel_reservation(db, reservation_id, reason=reason, actor=actor)


async def convert_reservation(
    db: AsyncSession,
    reservation_id: int,
    data: Optional[ReservationConvert] = None,
    actor: Optional[str] = None,
) -> tuple[Reservation, Order]:
    data = data or ReservationConvert()
    with _integrity_guard("convert", reservation_id=reservation_id):
        return await reservation_ledger.convert_reservation(
            db,
            reservation_id,
            delivery_time_start=data.delivery_time_start,
            delivery_time_end=data.delivery_time_end,
            special_notes=data.special_notes,
            actor=actor,
        )


async def copy_reservation_as_draft(db: AsyncSession, reservation_id: int) -> ReservationDraft:
    reservation = await reservation_ledger.get_reservation(db, reservation_id)
    return reservation_ledger.copy_as_draft(reservation)


async def get_capacity_calendar(db: AsyncSession, start_date: date, end_date: date) -> list[WindowResponse]:
    windows = await capacity_store.list_windows_in_range(db, start_date, end_date)
    return [capacity_store.window_to_response(w) for w in windows]


async def generate_windows(
    db: AsyncSession, data: WindowGenerateRequest
) -> tuple[list[CapacityWindow], int]:
    drafts: Sequence[WindowDraft] = window_generator.generate(
        data.start_date,
        data.end_date,
        data.daily_start_time,
        data.daily_end_time,
        data.capacity_minutes,
        data.exclude_weekends,
    )
    created, skipped = await capacity_store.provision_windows(db, drafts, allow_overlap=data.allow_overlap)
    logger.info(
        "Генерация окон %s..%s: создано %s, пропущено %s",
        data.start_date, data.end_date, len(created), skipped,
    )
    return created, skipped


async def suggest_batches(db: AsyncSession, day: date, now: Optional[datetime] = None) -> list[BatchSuggestion]:
    return await batch_planner.suggest_batches(db, day, now=now)


def _same_moment(a: datetime, b: datetime) -> bool:
    return abs((a - b).total_seconds()) < 1


async def accept_suggestion(
    db: AsyncSession,
    data: AcceptSuggestionRequest,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AcceptSuggestionResponse:
    """Создать партию по предложению, заново проверив заказы и ёмкость.

    Предложение могло устареть: заказы изменились или окно заняли. Тогда
    STALE_SUGGESTION, предложения нужно пересоздать.
    """
    stale_msg = "Данные изменились с момента расчёта предложения, пересоздайте предложения"
    product = await collaborators.get_product(db, data.product_id)
    if product is None:
        raise NotFound(f"Продукт {data.product_id} не найден", {"product_id": data.product_id})

    with _integrity_guard("accept_suggestion", product_id=data.product_id, order_ids=data.order_ids):
        async with db.begin_nested():
            orders = await collaborators.get_orders(db, data.order_ids)
            usable = [
                o for o in orders
                if o.product_id == product.id and o.status == OrderStatus.VALIDATED and o.batch_id is None
            ]
            if len(usable) != len(set(data.order_ids)):
                raise StaleSuggestion(stale_msg, {"reason": "orders_changed"})

            travel = await collaborators.travel_minutes_by_customer(db, (o.customer_id for o in usable))
            fresh = batch_planner.suggest_for_group(product, usable, now or datetime.utcnow(), travel)
            if (
                not _same_moment(fresh.suggested_start_time, data.suggested_start_time)
                or not _same_moment(fresh.suggested_end_time, data.suggested_end_time)
                or abs(fresh.total_activity - data.total_activity) > _ACTIVITY_TOLERANCE * max(1.0, fresh.total_activity)
            ):
                raise StaleSuggestion(stale_msg, {"reason": "suggestion_changed"})
            if not fresh.feasible:
                raise InfeasibleSchedule(
                    "Предложение невыполнимо: " + "; ".join(i.message for i in fresh.issues),
                    {"issues": [i.model_dump() for i in fresh.issues]},
                )

            if data.window_id is not None:
                window = await capacity_store.get_window(db, data.window_id)
            else:
                window = await capacity_store.find_window_at(db, fresh.suggested_start_time)
                if window is None:
                    window = await capacity_store.find_best_fit_window(
                        db, fresh.suggested_start_time.date(), fresh.production_minutes
                    )
            if window is None:
                raise NoCapacity(
                    f"Нет окна ёмкости на {fresh.suggested_start_time:%Y-%m-%d %H:%M}",
                    {"suggested_start_time": fresh.suggested_start_time.isoformat()},
                )

            minutes = fresh.production_minutes
            try:
                await capacity_store.reserve_minutes(db, window.id, minutes)
            except CapacityExceeded as e:
                raise StaleSuggestion(
                    "Ёмкость окна изменилась, пересоздайте предложения",
                    {"reason": "capacity_changed", **e.details},
                ) from e
            await capacity_store.commit_minutes(db, window.id, minutes)

            batch = await collaborators.create_batch(
                db,
                product,
                usable,
                window_id=window.id,
                planned_start_time=fresh.suggested_start_time,
                planned_end_time=fresh.suggested_end_time,
                target_activity=fresh.total_activity,
                committed_minutes=minutes,
                actor=actor,
            )
    logger.info(
        "Создана партия id=%s number=%s продукт=%s заказов=%s окно=%s минут=%s",
        batch.id, batch.batch_number, product.id, len(usable), window.id, minutes,
    )
    return AcceptSuggestionResponse(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        window_id=window.id,
        committed_minutes=minutes,
    )
