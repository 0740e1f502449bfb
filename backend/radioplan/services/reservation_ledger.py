"""Реестр резервов: машина состояний и связка резерв ↔ минуты окна.

Единственный вызывающий reserve/release/commit у capacity_store. Переход выполняется
в точке сохранения (SAVEPOINT): проверка статуса → изменение ёмкости → смена статуса
условным UPDATE. Если ёмкость не изменилась или статус успели поменять параллельно,
точка сохранения откатывается целиком, резерв и окно остаются как были.
"""
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.config import settings
from radioplan.core.logging_config import get_logger
from radioplan.models import Order, Product, Reservation, ReservationEvent, ReservationStatus
from radioplan.schemas.reservation import ReservationDraft
from radioplan.services import capacity_store, collaborators, sequences
from radioplan.services.errors import InvalidTransition, NotFound, ValidationFailed
from radioplan.services.reservation_status import ReservationAction, next_status

logger = get_logger(__name__)

CapacityOp = Callable[[AsyncSession, int, int], Awaitable[object]]


def estimate_minutes(product: Product, number_of_doses: int) -> int:
    """Время обработки: минуты на дозу из настроек продукта × число доз."""
    per_dose = product.dose_processing_minutes or settings.default_dose_minutes
    return per_dose * max(number_of_doses, 1)


async def next_reservation_number(db: AsyncSession, today: Optional[date] = None) -> str:
    """Следующий номер резерва. Счётчик сквозной и не переиспользуется (аудит)."""
    value = await sequences.next_value(db, sequences.RESERVATION)
    day = today or datetime.utcnow().date()
    return f"{settings.reservation_number_prefix}-{day:%Y%m%d}-{value:06d}"


async def get_reservation(db: AsyncSession, reservation_id: int) -> Reservation:
    q = (
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    reservation = (await db.execute(q)).scalar_one_or_none()
    if reservation is None:
        raise NotFound(f"Резерв {reservation_id} не найден", {"reservation_id": reservation_id})
    return reservation


async def list_reservations(
    db: AsyncSession,
    customer_id: Optional[int] = None,
    product_id: Optional[int] = None,
    status: Optional[ReservationStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    window_id: Optional[int] = None,
    limit: int = 100,
) -> Sequence[Reservation]:
    q = select(Reservation).order_by(Reservation.requested_date, Reservation.id).limit(limit)
    if customer_id is not None:
        q = q.where(Reservation.customer_id == customer_id)
    if product_id is not None:
        q = q.where(Reservation.product_id == product_id)
    if status is not None:
        q = q.where(Reservation.status == status)
    if start_date is not None:
        q = q.where(Reservation.requested_date >= start_date)
    if end_date is not None:
        q = q.where(Reservation.requested_date <= end_date)
    if window_id is not None:
        q = q.where(Reservation.window_id == window_id)
    r = await db.execute(q.execution_options(populate_existing=True))
    return r.scalars().all()


def _event(
    reservation_id: int,
    action: ReservationAction,
    from_status: Optional[ReservationStatus],
    to_status: ReservationStatus,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
) -> ReservationEvent:
    return ReservationEvent(
        reservation_id=reservation_id,
        action=action.value,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value,
        reason=reason,
        actor=actor,
    )


async def create_reservation(
    db: AsyncSession,
    customer_id: int,
    product: Product,
    requested_date: date,
    requested_activity: float,
    number_of_doses: int = 1,
    window_id: Optional[int] = None,
    notes: Optional[str] = None,
    activity_unit: str = "mCi",
    expires_at: Optional[datetime] = None,
    actor: Optional[str] = None,
    slot_id: Optional[int] = None,
) -> Reservation:
    """Новый резерв в статусе TENTATIVE; при заданном окне занимает в нём estimated_minutes.

    Со слотом доставки минуты занимаются и в окне слота, и в самом слоте.
    Без окна — «общий» резерв на дату, минуты не держит.
    """
    if requested_activity <= 0:
        raise ValidationFailed("Запрошенная активность должна быть больше нуля")
    if number_of_doses < 1:
        raise ValidationFailed("Число доз должно быть не меньше 1")
    minutes = estimate_minutes(product, number_of_doses)

    async with db.begin_nested():
        if slot_id is not None:
            slot = await capacity_store.get_slot(db, slot_id)
            if window_id is None:
                window_id = slot.window_id
            elif slot.window_id != window_id:
                raise ValidationFailed(
                    f"Слот {slot_id} относится к окну {slot.window_id}, а не {window_id}",
                    {"slot_id": slot_id, "window_id": window_id},
                )
        if window_id is not None:
            window = await capacity_store.get_window(db, window_id)
            if window.date != requested_date:
                raise ValidationFailed(
                    f"Окно {window_id} относится к {window.date}, а резерв — к {requested_date}",
                    {"window_id": window_id},
                )
            await capacity_store.reserve_minutes(db, window_id, minutes)
        if slot_id is not None:
            await capacity_store.reserve_slot_minutes(db, slot_id, minutes)
        reservation = Reservation(
            reservation_number=await next_reservation_number(db),
            customer_id=customer_id,
            product_id=product.id,
            window_id=window_id,
            slot_id=slot_id,
            requested_date=requested_date,
            requested_activity=requested_activity,
            activity_unit=activity_unit,
            number_of_doses=number_of_doses,
            estimated_minutes=minutes,
            status=ReservationStatus.TENTATIVE,
            notes=notes,
            expires_at=expires_at or datetime.utcnow() + timedelta(hours=settings.reservation_ttl_hours),
            created_by=actor,
        )
        db.add(reservation)
        await db.flush()
        db.add(_event(reservation.id, ReservationAction.CREATE, None, ReservationStatus.TENTATIVE, actor=actor))
        await db.flush()
    logger.info(
        "Создан резерв id=%s number=%s окно=%s слот=%s минут=%s",
        reservation.id, reservation.reservation_number, window_id, slot_id, minutes,
    )
    return reservation


async def _transition(
    db: AsyncSession,
    reservation_id: int,
    action: ReservationAction,
    capacity_op: Optional[CapacityOp] = None,
    slot_op: Optional[CapacityOp] = None,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
    extra_values: Optional[dict] = None,
    before_commit: Optional[Callable[[Reservation], Awaitable[dict]]] = None,
) -> Reservation:
    reservation = await get_reservation(db, reservation_id)
    current = reservation.status
    target = next_status(current, action)
    if target is None:
        raise InvalidTransition(
            f"Резерв {reservation.reservation_number}: действие {action.value} "
            f"недопустимо в статусе {current.value}",
            {"reservation_id": reservation_id, "status": current.value, "action": action.value},
        )
    async with db.begin_nested():
        if capacity_op is not None and reservation.window_id is not None:
            await capacity_op(db, reservation.window_id, reservation.estimated_minutes)
        if slot_op is not None and reservation.slot_id is not None:
            await slot_op(db, reservation.slot_id, reservation.estimated_minutes)
        values = dict(extra_values or {})
        if before_commit is not None:
            values.update(await before_commit(reservation))
        result = await db.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == current)
            .values(status=target, updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Статус поменяли параллельно: откатываем и изменение ёмкости
            raise InvalidTransition(
                f"Резерв {reservation.reservation_number} уже изменён другим запросом",
                {"reservation_id": reservation_id, "action": action.value},
            )
        db.add(_event(reservation_id, action, current, target, reason=reason, actor=actor))
        await db.flush()
    logger.info(
        "Резерв id=%s: %s %s → %s", reservation_id, action.value, current.value, target.value
    )
    return await get_reservation(db, reservation_id)


async def confirm_reservation(db: AsyncSession, reservation_id: int, actor: Optional[str] = None) -> Reservation:
    return await _transition(db, reservation_id, ReservationAction.CONFIRM, actor=actor)


async def cancel_reservation(
    db: AsyncSession,
    reservation_id: int,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
) -> Reservation:
    extra = None
    if reason:
        reservation = await get_reservation(db, reservation_id)
        extra = {"notes": f"{reservation.notes or ''}\nОтмена: {reason}".strip()}
    return await _transition(
        db,
        reservation_id,
        ReservationAction.CANCEL,
        capacity_op=capacity_store.release_minutes,
        slot_op=capacity_store.release_slot_minutes,
        reason=reason,
        actor=actor,
        extra_values=extra,
    )


async def expire_reservation(db: AsyncSession, reservation_id: int, actor: Optional[str] = "system") -> Reservation:
    return await _transition(
        db,
        reservation_id,
        ReservationAction.EXPIRE,
        capacity_op=capacity_store.release_minutes,
        slot_op=capacity_store.release_slot_minutes,
        actor=actor,
    )


async def convert_reservation(
    db: AsyncSession,
    reservation_id: int,
    delivery_time_start: Optional[datetime] = None,
    delivery_time_end: Optional[datetime] = None,
    special_notes: Optional[str] = None,
    actor: Optional[str] = None,
) -> tuple[Reservation, Order]:
    """CONFIRMED → CONVERTED: минуты резерва переходят в used, создаётся черновик заказа."""
    created: dict[str, Order] = {}

    async def _create_order(reservation: Reservation) -> dict:
        start = delivery_time_start
        slot = None
        if start is None and reservation.slot_id is not None:
            slot = await capacity_store.get_slot(db, reservation.slot_id)
            start = slot.slot_time
        elif start is None and reservation.window_id is not None:
            start = (await capacity_store.get_window(db, reservation.window_id)).start_time
        start, default_end = collaborators.default_delivery_interval(reservation.requested_date, start)
        if slot is not None:
            default_end = slot.end_time
        end = delivery_time_end or default_end
        if end <= start:
            raise ValidationFailed("Окончание интервала доставки должно быть позже начала")
        order = await collaborators.create_order_from_reservation(db, reservation, start, end, special_notes)
        created["order"] = order
        return {"converted_order_id": order.id}

    reservation = await _transition(
        db,
        reservation_id,
        ReservationAction.CONVERT,
        capacity_op=capacity_store.commit_minutes,
        slot_op=capacity_store.commit_slot_minutes,
        actor=actor,
        before_commit=_create_order,
    )
    order = created["order"]
    logger.info("Резерв id=%s преобразован в заказ id=%s", reservation_id, order.id)
    return reservation, order


async def find_expirable(db: AsyncSession, now: datetime, grace_minutes: int = 0) -> list[int]:
    """TENTATIVE-резервы с истёкшим expires_at или прошедшей requested_date (с учётом запаса)."""
    cutoff = now - timedelta(minutes=grace_minutes)
    q = (
        select(Reservation.id)
        .where(
            Reservation.status == ReservationStatus.TENTATIVE,
            (Reservation.expires_at <= cutoff) | (Reservation.requested_date < cutoff.date()),
        )
        .order_by(Reservation.id)
    )
    r = await db.execute(q)
    return list(r.scalars().all())


def copy_as_draft(reservation: Reservation) -> ReservationDraft:
    return ReservationDraft(
        customer_id=reservation.customer_id,
        product_id=reservation.product_id,
        requested_activity=reservation.requested_activity,
        activity_unit=reservation.activity_unit,
        number_of_doses=reservation.number_of_doses,
        notes=reservation.notes,
        source_reservation_id=reservation.id,
        source_reservation_number=reservation.reservation_number,
    )
