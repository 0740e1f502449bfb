"""Чтение/запись данных смежных модулей: продукты, заказчики, заказы, партии.

Ядро не ведёт их жизненный цикл, а только читает справочники, создаёт заказ из резерва
и партию из принятого предложения.
"""
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.models import Batch, BatchStatus, Customer, Order, OrderStatus, Product, Reservation
from radioplan.services import sequences


async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
    return await db.get(Product, product_id)


async def get_products(db: AsyncSession, product_ids: Iterable[int]) -> dict[int, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    r = await db.execute(select(Product).where(Product.id.in_(ids)))
    return {p.id: p for p in r.scalars().all()}


async def get_customer(db: AsyncSession, customer_id: int) -> Optional[Customer]:
    r = await db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.is_active == True)
    )
    return r.scalar_one_or_none()


async def travel_minutes_by_customer(db: AsyncSession, customer_ids: Iterable[int]) -> dict[int, int]:
    ids = set(customer_ids)
    if not ids:
        return {}
    r = await db.execute(select(Customer.id, Customer.travel_time_minutes).where(Customer.id.in_(ids)))
    return {cid: minutes or 0 for cid, minutes in r.all()}


async def list_schedulable_orders(db: AsyncSession, day: date) -> Sequence[Order]:
    """Проверенные, ещё не запланированные заказы с доставкой в указанный день."""
    q = (
        select(Order)
        .where(
            Order.status == OrderStatus.VALIDATED,
            Order.batch_id.is_(None),
            Order.delivery_date == day,
        )
        .order_by(Order.delivery_time_start, Order.id)
    )
    r = await db.execute(q)
    return r.scalars().all()


async def get_orders(db: AsyncSession, order_ids: Iterable[int]) -> Sequence[Order]:
    q = (
        select(Order)
        .where(Order.id.in_(list(order_ids)))
        .order_by(Order.delivery_time_start, Order.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    r = await db.execute(q)
    return r.scalars().all()


async def _next_number(db: AsyncSession, scope: str, prefix: str) -> str:
    value = await sequences.next_value(db, scope)
    return f"{prefix}-{datetime.utcnow():%Y%m%d}-{value:04d}"


async def create_order_from_reservation(
    db: AsyncSession,
    reservation: Reservation,
    delivery_time_start: datetime,
    delivery_time_end: datetime,
    special_notes: Optional[str] = None,
) -> Order:
    """Запрос модулю заказов: черновик заказа с коммерческими атрибутами резерва."""
    order = Order(
        order_number=await _next_number(db, sequences.ORDER, "ORD"),
        customer_id=reservation.customer_id,
        product_id=reservation.product_id,
        requested_activity=reservation.requested_activity,
        activity_unit=reservation.activity_unit,
        number_of_doses=reservation.number_of_doses,
        delivery_date=delivery_time_start.date(),
        delivery_time_start=delivery_time_start,
        delivery_time_end=delivery_time_end,
        status=OrderStatus.DRAFT,
        special_notes=special_notes if special_notes is not None else reservation.notes,
    )
    db.add(order)
    await db.flush()
    return order


def default_delivery_interval(day: date, start: Optional[datetime] = None) -> tuple[datetime, datetime]:
    begin = start or datetime.combine(day, datetime.min.time())
    return begin, begin + timedelta(hours=2)


async def create_batch(
    db: AsyncSession,
    product: Product,
    orders: Sequence[Order],
    window_id: int,
    planned_start_time: datetime,
    planned_end_time: datetime,
    target_activity: float,
    committed_minutes: int,
    actor: Optional[str] = None,
) -> Batch:
    """Запрос модулю производства: партия со списком заказов (заказы → SCHEDULED)."""
    batch = Batch(
        batch_number=await _next_number(db, sequences.BATCH, "B"),
        product_id=product.id,
        window_id=window_id,
        planned_start_time=planned_start_time,
        planned_end_time=planned_end_time,
        target_activity=target_activity,
        activity_unit=orders[0].activity_unit if orders else "mCi",
        committed_minutes=committed_minutes,
        status=BatchStatus.PLANNED,
        created_by=actor,
    )
    db.add(batch)
    await db.flush()
    for order in orders:
        order.status = OrderStatus.SCHEDULED
        order.batch_id = batch.id
        db.add(order)
    await db.flush()
    return batch
