"""Тестовые данные: продукты, заказчики, окна, слоты доставки, заказы."""
import asyncio
import itertools
from datetime import date, datetime, time, timedelta
from typing import Optional

from radioplan.core.database import async_session_maker
from radioplan.models import CapacityWindow, Customer, DeliverySlot, Order, OrderStatus, Product

_seq = itertools.count(1)


async def add_product(db, **overrides) -> Product:
    n = next(_seq)
    values = dict(
        code=f"P{n}",
        name=f"F-18 FDG #{n}",
        half_life_minutes=110.0,
        production_duration_minutes=60,
        dose_processing_minutes=10,
        max_batch_activity=None,
        transport_qc_buffer_minutes=30,
    )
    values.update(overrides)
    product = Product(**values)
    db.add(product)
    await db.flush()
    return product


async def add_customer(db, **overrides) -> Customer:
    values = dict(name=f"Клиника {next(_seq)}", travel_time_minutes=0)
    values.update(overrides)
    customer = Customer(**values)
    db.add(customer)
    await db.flush()
    return customer


async def add_window(
    db,
    day: date,
    start: time = time(8, 0),
    end: time = time(16, 0),
    capacity_minutes: int = 480,
    **overrides,
) -> CapacityWindow:
    window = CapacityWindow(
        name=f"Окно {day.isoformat()}",
        date=day,
        start_time=datetime.combine(day, start),
        end_time=datetime.combine(day, end),
        capacity_minutes=capacity_minutes,
        used_minutes=overrides.pop("used_minutes", 0),
        reserved_minutes=overrides.pop("reserved_minutes", 0),
        **overrides,
    )
    db.add(window)
    await db.flush()
    return window


async def add_slot(
    db,
    window: CapacityWindow,
    at: time = time(9, 0),
    duration_minutes: int = 60,
    capacity_minutes: int = 60,
    **overrides,
) -> DeliverySlot:
    slot = DeliverySlot(
        window_id=window.id,
        slot_time=datetime.combine(window.date, at),
        duration_minutes=duration_minutes,
        capacity_minutes=capacity_minutes,
        used_minutes=overrides.pop("used_minutes", 0),
        reserved_minutes=overrides.pop("reserved_minutes", 0),
        **overrides,
    )
    db.add(slot)
    await db.flush()
    return slot


async def add_order(
    db,
    customer: Customer,
    product: Product,
    delivery_time: datetime,
    requested_activity: float = 100.0,
    status: OrderStatus = OrderStatus.VALIDATED,
    delivery_end: Optional[datetime] = None,
) -> Order:
    order = Order(
        order_number=f"ORD-T-{next(_seq):05d}",
        customer_id=customer.id,
        product_id=product.id,
        requested_activity=requested_activity,
        activity_unit="mCi",
        number_of_doses=1,
        delivery_date=delivery_time.date(),
        delivery_time_start=delivery_time,
        delivery_time_end=delivery_end or delivery_time + timedelta(hours=1),
        status=status,
    )
    db.add(order)
    await db.flush()
    return order


def seed(fn):
    """Выполнить fn(session) в отдельной транзакции из синхронного теста, вернуть результат."""
    async def _run():
        async with async_session_maker() as session:
            result = await fn(session)
            await session.commit()
            return result
    return asyncio.run(_run())


def future_day(days: int = 7) -> date:
    return datetime.utcnow().date() + timedelta(days=days)
