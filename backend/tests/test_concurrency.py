"""Одновременные резервы одного окна: не больше ёмкости ни при каком порядке."""
import asyncio
from datetime import date

import pytest

from factories import add_customer, add_product, add_window
from radioplan.core.database import async_session_maker
from radioplan.schemas.reservation import ReservationCreate
from radioplan.services import capacity_store, scheduling
from radioplan.services.errors import CapacityExceeded, InvalidTransition

DAY = date(2030, 6, 3)

pytestmark = pytest.mark.anyio


async def _seed(capacity=120, dose_minutes=120):
    async with async_session_maker() as s:
        customer = await add_customer(s)
        product = await add_product(s, dose_processing_minutes=dose_minutes)
        window = await add_window(s, DAY, capacity_minutes=capacity)
        await s.commit()
        return customer.id, product.id, window.id


async def _try_create(customer_id, product_id, window_id):
    async with async_session_maker() as s:
        try:
            await scheduling.create_reservation(
                s,
                ReservationCreate(
                    customer_id=customer_id,
                    product_id=product_id,
                    requested_date=DAY,
                    requested_activity=10.0,
                    window_id=window_id,
                ),
            )
            await s.commit()
            return "ok"
        except CapacityExceeded:
            await s.rollback()
            return "exceeded"


async def test_no_double_booking():
    """N одновременных запросов на все свободные минуты: ровно один успех."""
    customer_id, product_id, window_id = await _seed()
    results = await asyncio.gather(*[_try_create(customer_id, product_id, window_id) for _ in range(5)])

    assert sorted(results) == ["exceeded"] * 4 + ["ok"]
    async with async_session_maker() as s:
        w = await capacity_store.get_window(s, window_id)
        assert (w.reserved_minutes, w.used_minutes) == (120, 0)


async def test_partial_requests_never_oversubscribe():
    customer_id, product_id, window_id = await _seed(capacity=100, dose_minutes=30)
    results = await asyncio.gather(*[_try_create(customer_id, product_id, window_id) for _ in range(6)])

    assert results.count("ok") == 3
    async with async_session_maker() as s:
        w = await capacity_store.get_window(s, window_id)
        assert w.reserved_minutes == 90
        assert w.used_minutes + w.reserved_minutes <= w.capacity_minutes


async def _try(action, reservation_id):
    async with async_session_maker() as s:
        try:
            await action(s, reservation_id)
            await s.commit()
            return "ok"
        except InvalidTransition:
            await s.rollback()
            return "invalid"


async def test_concurrent_cancel_releases_once():
    customer_id, product_id, window_id = await _seed(capacity=480, dose_minutes=60)
    async with async_session_maker() as s:
        r = await scheduling.create_reservation(
            s,
            ReservationCreate(
                customer_id=customer_id,
                product_id=product_id,
                requested_date=DAY,
                requested_activity=10.0,
                window_id=window_id,
            ),
        )
        await s.commit()

    results = await asyncio.gather(*[_try(scheduling.cancel_reservation, r.id) for _ in range(3)])
    assert sorted(results) == ["invalid", "invalid", "ok"]
    async with async_session_maker() as s:
        assert (await capacity_store.get_window(s, window_id)).reserved_minutes == 0
