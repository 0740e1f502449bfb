"""Слоты доставки: свой лимит минут внутри окна, освобождение и списание вместе с окном."""
from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy import func, select

from factories import add_customer, add_product, add_slot, add_window
from radioplan.models import Reservation, ReservationStatus
from radioplan.schemas.capacity import SlotCreate
from radioplan.schemas.reservation import ReservationCreate
from radioplan.services import capacity_store, reservation_ledger, scheduling
from radioplan.services.errors import CapacityExceeded, DuplicateWindow, ValidationFailed

DAY = date(2030, 8, 20)

pytestmark = pytest.mark.anyio


async def _setup(db, slot_capacity=60, **slot_kw):
    customer = await add_customer(db)
    product = await add_product(db, dose_processing_minutes=10)
    window = await add_window(db, DAY, capacity_minutes=480)
    slot = await add_slot(db, window, capacity_minutes=slot_capacity, **slot_kw)
    return customer, product, window, slot


def _create(customer, product, slot, doses=3, **kw):
    return ReservationCreate(
        customer_id=customer.id,
        product_id=product.id,
        requested_date=DAY,
        requested_activity=20.0,
        number_of_doses=doses,
        slot_id=slot.id,
        **kw,
    )


async def _counters(db, window_id, slot_id):
    w = await capacity_store.get_window(db, window_id)
    s = await capacity_store.get_slot(db, slot_id)
    return (w.reserved_minutes, w.used_minutes), (s.reserved_minutes, s.used_minutes)


async def test_reservation_holds_slot_and_its_window(db):
    customer, product, window, slot = await _setup(db)
    r = await scheduling.create_reservation(db, _create(customer, product, slot))

    assert (r.window_id, r.slot_id) == (window.id, slot.id)
    assert await _counters(db, window.id, slot.id) == ((30, 0), (30, 0))


async def test_slot_oversubscription_leaves_window_unchanged(db):
    customer, product, window, slot = await _setup(db)
    await scheduling.create_reservation(db, _create(customer, product, slot, doses=4))
    with pytest.raises(CapacityExceeded) as e:
        await scheduling.create_reservation(db, _create(customer, product, slot, doses=3))

    assert e.value.details["slot_id"] == slot.id
    assert e.value.details["available_minutes"] == 20
    assert await _counters(db, window.id, slot.id) == ((40, 0), (40, 0))
    assert (await db.execute(select(func.count()).select_from(Reservation))).scalar_one() == 1


async def test_unavailable_slot_rejects_reserve(db):
    customer, product, window, slot = await _setup(db, is_available=False)
    with pytest.raises(CapacityExceeded):
        await scheduling.create_reservation(db, _create(customer, product, slot))
    assert await _counters(db, window.id, slot.id) == ((0, 0), (0, 0))


async def test_slot_of_other_window_rejected(db):
    customer, product, window, slot = await _setup(db)
    other = await add_window(db, DAY, start=time(17, 0), end=time(20, 0), capacity_minutes=180)
    with pytest.raises(ValidationFailed):
        await scheduling.create_reservation(db, _create(customer, product, slot, window_id=other.id))
    assert (await capacity_store.get_window(db, other.id)).reserved_minutes == 0


async def test_cancel_releases_slot(db):
    customer, product, window, slot = await _setup(db)
    r = await scheduling.create_reservation(db, _create(customer, product, slot))
    await scheduling.cancel_reservation(db, r.id, reason="перенос")
    assert await _counters(db, window.id, slot.id) == ((0, 0), (0, 0))


async def test_expire_releases_slot(db):
    customer, product, window, slot = await _setup(db)
    r = await scheduling.create_reservation(db, _create(customer, product, slot))
    r = await reservation_ledger.expire_reservation(db, r.id)
    assert r.status == ReservationStatus.EXPIRED
    assert await _counters(db, window.id, slot.id) == ((0, 0), (0, 0))


async def test_convert_commits_slot_and_uses_its_interval(db):
    customer, product, window, slot = await _setup(db)
    r = await scheduling.create_reservation(db, _create(customer, product, slot))
    await scheduling.confirm_reservation(db, r.id)
    _, order = await scheduling.convert_reservation(db, r.id)

    assert await _counters(db, window.id, slot.id) == ((0, 30), (0, 30))
    assert order.delivery_time_start == datetime.combine(DAY, time(9, 0))
    assert order.delivery_time_end == order.delivery_time_start + timedelta(minutes=60)


async def test_create_slot_validation(db):
    window = await add_window(db, DAY, capacity_minutes=480)
    body = dict(window_id=window.id, slot_time=datetime.combine(DAY, time(10, 0)), duration_minutes=30)

    slot = await capacity_store.create_slot(db, SlotCreate(capacity_minutes=30, **body))
    assert (slot.end_time, slot.is_available) == (datetime.combine(DAY, time(10, 30)), True)

    with pytest.raises(DuplicateWindow):
        await capacity_store.create_slot(db, SlotCreate(capacity_minutes=30, **body))
    with pytest.raises(ValidationFailed):
        await capacity_store.create_slot(db, SlotCreate(capacity_minutes=600, **{**body, "slot_time": datetime.combine(DAY, time(11, 0))}))
    with pytest.raises(ValidationFailed):
        await capacity_store.create_slot(db, SlotCreate(capacity_minutes=30, **{**body, "slot_time": datetime.combine(DAY, time(15, 45))}))


async def test_list_slots_filters(db):
    window = await add_window(db, DAY, capacity_minutes=480)
    other = await add_window(db, DAY + timedelta(days=1), capacity_minutes=480)
    a = await add_slot(db, window, at=time(9, 0))
    b = await add_slot(db, window, at=time(11, 0), is_available=False)
    c = await add_slot(db, other, at=time(9, 0))

    assert [s.id for s in await capacity_store.list_slots(db, window_id=window.id)] == [a.id, b.id]
    assert [s.id for s in await capacity_store.list_slots(db, day=DAY, is_available=True)] == [a.id]
    assert [s.id for s in await capacity_store.list_slots(db, day=other.date)] == [c.id]
