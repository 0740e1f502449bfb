"""Принятие предложения: повторная проверка заказов и ёмкости, создание партии."""
from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy import select

from factories import add_customer, add_order, add_product, add_window
from radioplan.models import Batch, Order, OrderStatus
from radioplan.schemas.planner import AcceptSuggestionRequest
from radioplan.services import capacity_store, scheduling
from radioplan.services.errors import InfeasibleSchedule, NoCapacity, StaleSuggestion

DAY = date(2030, 8, 6)
NOW = datetime.combine(DAY, time(0, 0))

pytestmark = pytest.mark.anyio


async def _setup(db, window_capacity=480, **product_kw):
    customer = await add_customer(db)
    product = await add_product(db, production_duration_minutes=60, transport_qc_buffer_minutes=30, **product_kw)
    window = await add_window(db, DAY, start=time(6, 0), end=time(14, 0), capacity_minutes=window_capacity)
    orders = [
        await add_order(db, customer, product, datetime.combine(DAY, time(10, 0))),
        await add_order(db, customer, product, datetime.combine(DAY, time(13, 0))),
    ]
    [suggestion] = await scheduling.suggest_batches(db, DAY, now=NOW)
    return product, window, orders, suggestion


def _accept(s, **kw):
    values = dict(
        product_id=s.product_id,
        order_ids=s.order_ids,
        suggested_start_time=s.suggested_start_time,
        suggested_end_time=s.suggested_end_time,
        total_activity=s.total_activity,
        window_id=s.window_id,
    )
    values.update(kw)
    return AcceptSuggestionRequest(**values)


async def test_accept_creates_batch_and_uses_window_minutes(db):
    product, window, orders, s = await _setup(db)
    result = await scheduling.accept_suggestion(db, _accept(s), actor="planner", now=NOW)

    assert result.window_id == window.id
    assert result.committed_minutes == 60
    w = await capacity_store.get_window(db, window.id)
    assert (w.used_minutes, w.reserved_minutes) == (60, 0)

    batch = (await db.execute(select(Batch).where(Batch.id == result.batch_id))).scalar_one()
    assert batch.planned_start_time == s.suggested_start_time
    assert batch.target_activity == pytest.approx(s.total_activity)
    assert batch.created_by == "planner"
    refreshed = (
        await db.execute(select(Order).where(Order.id.in_(s.order_ids)).execution_options(populate_existing=True))
    ).scalars().all()
    assert {(o.status, o.batch_id) for o in refreshed} == {(OrderStatus.SCHEDULED, batch.id)}

    assert await scheduling.suggest_batches(db, DAY, now=NOW) == []


async def test_accept_twice_is_stale(db):
    _, _, _, s = await _setup(db)
    await scheduling.accept_suggestion(db, _accept(s), now=NOW)
    with pytest.raises(StaleSuggestion):
        await scheduling.accept_suggestion(db, _accept(s), now=NOW)


async def test_changed_orders_make_suggestion_stale(db):
    _, _, orders, s = await _setup(db)
    # Доставку перенесли раньше: старт партии сдвигается
    orders[0].delivery_time_start = datetime.combine(DAY, time(9, 0))
    await db.flush()
    with pytest.raises(StaleSuggestion):
        await scheduling.accept_suggestion(db, _accept(s), now=NOW)


async def test_cancelled_order_makes_suggestion_stale(db):
    _, _, orders, s = await _setup(db)
    orders[1].status = OrderStatus.CANCELLED
    await db.flush()
    with pytest.raises(StaleSuggestion):
        await scheduling.accept_suggestion(db, _accept(s), now=NOW)


async def test_capacity_taken_after_suggestion(db):
    _, window, _, s = await _setup(db, window_capacity=100)
    await capacity_store.reserve_minutes(db, window.id, 50)
    with pytest.raises(StaleSuggestion) as exc:
        await scheduling.accept_suggestion(db, _accept(s), now=NOW)
    assert exc.value.details["reason"] == "capacity_changed"
    w = await capacity_store.get_window(db, window.id)
    assert (w.used_minutes, w.reserved_minutes) == (0, 50)


async def test_no_window_for_start(db):
    customer = await add_customer(db)
    product = await add_product(db)
    await add_order(db, customer, product, datetime.combine(DAY, time(10, 0)))
    [s] = await scheduling.suggest_batches(db, DAY, now=NOW)
    assert s.window_id is None
    with pytest.raises(NoCapacity):
        await scheduling.accept_suggestion(db, _accept(s), now=NOW)


async def test_infeasible_suggestion_cannot_be_accepted(db):
    _, _, _, s = await _setup(db, max_batch_activity=10.0)
    assert not s.feasible
    with pytest.raises(InfeasibleSchedule):
        await scheduling.accept_suggestion(db, _accept(s), now=NOW)


async def test_late_accept_after_start_passed(db):
    _, _, _, s = await _setup(db)
    with pytest.raises(InfeasibleSchedule):
        await scheduling.accept_suggestion(db, _accept(s), now=s.suggested_start_time + timedelta(minutes=1))
