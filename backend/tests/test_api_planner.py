"""HTTP: предложения партий и их принятие."""
from datetime import date, datetime, time

import pytest

from factories import add_customer, add_order, add_product, add_window, future_day, seed


@pytest.fixture
def day():
    return future_day()


@pytest.fixture
def setup(day):
    async def _setup(db):
        customer = await add_customer(db)
        product = await add_product(db, production_duration_minutes=60, transport_qc_buffer_minutes=30)
        window = await add_window(db, day, start=time(6, 0), end=time(14, 0))
        o1 = await add_order(db, customer, product, datetime.combine(day, time(10, 0)))
        o2 = await add_order(db, customer, product, datetime.combine(day, time(13, 0)))
        return {"window_id": window.id, "order_ids": [o1.id, o2.id], "product_id": product.id}
    return seed(_setup)


def test_preview_suggest_accept(client, day, setup):
    r = client.get("/planner/orders", params={"date": day.isoformat()})
    assert r.status_code == 200
    assert [o["order_id"] for o in r.json()] == setup["order_ids"]

    r = client.post("/planner/suggestions", json={"date": day.isoformat()})
    assert r.status_code == 200
    [s] = r.json()
    assert s["feasible"] is True
    assert s["order_ids"] == setup["order_ids"]
    assert s["window_id"] == setup["window_id"]
    assert s["suggested_start_time"] == f"{day.isoformat()}T08:30:00"

    accept = {k: s[k] for k in ("product_id", "order_ids", "suggested_start_time", "suggested_end_time", "total_activity", "window_id")}
    r = client.post("/planner/suggestions/accept", json=accept, headers={"X-Actor": "planner"})
    assert r.status_code == 201
    assert r.json()["committed_minutes"] == 60

    window = client.get(f"/capacity/windows/{setup['window_id']}").json()
    assert window["used_minutes"] == 60

    r = client.post("/planner/suggestions/accept", json=accept)
    assert r.status_code == 409
    assert r.json()["code"] == "STALE_SUGGESTION"
    assert client.post("/planner/suggestions", json={"date": day.isoformat()}).json() == []


def test_accept_requires_orders(client, setup):
    r = client.post(
        "/planner/suggestions/accept",
        json={
            "product_id": setup["product_id"],
            "order_ids": [],
            "suggested_start_time": "2030-01-01T08:00:00",
            "suggested_end_time": "2030-01-01T09:00:00",
            "total_activity": 10,
        },
    )
    assert r.status_code == 422
