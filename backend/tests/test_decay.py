"""Распад и обратный расчёт."""
import math
from datetime import datetime, timedelta

import pytest

from radioplan.services import decay

T0 = datetime(2030, 1, 1, 8, 0)


def test_half_life_halves_activity():
    assert decay.decay_factor(110, 110) == pytest.approx(0.5)
    assert decay.decayed_activity(200, 110, 220) == pytest.approx(50)
    assert decay.activity_at_time(200, T0, T0 + timedelta(minutes=110), 110) == pytest.approx(100)


def test_required_activity_inverts_decay():
    required = decay.required_initial_activity(100, 110, 55)
    assert decay.decayed_activity(required, 110, 55) == pytest.approx(100)
    assert required == pytest.approx(100 * math.sqrt(2))


def test_production_activity_grows_with_lead_time():
    """Чем раньше производство относительно доставки, тем больше нужно произвести."""
    delivery = T0 + timedelta(hours=6)
    values = [
        decay.production_activity(100, 110, delivery - timedelta(minutes=m), delivery)
        for m in (0, 30, 60, 120, 240)
    ]
    assert values[0] == pytest.approx(100)
    assert all(a < b for a, b in zip(values, values[1:]))


def test_overage_percent():
    delivery = T0 + timedelta(minutes=110)
    assert decay.production_activity(100, 110, T0, delivery, overage_percent=10) == pytest.approx(220)


def test_invalid_half_life():
    with pytest.raises(ValueError):
        decay.decay_constant(0)


def test_shelf_life():
    assert decay.is_within_shelf_life(T0, T0 + timedelta(hours=2), 120)
    assert not decay.is_within_shelf_life(T0, T0 + timedelta(hours=2, minutes=1), 120)


def test_backward_schedule_stages():
    delivery = T0 + timedelta(hours=8)
    s = decay.backward_schedule(delivery, travel_minutes=45, packaging_minutes=15, qc_minutes=30, synthesis_minutes=60)
    assert s.dispatch_time == delivery - timedelta(minutes=45)
    assert s.packaging_start == s.dispatch_time - timedelta(minutes=15)
    assert s.qc_start == s.packaging_start - timedelta(minutes=30)
    assert s.synthesis_start == delivery - timedelta(minutes=150)
