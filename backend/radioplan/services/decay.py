"""Радиоактивный распад и обратный расчёт времени производства.

Время везде в минутах, активность в единицах заказа (mCi, MBq): формулы от единиц не зависят.
"""
import math
from datetime import datetime, timedelta
from typing import NamedTuple


class BackwardSchedule(NamedTuple):
    synthesis_start: datetime
    qc_start: datetime
    packaging_start: datetime
    dispatch_time: datetime
    delivery_time: datetime


def decay_constant(half_life_minutes: float) -> float:
    """λ = ln(2) / T½."""
    if half_life_minutes <= 0:
        raise ValueError("Период полураспада должен быть больше нуля")
    return math.log(2) / half_life_minutes


def elapsed_minutes(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def decay_factor(half_life_minutes: float, elapsed: float) -> float:
    """Доля активности, оставшаяся через elapsed минут: exp(-λ·t)."""
    return math.exp(-decay_constant(half_life_minutes) * elapsed)


def decayed_activity(initial_activity: float, half_life_minutes: float, elapsed: float) -> float:
    return initial_activity * decay_factor(half_life_minutes, elapsed)


def required_initial_activity(target_activity: float, half_life_minutes: float, elapsed: float) -> float:
    """Сколько нужно произвести, чтобы через elapsed минут осталось target_activity."""
    return target_activity * math.exp(decay_constant(half_life_minutes) * elapsed)


def activity_at_time(
    initial_activity: float,
    calibration_time: datetime,
    target_time: datetime,
    half_life_minutes: float,
) -> float:
    return decayed_activity(
        initial_activity, half_life_minutes, elapsed_minutes(calibration_time, target_time)
    )


def production_activity(
    requested_activity: float,
    half_life_minutes: float,
    production_time: datetime,
    delivery_time: datetime,
    overage_percent: float = 0.0,
) -> float:
    """Активность на момент производства, дающая requested_activity к доставке (+ запас в %)."""
    elapsed = elapsed_minutes(production_time, delivery_time)
    required = required_initial_activity(requested_activity, half_life_minutes, elapsed)
    return required * (1 + overage_percent / 100)


def is_within_shelf_life(production_time: datetime, target_time: datetime, shelf_life_minutes: float) -> bool:
    elapsed = elapsed_minutes(production_time, target_time)
    return 0 <= elapsed <= shelf_life_minutes


def backward_schedule(
    delivery_time: datetime,
    travel_minutes: float,
    packaging_minutes: float,
    qc_minutes: float,
    synthesis_minutes: float,
) -> BackwardSchedule:
    """Обратный расчёт от времени доставки: отправка ← упаковка ← QC ← синтез."""
    dispatch = delivery_time - timedelta(minutes=travel_minutes)
    packaging_start = dispatch - timedelta(minutes=packaging_minutes)
    qc_start = packaging_start - timedelta(minutes=qc_minutes)
    synthesis_start = qc_start - timedelta(minutes=synthesis_minutes)
    return BackwardSchedule(
        synthesis_start=synthesis_start,
        qc_start=qc_start,
        packaging_start=packaging_start,
        dispatch_time=dispatch,
        delivery_time=delivery_time,
    )
