"""Генерация окон ёмкости по диапазону дат и дневному шаблону времени."""
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from radioplan.config import settings
from radioplan.schemas.capacity import WindowDraft
from radioplan.services.errors import ValidationFailed


def weekend_days() -> frozenset[int]:
    """Выходные по date.weekday() из настроек (по умолчанию суббота и воскресенье)."""
    return frozenset(int(x) for x in settings.weekend_days.split(",") if x.strip())


def generate(
    start_date: date,
    end_date: date,
    daily_start_time: time,
    daily_end_time: time,
    capacity_minutes: int,
    exclude_weekends: bool = False,
    weekends: Optional[frozenset[int]] = None,
) -> List[WindowDraft]:
    """По одному окну на каждый подходящий день диапазона (включительно), счётчики нулевые.

    Чистая функция: в БД ничего не пишет, дубли отсекает capacity_store.provision_windows.
    """
    if end_date < start_date:
        raise ValidationFailed("Дата окончания раньше даты начала")
    if daily_end_time <= daily_start_time:
        raise ValidationFailed("Время окончания окна должно быть позже времени начала")
    if capacity_minutes <= 0:
        raise ValidationFailed("Ёмкость окна должна быть больше нуля")
    skip = (weekends if weekends is not None else weekend_days()) if exclude_weekends else frozenset()

    drafts: List[WindowDraft] = []
    day = start_date
    while day <= end_date:
        if day.weekday() not in skip:
            drafts.append(
                WindowDraft(
                    name=f"Окно {day.isoformat()}",
                    date=day,
                    start_time=datetime.combine(day, daily_start_time),
                    end_time=datetime.combine(day, daily_end_time),
                    capacity_minutes=capacity_minutes,
                )
            )
        day += timedelta(days=1)
    return drafts
