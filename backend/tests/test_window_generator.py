"""Генерация окон: шаблон дня, выходные, повторный запуск."""
from datetime import date, time

import pytest
from sqlalchemy import func, select

from radioplan.models import CapacityWindow
from radioplan.schemas.capacity import WindowGenerateRequest
from radioplan.services import scheduling, window_generator
from radioplan.services.errors import ValidationFailed

MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 13)


def test_one_window_per_day_with_zero_counters():
    drafts = window_generator.generate(MONDAY, SUNDAY, time(7, 0), time(15, 0), 480)
    assert len(drafts) == 7
    first = drafts[0]
    assert first.date == MONDAY
    assert first.start_time.hour == 7 and first.end_time.hour == 15
    assert first.capacity_minutes == 480
    assert first.name == "Окно 2030-01-07"


def test_exclude_weekends():
    drafts = window_generator.generate(MONDAY, SUNDAY, time(7, 0), time(15, 0), 480, exclude_weekends=True)
    assert [d.date.weekday() for d in drafts] == [0, 1, 2, 3, 4]


def test_custom_weekend_days():
    drafts = window_generator.generate(
        MONDAY, SUNDAY, time(7, 0), time(15, 0), 480, exclude_weekends=True, weekends=frozenset({4, 5})
    )
    assert 4 not in [d.date.weekday() for d in drafts]
    assert 6 in [d.date.weekday() for d in drafts]


@pytest.mark.parametrize(
    "start,end,t0,t1,cap",
    [
        (SUNDAY, MONDAY, time(7, 0), time(15, 0), 480),
        (MONDAY, SUNDAY, time(15, 0), time(7, 0), 480),
        (MONDAY, SUNDAY, time(7, 0), time(7, 0), 480),
        (MONDAY, SUNDAY, time(7, 0), time(15, 0), 0),
    ],
)
def test_invalid_input_rejected(start, end, t0, t1, cap):
    with pytest.raises(ValidationFailed):
        window_generator.generate(start, end, t0, t1, cap)


@pytest.mark.anyio
async def test_generate_twice_does_not_duplicate(db):
    """Повторная генерация по тому же диапазону пропускает уже созданные окна."""
    req = WindowGenerateRequest(
        start_date=MONDAY,
        end_date=SUNDAY,
        daily_start_time=time(7, 0),
        daily_end_time=time(15, 0),
        capacity_minutes=480,
        exclude_weekends=True,
    )
    created, skipped = await scheduling.generate_windows(db, req)
    assert (len(created), skipped) == (5, 0)

    created, skipped = await scheduling.generate_windows(db, req)
    assert (len(created), skipped) == (0, 5)

    count = (await db.execute(select(func.count()).select_from(CapacityWindow))).scalar_one()
    assert count == 5


@pytest.mark.anyio
async def test_overlapping_template_skipped_unless_allowed(db):
    base = dict(start_date=MONDAY, end_date=MONDAY, capacity_minutes=120)
    await scheduling.generate_windows(
        db, WindowGenerateRequest(daily_start_time=time(8, 0), daily_end_time=time(12, 0), **base)
    )
    created, skipped = await scheduling.generate_windows(
        db, WindowGenerateRequest(daily_start_time=time(10, 0), daily_end_time=time(14, 0), **base)
    )
    assert (len(created), skipped) == (0, 1)

    created, skipped = await scheduling.generate_windows(
        db,
        WindowGenerateRequest(daily_start_time=time(10, 0), daily_end_time=time(14, 0), allow_overlap=True, **base),
    )
    assert (len(created), skipped) == (1, 0)
