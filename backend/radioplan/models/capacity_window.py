"""Окна ёмкости: дата, интервал времени, минуты (ёмкость, использовано, в резерве)."""
import datetime as dt

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from radioplan.core.database import Base


class CapacityWindow(Base):
    """Окно ёмкости производства/доставки.

    Счётчики used_minutes и reserved_minutes меняются только через
    services.capacity_store (reserve/release/commit), напрямую их не присваивать.
    """
    __tablename__ = "capacity_windows"
    __table_args__ = (
        UniqueConstraint("date", "start_time", "end_time", name="uq_capacity_window_interval"),
        CheckConstraint("capacity_minutes > 0", name="ck_window_capacity_positive"),
        CheckConstraint("used_minutes >= 0", name="ck_window_used_non_negative"),
        CheckConstraint("reserved_minutes >= 0", name="ck_window_reserved_non_negative"),
        CheckConstraint(
            "used_minutes + reserved_minutes <= capacity_minutes",
            name="ck_window_not_oversubscribed",
        ),
        CheckConstraint("end_time > start_time", name="ck_window_interval"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    capacity_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    used_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reserved_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow
    )
