"""Слоты доставки внутри окна ёмкости: свой лимит минут на интервал отгрузки."""
import datetime as dt

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from radioplan.core.database import Base


class DeliverySlot(Base):
    """Слот доставки. Счётчики минут меняются только через services.capacity_store."""
    __tablename__ = "delivery_slots"
    __table_args__ = (
        UniqueConstraint("window_id", "slot_time", name="uq_delivery_slot_time"),
        CheckConstraint("duration_minutes > 0", name="ck_slot_duration_positive"),
        CheckConstraint("capacity_minutes > 0", name="ck_slot_capacity_positive"),
        CheckConstraint("used_minutes >= 0", name="ck_slot_used_non_negative"),
        CheckConstraint("reserved_minutes >= 0", name="ck_slot_reserved_non_negative"),
        CheckConstraint(
            "used_minutes + reserved_minutes <= capacity_minutes",
            name="ck_slot_not_oversubscribed",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    window_id: Mapped[int] = mapped_column(ForeignKey("capacity_windows.id"), nullable=False, index=True)
    slot_time: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    used_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reserved_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow
    )

    @property
    def end_time(self) -> dt.datetime:
        return self.slot_time + dt.timedelta(minutes=self.duration_minutes)
