"""Справочные данные, которыми владеют другие модули: продукт и заказчик.

Ядро планирования только читает их.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from radioplan.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    half_life_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    production_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    dose_processing_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_batch_activity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    transport_qc_buffer_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Детальный обратный расчёт (если заданы — заменяют production_duration/buffer)
    synthesis_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    qc_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    packaging_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    shelf_life_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    travel_time_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
