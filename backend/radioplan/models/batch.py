import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from radioplan.core.database import Base


class BatchStatus(str, enum.Enum):
    PLANNED = "PLANNED"


class Batch(Base):
    """Производственная партия. Дальнейший цикл (QC, выпуск, отгрузка) — у модуля производства."""
    __tablename__ = "batches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    batch_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    window_id: Mapped[Optional[int]] = mapped_column(ForeignKey("capacity_windows.id"), nullable=True)
    planned_start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    planned_end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    target_activity: Mapped[float] = mapped_column(Float, nullable=False)
    activity_unit: Mapped[str] = mapped_column(String(16), default="mCi", nullable=False)
    committed_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        Enum(BatchStatus), default=BatchStatus.PLANNED, nullable=False
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
