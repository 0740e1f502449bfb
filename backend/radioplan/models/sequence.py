from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from radioplan.core.database import Base


class NumberSequence(Base):
    """Сквозной счётчик номеров: одна строка на область (резервы, заказы, партии)."""
    __tablename__ = "number_sequences"

    scope: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
