"""Сквозные счётчики номеров документов. Значения не переиспользуются даже после удаления строк."""
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from radioplan.models import NumberSequence

RESERVATION = "reservation"
ORDER = "order"
BATCH = "batch"

SCOPES = (RESERVATION, ORDER, BATCH)


def _insert_missing(dialect_name: str, scopes):
    if dialect_name == "postgresql":
        insert = postgresql.insert
    elif dialect_name == "sqlite":
        insert = sqlite.insert
    else:
        raise RuntimeError(f"Диалект БД {dialect_name} не поддерживается счётчиками номеров")
    stmt = insert(NumberSequence).values([{"scope": s, "last_value": 0} for s in scopes])
    return stmt.on_conflict_do_nothing(index_elements=["scope"])


async def ensure_scopes(conn: AsyncConnection) -> None:
    """Строки счётчиков при старте приложения (существующие не трогаются)."""
    await conn.execute(_insert_missing(conn.dialect.name, SCOPES))


async def next_value(db: AsyncSession, scope: str) -> int:
    conn = await db.connection()
    # Строки счётчика может ещё не быть; параллельная вставка не конфликтует по ключу
    await db.execute(_insert_missing(conn.dialect.name, [scope]))
    await db.execute(
        update(NumberSequence)
        .where(NumberSequence.scope == scope)
        .values(last_value=NumberSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    r = await db.execute(select(NumberSequence.last_value).where(NumberSequence.scope == scope))
    return r.scalar_one()
