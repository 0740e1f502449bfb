"""Фоновое истечение TENTATIVE-резервов.

Каждый кандидат обрабатывается в своей сессии и транзакции: сбой одного резерва не
мешает остальным. Резерв, который успели подтвердить или отменить, пропускается.
"""
import asyncio
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from radioplan.config import settings
from radioplan.core.database import async_session_maker
from radioplan.core.logging_config import get_logger
from radioplan.schemas.reservation import ExpirySweepResponse
from radioplan.services import reservation_ledger
from radioplan.services.errors import InvalidTransition, NotFound

logger = get_logger(__name__)


async def run_expiry_sweep(
    now: Optional[datetime] = None,
    session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
    grace_minutes: Optional[int] = None,
) -> ExpirySweepResponse:
    now = now or datetime.utcnow()
    grace = settings.expiry_grace_minutes if grace_minutes is None else grace_minutes
    async with session_factory() as db:
        candidates = await reservation_ledger.find_expirable(db, now, grace)

    expired = skipped = failed = 0
    for reservation_id in candidates:
        try:
            async with session_factory() as db:
                async with db.begin():
                    await reservation_ledger.expire_reservation(db, reservation_id)
            expired += 1
        except (InvalidTransition, NotFound):
            skipped += 1
        except Exception:
            failed += 1
            logger.exception("Не удалось перевести резерв id=%s в EXPIRED", reservation_id)

    if candidates:
        logger.info(
            "Истечение резервов: кандидатов %s, истекло %s, пропущено %s, ошибок %s",
            len(candidates), expired, skipped, failed,
        )
    return ExpirySweepResponse(checked=len(candidates), expired=expired, skipped=skipped, failed=failed)


async def expiry_sweep_loop(interval_seconds: Optional[int] = None) -> None:
    interval = interval_seconds or settings.expiry_sweep_interval_seconds
    logger.info("Фоновое истечение резервов запущено, интервал %s с", interval)
    while True:
        try:
            await run_expiry_sweep()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Ошибка прохода истечения резервов")
        await asyncio.sleep(interval)


def start_expiry_sweep(interval_seconds: Optional[int] = None) -> asyncio.Task:
    return asyncio.create_task(expiry_sweep_loop(interval_seconds), name="reservation-expiry-sweep")
