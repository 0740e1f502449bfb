import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from radioplan.config import settings
from radioplan.core.database import Base, engine
from radioplan.core.logging_config import get_logger, setup_logging
from radioplan.api.capacity import router as capacity_router
from radioplan.api.planner import router as planner_router
from radioplan.api.reservations import router as reservations_router
from radioplan.services.errors import ErrorCode, SchedulingError
from radioplan.services.expiry_sweep import start_expiry_sweep
from radioplan.services.sequences import ensure_scopes

setup_logging()
logger = get_logger(__name__)

ERROR_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.CAPACITY_EXCEEDED: 409,
    ErrorCode.NO_CAPACITY: 409,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.STALE_SUGGESTION: 409,
    ErrorCode.DUPLICATE_WINDOW: 409,
    ErrorCode.INFEASIBLE_SCHEDULE: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await ensure_scopes(conn)
    logger.info("Таблицы БД проверены/созданы")
    sweep = start_expiry_sweep() if settings.expiry_sweep_enabled else None
    yield
    if sweep is not None:
        sweep.cancel()
        try:
            await sweep
        except asyncio.CancelledError:
            pass
    await engine.dispose()


app = FastAPI(title="Планирование производства радиофармпрепаратов", version="1.0.0", lifespan=lifespan)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status_code = ERROR_STATUS.get(exc.code, 500)
    if status_code == 500:
        # Внутренние ошибки наружу без подробностей
        logger.error("%s %s: %s %s %s", request.method, request.url.path, exc.code.value, exc.message, exc.details)
        return JSONResponse(
            status_code=500,
            content={"detail": "Внутренняя ошибка сервера", "code": ErrorCode.INTERNAL_ERROR.value, "details": {}},
        )
    logger.info("%s %s: %s %s", request.method, request.url.path, exc.code.value, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code.value, "details": exc.details},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Необработанная ошибка: %s", exc)
    detail = "Внутренняя ошибка сервера"
    err_str = str(exc).lower()
    if "duplicate key" in err_str or "unique constraint" in err_str:
        detail = "Конфликт данных (дубликат). Обновите данные и повторите."
    elif "foreign key" in err_str or "violates foreign key" in err_str:
        detail = "Ошибка связи с данными (заказчик, продукт или окно не найдены)."
    elif "check constraint" in err_str:
        detail = "Нарушено ограничение ёмкости окна. Обновите данные и повторите."
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.include_router(reservations_router)
app.include_router(capacity_router)
app.include_router(planner_router)


@app.get("/health")
def health():
    return {"status": "ok"}
