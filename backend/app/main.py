from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.errors import BookingError
from backend.app.core.locks import LocalSlotLock, RedisSlotLock, SlotLock
from backend.app.core.logging_config import configure_logging, get_logger
from backend.app.core.redis_client import close_redis, init_redis
from backend.app.db.session import Database
from backend.app.services.engine import build_engine
import backend.app.routers.availability as availability
import backend.app.routers.health as health
import backend.app.routers.reservations as reservations
import backend.app.routers.restaurant as restaurant
import backend.app.routers.staff as staff

configure_logging(json_logs=not settings.DEBUG)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database = Database(settings.DATABASE_URL)
    await database.connect()
    if settings.AUTO_CREATE_SCHEMA:
        await database.create_all()

    redis_client = await init_redis(settings.REDIS_URL) if settings.REDIS_URL else None
    locks: SlotLock
    if redis_client is not None:
        locks = RedisSlotLock(redis_client, lease_seconds=settings.BOOKING_LOCK_LEASE_SECONDS)
    else:
        locks = LocalSlotLock()

    app.state.database = database
    app.state.redis = redis_client
    app.state.engine = build_engine(database, locks, settings)
    logger.info(
        "startup_complete",
        dialect=database.dialect,
        lock_backend=type(locks).__name__,
        timezone=settings.RESTAURANT_TIMEZONE,
    )
    try:
        yield
    finally:
        await close_redis(redis_client)
        await database.disconnect()
        logger.info("shutdown_complete")


app = FastAPI(
    title="Table Booking API",
    lifespan=lifespan,
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("booking_error", code=exc.code, detail=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(staff.router, prefix=settings.API_PREFIX)
app.include_router(restaurant.router, prefix=settings.API_PREFIX)
