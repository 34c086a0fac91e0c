from fastapi import APIRouter, Depends, HTTPException, Request
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.logging_config import get_logger
from backend.app.db.session import get_session

logger = get_logger(__name__)

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    """Basic liveness probe."""
    return {"ok": True}


@router.get("/readiness")
async def readiness(request: Request, session: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    """Ensure the database and, when configured, Redis are reachable."""
    try:
        await session.execute(text("SELECT 1"))
    except DBAPIError as exc:
        logger.warning("readiness_failed", component="database", error=str(exc))
        raise HTTPException(status_code=503, detail="Database unavailable") from exc

    redis_client = request.app.state.redis
    if redis_client is not None:
        try:
            await redis_client.ping()
        except RedisError as exc:
            logger.warning("readiness_failed", component="redis", error=str(exc))
            raise HTTPException(status_code=503, detail="Redis unavailable") from exc

    return {"ready": True}
