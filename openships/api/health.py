"""Health endpoints: liveness and readiness."""
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from openships.db.database import get_sessionmaker
from openships.services.redis_client import get_redis

router = APIRouter(tags=["health"])
logger = logging.getLogger("openships.health")


@router.get("/health/live")
async def liveness():
    """Liveness: process is running. No dependencies checked."""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness():
    """Readiness: configured DB and Redis are reachable."""
    errors = []
    factory = get_sessionmaker()
    if factory is not None:
        try:
            async with factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("DB readiness check failed: %s", e)
            errors.append("database")

    try:
        r = await get_redis()
        if r is not None:
            await r.ping()
    except Exception as e:
        logger.warning("Redis readiness check failed: %s", e)
        errors.append("redis")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "errors": errors},
        )
    return {"status": "ok"}
