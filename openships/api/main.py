"""
FastAPI application serving the stored vessel data (read-only).

- Health: /health/live, /health/ready
- API: /api/v1/vessels/..., /api/v1/stats

Ingestion runs in a separate process (``openships-worker``).
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from openships.core.config import settings
from openships.api.health import router as health_router
from openships.api.router import router as api_router
from openships.db.database import dispose_engine
from openships.services.redis_client import close_redis


def _setup_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    _setup_logging()
    yield
    await dispose_engine()
    await close_redis()


app = FastAPI(
    title="OpenShips API",
    description="Current vessel positions and deduplicated position history",
    lifespan=lifespan,
)


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Welcome to the OpenShips API"}


app.include_router(health_router)
app.include_router(api_router, prefix=settings.API_PREFIX)
