from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from inventory_api.database import engine
from inventory_api.utils.cache import cache_service

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/",
    summary="Health check",
    description="Basic health check endpoint."
)
def health_check():
    """Simple health check."""
    return {"status": "healthy"}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check whether the database and the Redis cache are reachable."
)
def readiness_check():
    """
    Readiness check for all dependencies.

    The database is required; Redis is reported but optional because
    the product cache degrades to database reads.
    """
    checks = {
        "database": False,
        "redis": False
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            checks["database"] = True
    except SQLAlchemyError as e:
        checks["database_error"] = str(e)

    checks["redis"] = cache_service.ping()

    return {
        "status": "ready" if checks["database"] else "not_ready",
        "checks": checks
    }
