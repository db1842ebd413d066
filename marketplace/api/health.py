import structlog
from fastapi import APIRouter

from marketplace import __version__
from marketplace.core.config import settings
from marketplace.db.session import engine

router = APIRouter()
logger = structlog.get_logger()


def _pool_metrics() -> dict:
    pool = engine.pool
    return {
        "pool_class": pool.__class__.__name__,
        "size": pool.size() if hasattr(pool, "size") else None,
        "checked_out": pool.checkedout() if hasattr(pool, "checkedout") else None,
        "overflow": pool.overflow() if hasattr(pool, "overflow") else None,
        "status": pool.status() if hasattr(pool, "status") else None,
    }


@router.get("/health")
def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__,
    }


@router.get("/health/database")
def database_health_check():
    """Round-trip a trivial query; failure details stay in the logs."""
    try:
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
    except Exception as exc:
        logger.warning("database_health_check_failed", error_type=type(exc).__name__)
        return {
            "status": "unhealthy",
            "pool": {},
            "reason": "Database connectivity check failed",
        }
    return {"status": "healthy", "pool": _pool_metrics()}


@router.get("/")
def root():
    return {
        "message": settings.PROJECT_NAME,
        "docs": f"{settings.API_PREFIX}/docs",
        "version": __version__,
    }
