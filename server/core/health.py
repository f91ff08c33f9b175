"""Health check utilities.

Provides uptime tracking and health status for the /health endpoint.
"""
import time
from typing import Any, Dict, Optional, TYPE_CHECKING

from constants import CHECK_JOB_ID
from services import scheduler as cron_scheduler

if TYPE_CHECKING:
    from core.config import Settings
    from core.store import StateStore

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_store(store: Optional["StateStore"]) -> bool:
    """Check state store connectivity."""
    if store is None:
        return False
    return await store.ping()


async def get_health_status(store: Optional["StateStore"], settings: "Settings") -> Dict[str, Any]:
    """Get health status for /health endpoint.

    Returns:
        Dict containing status, uptime, store check and schedule info.
    """
    store_healthy = await check_store(store)

    return {
        "status": "healthy" if store_healthy else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "repository": settings.github_repository,
        "checks": {
            "store": store_healthy,
            "deploy_webhook_configured": bool(settings.render_webhook_url),
        },
        "store_backend": settings.store_backend or "none",
        "schedule": {
            "enabled": settings.scheduler_enabled,
            "expression": settings.check_schedule,
            "job": cron_scheduler.get_job_info(CHECK_JOB_ID),
        },
    }
