"""
GitHub tag monitor service.

Polls the watched repository's latest release tag and fires the deploy webhook
once per detected change. State lives in the configured key-value store.
"""

# Performance: Install uvloop if available (Linux/macOS only)
try:
    import uvloop
    uvloop.install()
except ImportError:
    pass  # Windows - uvloop not available, use default asyncio

import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from middleware.store import StoreBindingMiddleware
from routers import monitor

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting tag monitor", repository=settings.github_repository)
    set_startup_time()

    store = container.store()
    if store is not None:
        await store.startup()

    from services.scheduler import start_scheduler, shutdown_scheduler
    check_trigger = container.check_trigger()
    if store is not None and settings.scheduler_enabled:
        check_trigger.setup()
        start_scheduler()
        if settings.check_on_startup:
            await check_trigger.tick()
    else:
        logger.warning("Scheduled checks disabled",
                       scheduler_enabled=settings.scheduler_enabled,
                       store_bound=store is not None)

    logger.info("Services started successfully")
    yield

    shutdown_scheduler()
    await check_trigger.drain()
    if store is not None:
        await store.shutdown()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="GitHub Tag Monitor",
    version="1.0.0",
    description="Watches a GitHub repository's latest release and triggers deployments on change",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            content = {
                "error": "Internal server error",
                "details": f"{type(e).__name__}: {str(e)}",
            }
            if container.settings().debug:
                content["stack"] = traceback.format_exc().splitlines()[-5:]
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# Added last so it wraps the store guard as well
app.add_middleware(StoreBindingMiddleware)
app.add_middleware(CatchAllExceptionsMiddleware)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return await get_health_status(container.store(), container.settings())


# Monitor routes include the catch-all discovery route, so they go last
app.include_router(monitor.router)


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting tag monitor",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers
    )
