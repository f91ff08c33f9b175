"""State store binding guard - rejects requests when no store is configured."""

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from constants import STORE_OPTIONAL_PATHS
from core.container import container
from core.logging import get_logger

logger = get_logger(__name__)


class StoreBindingMiddleware(BaseHTTPMiddleware):
    """Fail every request with 500 before routing when the state store is unbound."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in STORE_OPTIONAL_PATHS:
            return await call_next(request)

        if container.store() is None:
            logger.error("Request rejected, state store not bound", path=request.url.path)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "State store binding not found",
                    "details": "STORE_BACKEND is not configured; set it to sqlite, redis or memory",
                }
            )

        return await call_next(request)
