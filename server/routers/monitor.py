"""Tag monitor routes - check, manual trigger, status and discovery."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.container import container
from core.logging import get_logger
from core.store import StoreError
from services.deployment import TagMonitor

logger = get_logger(__name__)
router = APIRouter(tags=["monitor"])

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def get_tag_monitor() -> TagMonitor:
    return container.tag_monitor()


def _store_error_response(e: StoreError) -> JSONResponse:
    logger.error("State store error", operation=e.operation, key=e.key, error=str(e))
    return JSONResponse(
        status_code=500,
        content={
            "error": "State store error",
            "details": str(e),
            "operation": e.operation,
        }
    )


@router.get("/check-updates")
async def check_updates(monitor: TagMonitor = Depends(get_tag_monitor)):
    """Compare the latest release tag with the stored one and deploy on change."""
    try:
        result = await monitor.check_for_updates()
        return JSONResponse(content=result.to_dict(), status_code=result.http_status)
    except StoreError as e:
        return _store_error_response(e)
    except Exception as e:
        logger.error("Error checking for updates", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to check for updates", "details": str(e)}
        )


@router.post("/manual-trigger")
async def manual_trigger(monitor: TagMonitor = Depends(get_tag_monitor)):
    """Deploy the current release tag unconditionally."""
    try:
        result = await monitor.manual_trigger()
        return JSONResponse(content=result.to_dict(), status_code=result.http_status)
    except StoreError as e:
        return _store_error_response(e)
    except Exception as e:
        logger.error("Manual trigger failed", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Manual trigger failed", "details": str(e)}
        )


@router.get("/status")
async def get_status(monitor: TagMonitor = Depends(get_tag_monitor)):
    """Stored tag, last check time and recent deployments."""
    try:
        snapshot = await monitor.get_status()
        return JSONResponse(content=snapshot.to_dict())
    except StoreError as e:
        return _store_error_response(e)
    except Exception as e:
        logger.error("Error in get_status", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to get status", "details": str(e)}
        )


def discovery_document() -> dict:
    settings = container.settings()
    name = settings.github_repository.split("/")[-1]
    return {
        "message": f"GitHub Tag Monitor for {name}",
        "endpoints": {
            "/check-updates": "Check for tag updates",
            "/manual-trigger": "Manually trigger deployment",
            "/status": "Get current status",
            "/health": "Service health",
        },
    }


# Registered last: everything not matched above gets the discovery document
@router.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
async def discovery(path: str, request: Request):
    logger.debug("Discovery request", method=request.method, path=f"/{path}")
    return JSONResponse(content=discovery_document())
