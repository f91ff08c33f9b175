"""Deploy webhook - notifies the hosting platform that a new tag should be deployed."""

from typing import Optional

import httpx

from constants import TRIGGER_REASON
from core.config import Settings
from core.logging import get_logger, log_api_call
from .state import DeployResult, utc_timestamp

logger = get_logger(__name__)


class DeployWebhook:
    """Single-attempt POST to the configured deploy hook (no retries)."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    async def trigger(self, tag: str) -> DeployResult:
        """Post a deploy notification for tag.

        A missing webhook URL is reported as a configuration failure before any
        network call is made.
        """
        webhook_url = self.settings.render_webhook_url
        if not webhook_url:
            logger.error("Deploy webhook not configured", tag=tag)
            return DeployResult(
                success=False,
                error="RENDER_WEBHOOK_URL environment variable not set",
                config_error=True,
            )

        payload = {
            "trigger": TRIGGER_REASON,
            "tag": tag,
            "repository": self.settings.github_repository,
            "timestamp": utc_timestamp(),
        }

        logger.info("Triggering deployment", tag=tag)

        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout, follow_redirects=True,
                                         transport=self._transport) as client:
                response = await client.post(
                    webhook_url,
                    json=payload,
                    headers={
                        "Content-Type": "application/json",
                        "User-Agent": self.settings.user_agent,
                    },
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("Error triggering deployment", tag=tag,
                         error=str(e), error_type=type(e).__name__)
            return DeployResult(success=False, error=str(e) or type(e).__name__)

        log_api_call(logger, "deploy_webhook", "trigger", response.is_success,
                     status_code=response.status_code, tag=tag)

        if response.is_success:
            logger.info("Deployment triggered successfully", tag=tag)
            return DeployResult(success=True, status_code=response.status_code)

        logger.error("Deploy webhook failed", status_code=response.status_code, body=response.text)
        return DeployResult(
            success=False,
            error=f"Webhook failed: {response.status_code} - {response.text}",
            status_code=response.status_code,
        )
