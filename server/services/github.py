"""GitHub releases client - resolves the latest release tag of the watched repository."""

from typing import Dict, Optional

import httpx

from constants import GITHUB_ACCEPT_HEADER
from core.config import Settings
from core.logging import get_logger, log_api_call

logger = get_logger(__name__)


class GitHubReleaseClient:
    """Fetches the latest release tag. Never raises; any failure yields None."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @property
    def repository(self) -> str:
        return self.settings.github_repository

    @property
    def latest_release_url(self) -> str:
        return f"{self.settings.github_api_url}/repos/{self.repository}/releases/latest"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": GITHUB_ACCEPT_HEADER,
        }
        # Optional: only raises the rate limit
        if self.settings.github_token:
            headers["Authorization"] = f"token {self.settings.github_token}"
        return headers

    async def fetch_latest_tag(self) -> Optional[str]:
        """Return the tag name of the latest release, or None on any failure."""
        url = self.latest_release_url
        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout, follow_redirects=True,
                                         transport=self._transport) as client:
                response = await client.get(url, headers=self._headers())

            if not response.is_success:
                log_api_call(logger, "github", "latest_release", False,
                             status_code=response.status_code, repository=self.repository)
                logger.error("GitHub API error",
                             status_code=response.status_code,
                             reason=response.reason_phrase,
                             body=response.text)
                return None

            try:
                data = response.json()
            except ValueError as e:
                logger.error("GitHub API returned invalid JSON", error=str(e), body=response.text)
                return None

            tag = data.get("tag_name") if isinstance(data, dict) else None
            if not isinstance(tag, str) or not tag:
                logger.error("GitHub release has no tag_name", repository=self.repository)
                return None

            log_api_call(logger, "github", "latest_release", True,
                         status_code=response.status_code, repository=self.repository, tag=tag)
            return tag

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error("Error fetching latest tag", repository=self.repository,
                         error=str(e), error_type=type(e).__name__)
            return None
