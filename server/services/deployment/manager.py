"""Tag Monitor - compares the upstream release tag with stored state and triggers deploys.

Persistence order for a detected change is fixed:
webhook call -> latest_tag -> deploy_<id> log entry -> last_check.
The three writes are not atomic; a failure between them leaves partial state.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, TYPE_CHECKING

from constants import (
    CHECK_LOCK_KEY,
    DEPLOY_LOG_PREFIX,
    LAST_CHECK_KEY,
    LATEST_TAG_KEY,
    MANUAL_LOG_PREFIX,
    NEVER_CHECKED,
    NO_TAG,
)
from core.logging import get_logger
from core.store import StoreError
from .state import (
    CheckResult,
    CheckStatus,
    ManualTriggerResult,
    ManualTriggerStatus,
    StatusSnapshot,
    TriggerEvent,
    TriggerKind,
    TriggerOutcome,
    log_key,
    parse_timestamp,
    utc_timestamp,
)

if TYPE_CHECKING:
    from core.config import Settings
    from core.store import StateStore
    from services.github import GitHubReleaseClient
    from .webhook import DeployWebhook

logger = get_logger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class TagMonitor:
    """Check-and-trigger state transition plus status reporting.

    Holds no state of its own between calls; everything lives in the store.
    Without CHECK_LOCK_ENABLED, two concurrent checks that both read a stale
    tag will both trigger a deployment.
    """

    def __init__(
        self,
        store: "StateStore",
        github: "GitHubReleaseClient",
        webhook: "DeployWebhook",
        settings: "Settings",
    ):
        self.store = store
        self.github = github
        self.webhook = webhook
        self.settings = settings

    @property
    def repository(self) -> str:
        return self.settings.github_repository

    # =========================================================================
    # SCHEDULED CHECK
    # =========================================================================

    async def check_for_updates(self) -> CheckResult:
        """Fetch the latest tag and trigger a deployment if it differs from the stored one."""
        logger.info("Checking for tag updates", repository=self.repository)

        latest_tag = await self.github.fetch_latest_tag()
        if not latest_tag:
            return CheckResult(
                status=CheckStatus.FETCH_FAILED,
                error=f"Could not resolve latest release of {self.repository}",
                repository=self.repository,
            )

        if not self.settings.check_lock_enabled:
            return await self._compare_and_trigger(latest_tag)

        lease = uuid.uuid4().hex
        acquired = await self.store.put_if_absent(CHECK_LOCK_KEY, lease, ttl=self.settings.check_lock_ttl)
        if not acquired:
            logger.warning("Check skipped, another check holds the lease", tag=latest_tag)
            return CheckResult(
                status=CheckStatus.IN_PROGRESS,
                new_tag=latest_tag,
                error="Another check is comparing and triggering right now",
            )
        try:
            return await self._compare_and_trigger(latest_tag)
        finally:
            await self._release_lease(lease)

    async def _release_lease(self, lease: str) -> None:
        # Only our own lease; an expired one may have been re-acquired
        try:
            await self.store.delete_if_equals(CHECK_LOCK_KEY, lease)
        except StoreError as e:
            # Left to expire after check_lock_ttl
            logger.error("Failed to release check lease", error=str(e),
                         ttl=self.settings.check_lock_ttl)

    async def _compare_and_trigger(self, latest_tag: str) -> CheckResult:
        stored_tag = await self.store.get(LATEST_TAG_KEY)
        logger.info("Comparing tags", stored_tag=stored_tag, latest_tag=latest_tag)

        if stored_tag == latest_tag:
            timestamp = utc_timestamp()
            await self.store.put(LAST_CHECK_KEY, timestamp)
            return CheckResult(status=CheckStatus.UNCHANGED, new_tag=latest_tag, timestamp=timestamp)

        logger.info("Tag updated, triggering deployment", old_tag=stored_tag, new_tag=latest_tag)
        deploy = await self.webhook.trigger(latest_tag)

        if not deploy.success:
            # Stored tag stays put so the next check retries this transition.
            # last_check is not updated on this path either.
            logger.error("Deployment failed, keeping stored tag",
                         old_tag=stored_tag, new_tag=latest_tag,
                         error=deploy.error, config_error=deploy.config_error)
            return CheckResult(
                status=CheckStatus.DEPLOY_FAILED,
                new_tag=latest_tag,
                old_tag=stored_tag,
                error=deploy.error,
            )

        await self.store.put(LATEST_TAG_KEY, latest_tag)

        timestamp = utc_timestamp()
        event = TriggerEvent(
            tag=latest_tag,
            previous_tag=stored_tag,
            timestamp=timestamp,
            kind=TriggerKind.SCHEDULED,
            outcome=TriggerOutcome.SUCCESS,
        )
        await self._record_event(DEPLOY_LOG_PREFIX, event)

        await self.store.put(LAST_CHECK_KEY, timestamp)

        return CheckResult(
            status=CheckStatus.UPDATED,
            new_tag=latest_tag,
            old_tag=stored_tag,
            timestamp=timestamp,
        )

    # =========================================================================
    # MANUAL TRIGGER
    # =========================================================================

    async def manual_trigger(self) -> ManualTriggerResult:
        """Deploy the current upstream tag regardless of the stored tag.

        Does not update latest_tag, so a later scheduled check may deploy the
        same tag again.
        """
        current_tag = await self.github.fetch_latest_tag()
        if not current_tag:
            return ManualTriggerResult(
                status=ManualTriggerStatus.FETCH_FAILED,
                error=f"Could not resolve latest release of {self.repository}",
            )

        deploy = await self.webhook.trigger(current_tag)
        if not deploy.success:
            return ManualTriggerResult(
                status=ManualTriggerStatus.DEPLOY_FAILED,
                tag=current_tag,
                error=deploy.error,
            )

        timestamp = utc_timestamp()
        event = TriggerEvent(
            tag=current_tag,
            timestamp=timestamp,
            kind=TriggerKind.MANUAL,
            outcome=TriggerOutcome.SUCCESS,
        )
        await self._record_event(MANUAL_LOG_PREFIX, event)

        logger.info("Manual deployment triggered", tag=current_tag)
        return ManualTriggerResult(
            status=ManualTriggerStatus.TRIGGERED,
            tag=current_tag,
            timestamp=timestamp,
        )

    # =========================================================================
    # STATUS
    # =========================================================================

    async def get_status(self) -> StatusSnapshot:
        """Current tag, last check time and the most recent scheduled deployments."""
        current_tag = await self.store.get(LATEST_TAG_KEY)
        last_check = await self.store.get(LAST_CHECK_KEY)

        return StatusSnapshot(
            current_tag=current_tag or NO_TAG,
            last_check=last_check or NEVER_CHECKED,
            repository=self.repository,
            recent_deployments=await self.recent_deployments(),
        )

    async def recent_deployments(self) -> List[Dict[str, Any]]:
        """Last N deploy records by key order, newest first by their own timestamp."""
        keys = await self.store.list(DEPLOY_LOG_PREFIX)
        limit = self.settings.status_history_limit

        records: List[Dict[str, Any]] = []
        for key in keys[-limit:]:
            raw = await self.store.get(key)
            if not raw:
                continue
            try:
                record = json.loads(raw)
            except (json.JSONDecodeError, TypeError) as e:
                logger.error("Skipping unreadable deployment record", key=key, error=str(e))
                continue
            if not isinstance(record, dict):
                logger.error("Skipping malformed deployment record", key=key)
                continue
            records.append(record)

        records.sort(key=lambda r: parse_timestamp(r.get("timestamp")) or _OLDEST, reverse=True)
        return records

    async def _record_event(self, prefix: str, event: TriggerEvent) -> str:
        key = log_key(prefix)
        await self.store.put(key, json.dumps(event.to_record()))
        logger.info("Trigger event recorded", key=key, tag=event.tag, kind=event.kind.value)
        return key
