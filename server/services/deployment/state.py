"""Deployment state - trigger event records and per-operation results."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from constants import NO_TAG


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def log_key(prefix: str) -> str:
    """Build a time-ordered event log key (fixed-width nanosecond component)."""
    return f"{prefix}{time.time_ns():020d}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from a stored record; None if unusable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TriggerKind(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


class TriggerOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class TriggerEvent:
    """Immutable record of one deployment trigger."""
    tag: str
    timestamp: str
    kind: TriggerKind
    outcome: TriggerOutcome
    previous_tag: Optional[str] = None

    @property
    def status(self) -> str:
        # Manual records keep their own status label in the log
        if self.kind is TriggerKind.MANUAL:
            return f"manual_trigger_{self.outcome.value}"
        return self.outcome.value

    def to_record(self) -> Dict[str, Any]:
        """Stored JSON shape of the event."""
        record: Dict[str, Any] = {
            "tag": self.tag,
            "timestamp": self.timestamp,
            "status": self.status,
            "type": self.kind.value,
        }
        if self.kind is TriggerKind.SCHEDULED:
            record["previousTag"] = self.previous_tag
        return record


@dataclass
class DeployResult:
    """Outcome of a single deploy webhook call."""
    success: bool
    error: Optional[str] = None
    status_code: Optional[int] = None
    config_error: bool = False


class CheckStatus(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DEPLOY_FAILED = "deploy_failed"
    FETCH_FAILED = "fetch_failed"
    IN_PROGRESS = "in_progress"


@dataclass
class CheckResult:
    """Outcome of one check-and-trigger pass."""
    status: CheckStatus
    new_tag: Optional[str] = None
    old_tag: Optional[str] = None
    timestamp: Optional[str] = None
    error: Optional[str] = None
    repository: Optional[str] = None

    @property
    def http_status(self) -> int:
        if self.status in (CheckStatus.UPDATED, CheckStatus.UNCHANGED):
            return 200
        if self.status is CheckStatus.IN_PROGRESS:
            return 409
        return 500

    def to_dict(self) -> Dict[str, Any]:
        if self.status is CheckStatus.UPDATED:
            return {
                "message": "Tag updated and deployment triggered",
                "oldTag": self.old_tag or NO_TAG,
                "newTag": self.new_tag,
                "deploymentTriggered": True,
                "timestamp": self.timestamp,
            }
        if self.status is CheckStatus.UNCHANGED:
            return {
                "message": "No tag updates found",
                "currentTag": self.new_tag,
                "lastCheck": self.timestamp,
            }
        if self.status is CheckStatus.DEPLOY_FAILED:
            return {
                "message": "Tag updated but deployment failed",
                "oldTag": self.old_tag or NO_TAG,
                "newTag": self.new_tag,
                "deploymentTriggered": False,
                "error": self.error,
            }
        if self.status is CheckStatus.IN_PROGRESS:
            return {
                "error": "Check already in progress",
                "details": self.error,
            }
        return {
            "error": "Failed to fetch latest tag from GitHub",
            "details": self.error,
        }


class ManualTriggerStatus(str, Enum):
    TRIGGERED = "triggered"
    DEPLOY_FAILED = "deploy_failed"
    FETCH_FAILED = "fetch_failed"


@dataclass
class ManualTriggerResult:
    """Outcome of an on-demand deployment trigger."""
    status: ManualTriggerStatus
    tag: Optional[str] = None
    timestamp: Optional[str] = None
    error: Optional[str] = None

    @property
    def http_status(self) -> int:
        return 200 if self.status is ManualTriggerStatus.TRIGGERED else 500

    def to_dict(self) -> Dict[str, Any]:
        if self.status is ManualTriggerStatus.TRIGGERED:
            return {
                "message": "Manual deployment triggered successfully",
                "tag": self.tag,
                "timestamp": self.timestamp,
            }
        if self.status is ManualTriggerStatus.DEPLOY_FAILED:
            return {
                "error": "Failed to trigger deployment",
                "details": self.error,
                "tag": self.tag,
            }
        return {
            "error": "Failed to fetch current tag from GitHub",
            "details": self.error,
        }


@dataclass
class StatusSnapshot:
    """Point-in-time view of the stored state."""
    current_tag: str
    last_check: str
    repository: str
    recent_deployments: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": "active",
            "currentTag": self.current_tag,
            "lastCheck": self.last_check,
            "recentDeployments": self.recent_deployments,
            "repository": self.repository,
        }
