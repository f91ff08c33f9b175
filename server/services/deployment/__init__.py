"""Deployment module - tag comparison, deploy webhook and scheduled checks."""

from .state import (
    CheckResult,
    CheckStatus,
    DeployResult,
    ManualTriggerResult,
    ManualTriggerStatus,
    StatusSnapshot,
    TriggerEvent,
    TriggerKind,
    TriggerOutcome,
)
from .webhook import DeployWebhook
from .manager import TagMonitor
from .triggers import ScheduledCheckTrigger

__all__ = [
    "CheckResult",
    "CheckStatus",
    "DeployResult",
    "ManualTriggerResult",
    "ManualTriggerStatus",
    "StatusSnapshot",
    "TriggerEvent",
    "TriggerKind",
    "TriggerOutcome",
    "DeployWebhook",
    "TagMonitor",
    "ScheduledCheckTrigger",
]
