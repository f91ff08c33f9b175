"""Scheduled check trigger - runs the tag check on a cron schedule.

A tick only spawns the check; it does not wait for it. The check then runs to
completion in the background and its outcome is only logged.
"""

import asyncio
from typing import Optional, Set, TYPE_CHECKING

from constants import CHECK_JOB_ID
from core.logging import get_logger
from core.store import StoreError
from services import scheduler as cron_scheduler
from .state import CheckResult

if TYPE_CHECKING:
    from core.config import Settings
    from .manager import TagMonitor

logger = get_logger(__name__)


class ScheduledCheckTrigger:
    """Owns the cron job and the background check tasks it spawns."""

    def __init__(self, monitor: "TagMonitor", settings: "Settings"):
        self.monitor = monitor
        self.settings = settings
        self._tasks: Set[asyncio.Task] = set()
        self._job_id: Optional[str] = None

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def setup(self) -> str:
        """Register the periodic check with the scheduler."""
        self._job_id = cron_scheduler.register_cron_job(
            job_id=CHECK_JOB_ID,
            cron_expression=self.settings.check_schedule,
            callback=self.tick,
            timezone=self.settings.scheduler_timezone,
        )
        logger.info("Scheduled check registered",
                    job_id=self._job_id, expr=self.settings.check_schedule)
        return self._job_id

    async def tick(self) -> asyncio.Task:
        """Scheduler callback: start a check and return without awaiting it.

        Async so APScheduler runs it on the event loop rather than in a thread.
        """
        task = asyncio.get_running_loop().create_task(self._run_check())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_check(self) -> Optional[CheckResult]:
        try:
            result = await self.monitor.check_for_updates()
        except StoreError as e:
            logger.error("Scheduled check failed on state store",
                         operation=e.operation, key=e.key, error=str(e))
            return None
        except Exception as e:
            logger.error("Scheduled check failed", error=str(e), exc_info=True)
            return None

        log = logger.info if result.http_status < 400 else logger.error
        log("Scheduled check finished", **{"result": result.status.value, **result.to_dict()})
        return result

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait briefly for in-flight checks, e.g. on shutdown."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled in-flight checks on shutdown", count=len(pending))
