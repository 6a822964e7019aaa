"""Background task scheduler for periodic jobs (presence sweep, long sessions)."""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from cashdesk.core.config import settings
from cashdesk.db.session import SessionLocal, session_scope
from cashdesk.services.cashier_session_service import CashierSessionService
from cashdesk.services.event_publisher import publish_event
from cashdesk.services.monitoring_hub import hub
from cashdesk.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Lightweight asyncio-based task scheduler.

    Runs registered tasks at fixed intervals. State is ephemeral and does
    not survive restarts.
    """

    def __init__(self, tick_seconds: Optional[int] = None):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._running = False
        self.tick_seconds = tick_seconds or settings.scheduler_tick_seconds

    async def run_due(self, now: Optional[datetime] = None) -> int:
        """Run every task whose next run time has passed. Returns how many ran."""
        now = now or datetime.now(timezone.utc)
        ran = 0
        for name, task in list(self._tasks.items()):
            if now < task["next_run"]:
                continue
            try:
                if inspect.iscoroutinefunction(task["func"]):
                    await task["func"]()
                else:
                    task["func"]()
                task["last_run"] = now
                task["run_count"] = task.get("run_count", 0) + 1
                task["last_error"] = None
                logger.debug(f"Scheduled task '{name}' completed")
            except Exception as e:
                task["last_error"] = str(e)
                logger.error(f"Scheduled task '{name}' failed: {e}")
            task["next_run"] = now + task["interval"]
            ran += 1
        return ran

    async def start(self):
        """Start the scheduler loop."""
        self._running = True
        logger.info("Task scheduler started")
        while self._running:
            await self.run_due()
            await asyncio.sleep(self.tick_seconds)

    def stop(self):
        self._running = False

    def add_task(self, name: str, func: Callable, interval_seconds: int, first_run_delay: int = 10):
        self._tasks[name] = {
            "func": func,
            "interval": timedelta(seconds=interval_seconds),
            "next_run": datetime.now(timezone.utc) + timedelta(seconds=first_run_delay),
            "last_run": None,
            "run_count": 0,
            "last_error": None,
        }
        logger.info(f"Scheduled task '{name}' every {interval_seconds}s")

    def remove_task(self, name: str):
        self._tasks.pop(name, None)

    def get_status(self) -> Dict[str, Any]:
        return {
            name: {
                "last_run": t["last_run"].isoformat() if t["last_run"] else None,
                "next_run": t["next_run"].isoformat(),
                "interval_seconds": int(t["interval"].total_seconds()),
                "run_count": t.get("run_count", 0),
                "last_error": t.get("last_error"),
            }
            for name, t in self._tasks.items()
        }


# =============================================================================
# Jobs
# =============================================================================

async def sweep_presence() -> None:
    await hub.sweep_stale()


async def check_long_sessions(session_factory: Callable = SessionLocal) -> int:
    """Publish a long-session event for each entry open past the threshold."""
    with session_scope(session_factory) as db:
        events = CashierSessionService(db).find_long_running(settings.long_session_minutes)
        for event in events:
            await publish_event(db, event)
        return len(events)


def purge_expired_notifications(session_factory: Callable = SessionLocal) -> int:
    with session_scope(session_factory) as db:
        deleted = NotificationService(db).purge_expired()
    if deleted:
        logger.info(f"Purged {deleted} expired notification(s)")
    return deleted


def register_default_tasks(target: "TaskScheduler") -> None:
    target.add_task("presence-sweep", sweep_presence, settings.presence_sweep_interval_seconds)
    target.add_task("long-session-check", check_long_sessions, settings.long_session_check_interval_seconds)
    target.add_task("notification-retention", purge_expired_notifications, 24 * 60 * 60)


scheduler = TaskScheduler()
