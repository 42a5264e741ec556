# ================================
# BACKGROUND SCHEDULER (core/scheduler.py)
# ================================

import asyncio
import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, Any, Optional, Callable
import traceback

from app.core.database import SessionLocal
from app.config import settings

logger = logging.getLogger(__name__)

class BackgroundScheduler:
    """Simple background task scheduler for periodic tasks"""

    def __init__(self):
        self.tasks: Dict[str, Dict[str, Any]] = {}
        self.running = False
        self._task_handles: Dict[str, asyncio.Task] = {}

    def add_task(
        self,
        name: str,
        func: Callable,
        interval_seconds: int,
        initial_delay: int = 0,
        enabled: bool = True
    ):
        """Add a periodic task to the scheduler"""
        self.tasks[name] = {
            "func": func,
            "interval": interval_seconds,
            "initial_delay": initial_delay,
            "enabled": enabled,
            "last_run": None,
            "next_run": None,
            "run_count": 0,
            "error_count": 0,
            "last_error": None
        }
        logger.info(f"Scheduled task '{name}' with interval {interval_seconds}s")

    async def start(self):
        """Start the scheduler"""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.running = True
        logger.info("Starting background scheduler")

        # Start all enabled tasks
        for task_name, task_config in self.tasks.items():
            if task_config["enabled"]:
                self._task_handles[task_name] = asyncio.create_task(
                    self._run_task_loop(task_name)
                )

    async def stop(self):
        """Stop the scheduler"""
        self.running = False
        logger.info("Stopping background scheduler")

        # Cancel all running tasks
        for task_name, task_handle in self._task_handles.items():
            task_handle.cancel()
            try:
                await task_handle
            except asyncio.CancelledError:
                pass

        self._task_handles.clear()
        logger.info("Background scheduler stopped")

    async def run_task_once(self, task_name: str):
        """Run one iteration of a task and record its stats"""
        task_config = self.tasks[task_name]
        try:
            task_config["next_run"] = datetime.now(timezone.utc) + timedelta(
                seconds=task_config["interval"]
            )

            logger.info(f"Running scheduled task '{task_name}'")
            start_time = datetime.now(timezone.utc)

            await task_config["func"]()

            task_config["last_run"] = start_time
            task_config["run_count"] += 1

            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.info(f"Task '{task_name}' completed in {duration:.2f}s")

        except Exception as e:
            task_config["error_count"] += 1
            task_config["last_error"] = {
                "time": datetime.now(timezone.utc),
                "error": str(e),
                "traceback": traceback.format_exc()
            }
            logger.error(f"Error in scheduled task '{task_name}': {e}")
            logger.debug(traceback.format_exc())

    async def _run_task_loop(self, task_name: str):
        """Run a task in a loop"""
        task_config = self.tasks[task_name]

        # Initial delay
        if task_config["initial_delay"] > 0:
            logger.info(f"Task '{task_name}' waiting {task_config['initial_delay']}s before first run")
            await asyncio.sleep(task_config["initial_delay"])

        while self.running and task_config["enabled"]:
            await self.run_task_once(task_name)

            # Wait for next run
            await asyncio.sleep(task_config["interval"])

    def get_task_status(self, task_name: Optional[str] = None) -> Dict[str, Any]:
        """Get status of scheduled tasks"""
        if task_name:
            if task_name not in self.tasks:
                return {"error": f"Task '{task_name}' not found"}

            task = self.tasks[task_name]
            return {
                "name": task_name,
                "enabled": task["enabled"],
                "interval": task["interval"],
                "last_run": task["last_run"].isoformat() if task["last_run"] else None,
                "next_run": task["next_run"].isoformat() if task["next_run"] else None,
                "run_count": task["run_count"],
                "error_count": task["error_count"],
                "last_error": task["last_error"]["error"] if task["last_error"] else None
            }

        # Return all tasks
        return {
            name: self.get_task_status(name)
            for name in self.tasks
        }

# Global scheduler instance
scheduler = BackgroundScheduler()

# ================================
# SCHEDULED TASKS
# ================================

async def sync_external_calendars():
    """Scheduled task to re-import all due external iCal feeds"""
    # Use a new database session for the background task
    db = SessionLocal()
    try:
        from app.services.calendar_sync_service import CalendarSyncService

        result = await CalendarSyncService.sync_all_active_imports(db)

        logger.info(
            f"Calendar sync run finished: {result['synced']} synced, "
            f"{result['errors']} errors, {result['skipped']} skipped"
        )

    except Exception as e:
        logger.error(f"Error in scheduled calendar sync: {e}")
        db.rollback()
        raise
    finally:
        db.close()

# ================================
# SCHEDULER INITIALIZATION
# ================================

def initialize_scheduler():
    """Initialize the scheduler with default tasks"""

    # External calendar import - checks due configs every few minutes
    scheduler.add_task(
        name="calendar_sync",
        func=sync_external_calendars,
        interval_seconds=settings.CALENDAR_SYNC_CHECK_SECONDS,
        initial_delay=60,  # Wait 1 minute after startup
        enabled=settings.ENABLE_CALENDAR_SYNC
    )
