"""APScheduler-backed task runner: scrapes are submitted, run in the background, and polled by id."""

import logging
import threading
import traceback
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from cpa_intel.scrapers.errors import UnknownSourceError
from cpa_intel.scrapers.orchestrator import ScraperOrchestrator

logger = logging.getLogger("cpa_intel.scheduler")

ALL_SOURCES = "all"

TASK_QUEUED = "queued"
TASK_RUNNING = "running"
TASK_COMPLETED = "completed"
TASK_FAILED = "failed"

# Finished tasks stay pollable this long, then are dropped on the next submit
TASK_RETENTION = timedelta(hours=24)


@dataclass(frozen=True)
class TaskHandle:
    task_id: str
    source: str
    rescrape: bool = False


def _job_listener(event):
    """Log scheduler job events for debugging."""
    if event.exception:
        logger.error("Task %s FAILED: %s", event.job_id, event.exception)
        logger.error("Traceback: %s", event.traceback)
    elif hasattr(event, "job_id"):
        if event.code == EVENT_JOB_MISSED:
            logger.warning("Task %s MISSED its fire time", event.job_id)
        else:
            logger.info("Task %s executed", event.job_id)


class TaskRunner:
    """Fire-and-forget scrape execution with status queryable by task id."""

    def __init__(
        self,
        orchestrator: ScraperOrchestrator,
        scheduler: Optional[BackgroundScheduler] = None,
        retention: timedelta = TASK_RETENTION,
    ):
        self.orchestrator = orchestrator
        self.retention = retention
        # One worker: scrapes must not overlap (a rescrape purges its source first)
        self.scheduler = scheduler or BackgroundScheduler(executors={"default": {"type": "threadpool", "max_workers": 1}})
        self._tasks: dict[str, dict] = {}
        self._lock = threading.Lock()

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        self.scheduler.start()
        logger.info("Task runner started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Task runner stopped")

    def submit(self, source: str, rescrape: bool = False) -> TaskHandle:
        """Queue a scrape of one source (or ``all``) and return immediately.

        Raises UnknownSourceError for unregistered names, before anything is queued.
        """
        if source != ALL_SOURCES and source not in self.orchestrator.jurisdictions:
            raise UnknownSourceError(source, self.orchestrator.names)
        if source == ALL_SOURCES and rescrape:
            raise ValueError("Rescrape needs a single source name")

        handle = TaskHandle(task_id=uuid.uuid4().hex, source=source, rescrape=rescrape)
        with self._lock:
            self._evict_finished()
            self._tasks[handle.task_id] = {
                "task_id": handle.task_id,
                "source": source,
                "rescrape": rescrape,
                "status": TASK_QUEUED,
                "submitted_at": datetime.now(timezone.utc).isoformat(),
                "finished_at": None,
                "result": None,
                "error": None,
            }

        self.scheduler.add_job(
            self._execute,
            trigger=DateTrigger(run_date=datetime.now(timezone.utc)),
            args=[handle],
            id=handle.task_id,
            name=f"Scrape {source}" + (" (rescrape)" if rescrape else ""),
            misfire_grace_time=None,
        )
        logger.info("Queued task %s: %s%s", handle.task_id, source, " (rescrape)" if rescrape else "")
        return handle

    def status(self, task_id: str) -> Optional[dict]:
        with self._lock:
            task = self._tasks.get(task_id)
            return dict(task) if task else None

    def _evict_finished(self) -> None:
        cutoff = datetime.now(timezone.utc) - self.retention
        expired = [
            task_id for task_id, task in self._tasks.items()
            if task["finished_at"] and datetime.fromisoformat(task["finished_at"]) <= cutoff
        ]
        for task_id in expired:
            del self._tasks[task_id]
        if expired:
            logger.debug("Dropped %d finished tasks", len(expired))

    def _update(self, task_id: str, **fields) -> None:
        with self._lock:
            self._tasks[task_id].update(fields)

    def _execute(self, handle: TaskHandle) -> None:
        logger.info("=== TASK %s STARTED: %s ===", handle.task_id, handle.source)
        self._update(handle.task_id, status=TASK_RUNNING)
        try:
            if handle.source == ALL_SOURCES:
                result = self.orchestrator.run_all()
            elif handle.rescrape:
                result = self.orchestrator.rescrape(handle.source)
            else:
                result = self.orchestrator.run_single(handle.source)
        except Exception as e:
            logger.error("=== TASK %s FAILED ===\n%s", handle.task_id, traceback.format_exc())
            self._update(
                handle.task_id,
                status=TASK_FAILED,
                error=str(e),
                finished_at=datetime.now(timezone.utc).isoformat(),
            )
            raise

        failed = handle.source != ALL_SOURCES and "error" in result
        self._update(
            handle.task_id,
            status=TASK_FAILED if failed else TASK_COMPLETED,
            result=result,
            error=result.get("error") if failed else None,
            finished_at=datetime.now(timezone.utc).isoformat(),
        )
        logger.info("=== TASK %s FINISHED: %s ===", handle.task_id, handle.source)
