"""
Daily task scheduler.

A single background thread wakes every ``SCHEDULER_TICK_SECONDS`` and fires
each DailyTask whose hour has come and which has not yet run for the current
business-local date. All tasks share one lock, so two jobs never overlap even
when ``run_job`` is called from another thread (the CLI or a test).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional

import structlog

from stay_booking import config
from stay_booking.notifications.defaults import (
    CHECKIN_REMINDER,
    FEEDBACK_REQUEST,
    PAYMENT_REMINDER,
)
from stay_booking.notifications.service import NotificationService
from stay_booking.scheduler.jobs import EXPIRY_SWEEP, JobReport, NotificationJobs
from stay_booking.utils.datetime import Clock, local_midnight_utc, to_local, utc_now

logger = structlog.get_logger(__name__)

# Template column holding each reminder's send hour, and its fallback
SEND_HOUR_COLUMNS = {
    PAYMENT_REMINDER: ("send_hour_payment_reminder", 9),
    CHECKIN_REMINDER: ("send_hour_checkin", 9),
    FEEDBACK_REQUEST: ("send_hour_feedback", 10),
}


@dataclass
class DailyTask:
    """
    A job that runs once per business-local day, at or after ``hour``.

    ``hour`` is either a fixed int or a callable, so reminder hours edited in
    the admin templates take effect without a restart.
    """

    name: str
    hour: int | Callable[[], int]
    action: Callable[[datetime], JobReport]
    last_run_on: Optional[date] = None

    def current_hour(self) -> int:
        return self.hour() if callable(self.hour) else self.hour

    def is_due(self, local_now: datetime) -> bool:
        return local_now.hour >= self.current_hour() and self.last_run_on != local_now.date()


def template_hour(notifications: NotificationService, template_key: str) -> Callable[[], int]:
    """Build an hour resolver reading the template's send-hour column."""
    column, default = SEND_HOUR_COLUMNS[template_key]

    def resolve() -> int:
        template = notifications.get_template(template_key)
        if template is None or template.get(column) is None:
            return default
        return int(template[column])

    return resolve


class Scheduler:
    """
    Runs DailyTasks on a background thread.

    Args:
        tasks: Tasks to run, checked in order on every tick
        clock: Current-time source
        tick_seconds: Sleep between checks

    Example:
        >>> scheduler = build_scheduler(jobs, notifications)
        >>> scheduler.start()
        >>> scheduler.run_job("payment_reminder", today=date(2025, 12, 24))
    """

    def __init__(
        self,
        tasks: list[DailyTask],
        clock: Clock = utc_now,
        tick_seconds: float = config.SCHEDULER_TICK_SECONDS,
    ) -> None:
        self.tasks = {task.name: task for task in tasks}
        self.clock = clock
        self.tick_seconds = tick_seconds
        self._job_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="stay-scheduler", daemon=True)
        self._thread.start()
        logger.info("scheduler_started", tasks=list(self.tasks), tick_seconds=self.tick_seconds)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("scheduler_stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_failed")
            self._stop.wait(self.tick_seconds)

    def tick(self) -> list[JobReport]:
        """Run every due task once. Returns the reports of the tasks that ran."""
        reports = []
        for task in self.tasks.values():
            now = self.clock()
            local_now = to_local(now)
            if not task.is_due(local_now):
                continue
            # Mark first so a crashing job is not retried every tick
            task.last_run_on = local_now.date()
            report = self._run_locked(task, now)
            if report is not None:
                reports.append(report)
        return reports

    def run_job(self, name: str, today: Optional[date] = None) -> JobReport:
        """
        Run one task now, or as if it were ``today`` at the task's hour.

        Does not change the task's last-run date. Unlike scheduled runs, a
        crash inside the job propagates to the caller.

        Raises:
            KeyError: Unknown task name
        """
        task = self.tasks[name]
        if today is None:
            now = self.clock()
        else:
            now = local_midnight_utc(today) + timedelta(hours=task.current_hour())
        with self._job_lock:
            logger.info("job_started", job=task.name, local_time=to_local(now).isoformat())
            return task.action(now)

    def _run_locked(self, task: DailyTask, now: datetime) -> Optional[JobReport]:
        with self._job_lock:
            logger.info("job_started", job=task.name, local_time=to_local(now).isoformat())
            try:
                return task.action(now)
            except Exception:
                logger.exception("job_failed", job=task.name)
                return None


def build_scheduler(
    jobs: NotificationJobs,
    notifications: NotificationService,
    clock: Clock = utc_now,
    tick_seconds: float = config.SCHEDULER_TICK_SECONDS,
    sweep_hour: int = config.EXPIRY_SWEEP_HOUR,
) -> Scheduler:
    """Wire the four notification jobs into a Scheduler."""

    def task_for(name: str, hour: int | Callable[[], int]) -> DailyTask:
        return DailyTask(name=name, hour=hour, action=lambda now: jobs.run(name, now))

    tasks = [
        task_for(EXPIRY_SWEEP, sweep_hour),
        task_for(PAYMENT_REMINDER, template_hour(notifications, PAYMENT_REMINDER)),
        task_for(CHECKIN_REMINDER, template_hour(notifications, CHECKIN_REMINDER)),
        task_for(FEEDBACK_REQUEST, template_hour(notifications, FEEDBACK_REQUEST)),
    ]
    return Scheduler(tasks, clock=clock, tick_seconds=tick_seconds)
