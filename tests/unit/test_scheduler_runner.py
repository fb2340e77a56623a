"""
Unit tests for the daily task scheduler.

Jobs are replaced by recording callables; the real jobs are covered by the
integration tests.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, timezone
from typing import Any, Callable
from unittest.mock import Mock

import pytest

from stay_booking.scheduler.jobs import JobReport
from stay_booking.scheduler.runner import DailyTask, Scheduler, build_scheduler, template_hour
from stay_booking.utils.datetime import business_tz


def recording_action(calls: list[datetime]) -> Callable[[datetime], JobReport]:
    def action(now: datetime) -> JobReport:
        calls.append(now)
        return JobReport(job="test_job", today=now.date())

    return action


def set_local_time(clock: Any, day: int, hour: int, minute: int = 0) -> None:
    """Point the clock at 2025-12-``day`` ``hour:minute`` business-local time."""
    local = datetime(2025, 12, day, hour, minute, tzinfo=business_tz())
    clock.now = local.astimezone(timezone.utc)


@pytest.mark.unit
def test_daily_task_is_due_from_its_hour_once_per_day() -> None:
    task = DailyTask(name="job", hour=9, action=Mock())
    local = business_tz()

    assert not task.is_due(datetime(2025, 12, 20, 8, 59, tzinfo=local))
    assert task.is_due(datetime(2025, 12, 20, 9, 0, tzinfo=local))
    assert task.is_due(datetime(2025, 12, 20, 23, 0, tzinfo=local))

    task.last_run_on = date(2025, 12, 20)
    assert not task.is_due(datetime(2025, 12, 20, 15, 0, tzinfo=local))
    assert task.is_due(datetime(2025, 12, 21, 9, 0, tzinfo=local))


@pytest.mark.unit
def test_daily_task_hour_can_be_callable() -> None:
    hours = iter([9, 11])
    task = DailyTask(name="job", hour=lambda: next(hours), action=Mock())

    assert task.current_hour() == 9
    assert task.current_hour() == 11


@pytest.mark.unit
def test_tick_runs_due_tasks_once_per_local_day(clock: Any) -> None:
    early: list[datetime] = []
    late: list[datetime] = []
    scheduler = Scheduler(
        [
            DailyTask(name="early", hour=1, action=recording_action(early)),
            DailyTask(name="late", hour=10, action=recording_action(late)),
        ],
        clock=clock,
    )

    set_local_time(clock, 20, 9, 30)
    assert len(scheduler.tick()) == 1
    assert len(scheduler.tick()) == 0
    assert len(early) == 1 and late == []

    set_local_time(clock, 20, 10, 0)
    scheduler.tick()
    assert len(early) == 1 and len(late) == 1

    set_local_time(clock, 21, 1, 0)
    scheduler.tick()
    assert len(early) == 2 and len(late) == 1


@pytest.mark.unit
def test_tick_logs_crashing_job_and_does_not_retry_it_the_same_day(clock: Any) -> None:
    crashing = Mock(side_effect=RuntimeError("database gone"))
    healthy: list[datetime] = []
    scheduler = Scheduler(
        [
            DailyTask(name="crashing", hour=0, action=crashing),
            DailyTask(name="healthy", hour=0, action=recording_action(healthy)),
        ],
        clock=clock,
    )

    reports = scheduler.tick()
    scheduler.tick()

    assert crashing.call_count == 1
    assert len(healthy) == 1
    assert len(reports) == 1
    assert scheduler.tasks["crashing"].last_run_on == date(2025, 12, 20)


@pytest.mark.unit
def test_run_job_for_a_date_runs_at_that_days_hour(clock: Any) -> None:
    calls: list[datetime] = []
    task = DailyTask(name="job", hour=9, action=recording_action(calls))
    scheduler = Scheduler([task], clock=clock)

    scheduler.run_job("job", today=date(2025, 12, 24))

    # 09:00 in Asia/Taipei
    assert calls == [datetime(2025, 12, 24, 1, 0, tzinfo=timezone.utc)]
    assert scheduler.tasks["job"].last_run_on is None


@pytest.mark.unit
def test_run_job_without_date_uses_clock(clock: Any) -> None:
    calls: list[datetime] = []
    task = DailyTask(name="job", hour=9, action=recording_action(calls))
    scheduler = Scheduler([task], clock=clock)

    scheduler.run_job("job")

    assert calls == [clock.now]


@pytest.mark.unit
def test_run_job_propagates_errors_and_rejects_unknown_names(clock: Any) -> None:
    scheduler = Scheduler(
        [DailyTask(name="job", hour=9, action=Mock(side_effect=RuntimeError("boom")))],
        clock=clock,
    )

    with pytest.raises(RuntimeError):
        scheduler.run_job("job")
    with pytest.raises(KeyError):
        scheduler.run_job("no_such_job")


@pytest.mark.unit
def test_jobs_never_overlap(clock: Any) -> None:
    """Test that a manual run waits while another job holds the scheduler lock."""
    started = threading.Event()
    release = threading.Event()
    order: list[str] = []

    def slow(now: datetime) -> JobReport:
        order.append("slow-start")
        started.set()
        release.wait(5)
        order.append("slow-end")
        return JobReport(job="slow", today=now.date())

    def quick(now: datetime) -> JobReport:
        order.append("quick")
        return JobReport(job="quick", today=now.date())

    scheduler = Scheduler(
        [
            DailyTask(name="slow", hour=0, action=slow),
            DailyTask(name="quick", hour=0, action=quick),
        ],
        clock=clock,
    )

    worker = threading.Thread(target=scheduler.run_job, args=("slow",))
    worker.start()
    assert started.wait(5)

    second = threading.Thread(target=scheduler.run_job, args=("quick",))
    second.start()
    second.join(0.2)
    assert order == ["slow-start"]

    release.set()
    worker.join(5)
    second.join(5)
    assert order == ["slow-start", "slow-end", "quick"]


@pytest.mark.unit
def test_background_thread_runs_due_task_and_stops(clock: Any) -> None:
    ran = threading.Event()

    def action(now: datetime) -> JobReport:
        ran.set()
        return JobReport(job="job", today=now.date())

    scheduler = Scheduler(
        [DailyTask(name="job", hour=0, action=action)], clock=clock, tick_seconds=0.01
    )

    scheduler.start()
    try:
        assert ran.wait(5)
    finally:
        scheduler.stop(timeout=5)

    assert scheduler._thread is None


@pytest.mark.unit
def test_template_hour_reads_template_column_with_fallback() -> None:
    notifications = Mock()
    notifications.get_template.return_value = {"send_hour_checkin": 7}
    assert template_hour(notifications, "checkin_reminder")() == 7

    notifications.get_template.return_value = {"send_hour_checkin": None}
    assert template_hour(notifications, "checkin_reminder")() == 9

    notifications.get_template.return_value = None
    assert template_hour(notifications, "feedback_request")() == 10


@pytest.mark.unit
def test_build_scheduler_wires_the_four_jobs(clock: Any) -> None:
    jobs = Mock()
    notifications = Mock()
    notifications.get_template.return_value = None

    scheduler = build_scheduler(jobs, notifications, clock=clock, sweep_hour=2)

    assert list(scheduler.tasks) == [
        "expiry_sweep",
        "payment_reminder",
        "checkin_reminder",
        "feedback_request",
    ]
    assert scheduler.tasks["expiry_sweep"].current_hour() == 2

    scheduler.run_job("checkin_reminder", today=date(2025, 12, 24))
    jobs.run.assert_called_once_with(
        "checkin_reminder", datetime(2025, 12, 24, 1, 0, tzinfo=timezone.utc)
    )
