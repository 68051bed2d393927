from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fuel_dispatch.domain.models import DriverTaskRead
from fuel_dispatch.domain.state_machine import ExecutionStatus
from fuel_dispatch.services.retention_service import (
    COMPLETED_RETENTION,
    apply_retention,
    coerce_instant,
    recent_completed,
    resolve_completion_instant,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _task(task_id: str, status: ExecutionStatus = ExecutionStatus.COMPLETED, **fields) -> DriverTaskRead:
    return DriverTaskRead(id=task_id, status=status, **fields)


def test_completed_task_older_than_window_is_dropped() -> None:
    stale = _task("stale", completed_at=NOW - timedelta(days=7, seconds=1))
    fresh = _task("fresh", completed_at=NOW - timedelta(days=6, hours=23))
    kept = apply_retention([stale, fresh], NOW)
    assert [task.id for task in kept] == ["fresh"]


def test_completed_task_exactly_at_window_is_kept() -> None:
    edge = _task("edge", completed_at=NOW - COMPLETED_RETENTION)
    assert [task.id for task in apply_retention([edge], NOW)] == ["edge"]


def test_unresolvable_completion_instant_keeps_task_visible() -> None:
    task = _task("unknown", legacy={"completedAt": "not-a-date"})
    kept = apply_retention([task], NOW)
    assert [item.id for item in kept] == ["unknown"]
    assert kept[0].local_completed_at is None


def test_open_tasks_are_never_pruned() -> None:
    old_pending = _task(
        "pending",
        status=ExecutionStatus.PENDING,
        created_at=NOW - timedelta(days=90),
    )
    assert apply_retention([old_pending], NOW) == [old_pending]


def test_first_valid_accessor_wins_and_is_backfilled() -> None:
    task = _task(
        "legacy",
        legacy={
            "driver_completed_at": "garbage",
            "completedAt": "2026-03-09T08:30:00",
            "finished_at": "2026-01-01T00:00:00Z",
        },
        created_at=NOW - timedelta(days=30),
    )
    instant = resolve_completion_instant(task)
    assert instant == datetime(2026, 3, 9, 8, 30, tzinfo=UTC)

    kept = apply_retention([task], NOW)
    assert len(kept) == 1
    assert kept[0].local_completed_at == instant
    assert task.local_completed_at is None


def test_local_completion_takes_priority_over_server_clock() -> None:
    task = _task(
        "clock-skew",
        local_completed_at=NOW - timedelta(days=1),
        completed_at=NOW - timedelta(days=10),
    )
    assert [item.id for item in apply_retention([task], NOW)] == ["clock-skew"]


def test_epoch_milliseconds_and_naive_values_are_utc() -> None:
    millis = int(datetime(2026, 3, 1, tzinfo=UTC).timestamp() * 1000)
    assert coerce_instant(millis) == datetime(2026, 3, 1, tzinfo=UTC)
    assert coerce_instant(datetime(2026, 3, 1, 5, 0)) == datetime(2026, 3, 1, 5, 0, tzinfo=UTC)
    assert coerce_instant("") is None
    assert coerce_instant(True) is None


def test_falls_back_to_updated_at_then_created_at() -> None:
    by_updated = _task("updated", updated_at=NOW - timedelta(days=8), created_at=NOW - timedelta(days=1))
    by_created = _task("created", created_at=NOW - timedelta(days=2))
    kept = apply_retention([by_updated, by_created], NOW)
    assert [item.id for item in kept] == ["created"]


def test_recent_completed_lists_newest_first() -> None:
    older = _task("older", completed_at=NOW - timedelta(days=3))
    newer = _task("newer", completed_at=NOW - timedelta(hours=2))
    expired = _task("expired", completed_at=NOW - timedelta(days=9))
    active = _task("active", status=ExecutionStatus.IN_PROGRESS)
    history = recent_completed([older, expired, newer, active], NOW)
    assert [task.id for task, _ in history] == ["newer", "older"]
