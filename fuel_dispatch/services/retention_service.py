from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from fuel_dispatch.domain.models import DriverTaskRead, now_utc
from fuel_dispatch.domain.state_machine import ExecutionStatus

COMPLETED_RETENTION = timedelta(days=7)

CompletionAccessor = Callable[[DriverTaskRead], object]


def _legacy(key: str) -> CompletionAccessor:
    def _read(task: DriverTaskRead) -> object:
        return task.legacy.get(key)

    return _read


# First accessor yielding a valid instant wins.
COMPLETION_ACCESSORS: tuple[tuple[str, CompletionAccessor], ...] = (
    ("local_completed_at", lambda task: task.local_completed_at),
    ("completed_at", lambda task: task.completed_at),
    ("driver_completed_at", _legacy("driver_completed_at")),
    ("completedAt", _legacy("completedAt")),
    ("completed_at_local", _legacy("completed_at_local")),
    ("driver_completed_at_local", _legacy("driver_completed_at_local")),
    ("submitted_at", _legacy("submitted_at")),
    ("finished_at", _legacy("finished_at")),
    ("updated_at", lambda task: task.updated_at),
    ("created_at", lambda task: task.created_at),
)


def coerce_instant(raw: object) -> datetime | None:
    """Read a datetime, epoch milliseconds or an ISO-8601 string; naive values are UTC."""
    if raw is None or raw == "" or isinstance(raw, bool):
        return None
    value: datetime | None = None
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, int | float):
        try:
            value = datetime.fromtimestamp(raw / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(raw, str):
        try:
            value = datetime.fromisoformat(raw.strip())
        except ValueError:
            return None
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def resolve_completion_instant(
    task: DriverTaskRead,
    accessors: Iterable[tuple[str, CompletionAccessor]] = COMPLETION_ACCESSORS,
) -> datetime | None:
    for _name, accessor in accessors:
        instant = coerce_instant(accessor(task))
        if instant is not None:
            return instant
    return None


def is_expired(task: DriverTaskRead, now: datetime | None = None) -> bool:
    if task.status != ExecutionStatus.COMPLETED:
        return False
    instant = resolve_completion_instant(task)
    if instant is None:
        return False
    return (now or now_utc()) - instant > COMPLETED_RETENTION


def apply_retention(tasks: Iterable[DriverTaskRead], now: datetime | None = None) -> list[DriverTaskRead]:
    """Drop completed tasks older than the retention window from a driver's view.

    Tasks whose completion instant cannot be resolved stay visible. Completed tasks
    without `local_completed_at` get it backfilled from the resolved instant.
    """
    current = now or now_utc()
    kept: list[DriverTaskRead] = []
    for task in tasks:
        if task.status != ExecutionStatus.COMPLETED:
            kept.append(task)
            continue
        instant = resolve_completion_instant(task)
        if instant is not None and current - instant > COMPLETED_RETENTION:
            continue
        if instant is not None and task.local_completed_at is None:
            task = task.model_copy(update={"local_completed_at": instant})
        kept.append(task)
    return kept


def recent_completed(
    tasks: Iterable[DriverTaskRead],
    now: datetime | None = None,
) -> list[tuple[DriverTaskRead, datetime]]:
    current = now or now_utc()
    recent: list[tuple[DriverTaskRead, datetime]] = []
    for task in tasks:
        if task.status != ExecutionStatus.COMPLETED:
            continue
        instant = resolve_completion_instant(task)
        if instant is None or current - instant > COMPLETED_RETENTION:
            continue
        recent.append((task, instant))
    recent.sort(key=lambda item: item[1], reverse=True)
    return recent
