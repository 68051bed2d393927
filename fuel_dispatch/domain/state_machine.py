from __future__ import annotations

from enum import StrEnum


class ExecutionStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ISSUE = "issue"


# failed/issue only arrive from legacy or external writers; no driver action leads there.
EXECUTION_ALLOWED_TRANSITIONS: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.PENDING: {ExecutionStatus.IN_PROGRESS, ExecutionStatus.COMPLETED},
    ExecutionStatus.IN_PROGRESS: {ExecutionStatus.COMPLETED},
    ExecutionStatus.COMPLETED: set(),
    ExecutionStatus.FAILED: set(),
    ExecutionStatus.ISSUE: set(),
}


def can_transition(source: ExecutionStatus | str, target: ExecutionStatus | str) -> bool:
    try:
        source_status = ExecutionStatus(source)
        target_status = ExecutionStatus(target)
    except ValueError:
        return False
    return target_status in EXECUTION_ALLOWED_TRANSITIONS.get(source_status, set())


class AdminStatus(StrEnum):
    CREATION = "Creation"
    FINISHED_BY_DRIVER = "Finished by Driver"
    APPROVED = "Task approved"
    RETURNED = "Task returned to the driver"
    REPORTED = "Reported by driver"
    CANCELED = "Canceled"


def ingest_admin_status(raw_status: str | None, admin_status: str | None) -> AdminStatus:
    """Resolve the administrative label of a row entering the dispatch board.

    An explicit label wins. Rows written without one get a label derived from the raw
    execution status; this mapping applies at ingestion only and is never re-run when
    the execution status later changes.
    """
    if admin_status:
        try:
            return AdminStatus(admin_status)
        except ValueError:
            pass
    match (raw_status or "").strip().lower():
        case "completed":
            return AdminStatus.FINISHED_BY_DRIVER
        case "in_progress":
            return AdminStatus.REPORTED
        case "canceled":
            return AdminStatus.CANCELED
        case _:
            return AdminStatus.CREATION
