from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum

from fuel_dispatch.adapters.base import FuelDataStore, MediaStorage, StoreReadError, StoreWriteError
from fuel_dispatch.domain.models import (
    CompletionFieldsUpdate,
    DriverProfile,
    DriverTaskCounts,
    DriverTaskEntry,
    DriverTaskRead,
    now_utc,
    task_view,
)
from fuel_dispatch.domain.state_machine import AdminStatus, ExecutionStatus, can_transition
from fuel_dispatch.infra.events import event_bus
from fuel_dispatch.services.completion_capture import (
    CompletionCapture,
    CompletionSession,
    ImageSlot,
    ImageUpload,
    parse_leading_float,
    parse_leading_int,
    parse_quantity,
)
from fuel_dispatch.services.coordinate_service import SiteCoordinateCache, TaskEnricher
from fuel_dispatch.services.push_binding import PushBindingSync
from fuel_dispatch.services.retention_service import apply_retention, recent_completed

logger = logging.getLogger(__name__)


class DriverTaskError(Exception):
    pass


class NotFoundError(DriverTaskError):
    pass


class ConflictError(DriverTaskError):
    pass


class TaskFilterMode(StrEnum):
    ALL = "all"
    ACTIVE = "active"
    RETURNED = "returned"


def count_tasks(tasks: list[DriverTaskRead]) -> DriverTaskCounts:
    counts = DriverTaskCounts()
    for task in tasks:
        returned = task.admin_status == AdminStatus.RETURNED
        if task.status == ExecutionStatus.PENDING:
            counts.pending += 1
        elif task.status == ExecutionStatus.IN_PROGRESS:
            counts.in_progress += 1
        if returned:
            counts.returned += 1
        if task.status != ExecutionStatus.COMPLETED:
            counts.open += 1
            if not returned:
                counts.active_total += 1
    return counts


def matches_query(task: DriverTaskRead, query: str | None) -> bool:
    needle = (query or "").strip().lower()
    if not needle:
        return True
    return any(needle in str(value or "").lower() for value in (task.site_name, task.status, task.notes))


class DriverWorkspace:
    """Everything one signed-in driver sees and does.

    The workspace owns the task list, the coordinate cache, the open completion
    session and the device push binding. A refresh that started before a newer
    refresh or a local mutation is discarded when it lands.
    """

    def __init__(
        self,
        profile: DriverProfile,
        store: FuelDataStore,
        media: MediaStorage,
        *,
        cache: SiteCoordinateCache | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.profile = profile
        self.store = store
        self.clock = clock
        self.cache = cache or SiteCoordinateCache()
        self.enricher = TaskEnricher(store, self.cache)
        self.capture = CompletionCapture(media, clock=clock)
        self.push = PushBindingSync(store)
        self.tasks: list[DriverTaskRead] = []
        self.completion: CompletionSession | None = None
        self.generation = 0
        self.loaded = False

    def _bump(self) -> int:
        self.generation += 1
        return self.generation

    def get_task(self, task_id: str) -> DriverTaskRead:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise NotFoundError("task not found")

    def _replace(self, updated: DriverTaskRead) -> None:
        self.tasks = [updated if task.id == updated.id else task for task in self.tasks]

    async def refresh(self) -> list[DriverTaskRead]:
        generation = self._bump()
        try:
            rows = await self.store.list_tasks_for_driver(self.profile.name, self.profile.phone)
        except StoreReadError:
            logger.warning("task lookup failed for %s", self.profile.name, exc_info=True)
            rows = []
        retained = apply_retention([task_view(row) for row in rows], self.clock())
        enriched = await self.enricher.enrich(retained)
        if generation != self.generation:
            logger.debug("discarding stale refresh %s for %s", generation, self.profile.name)
            return self.tasks
        self.tasks = enriched
        self.loaded = True
        return self.tasks

    async def ensure_loaded(self) -> list[DriverTaskRead]:
        if not self.loaded:
            return await self.refresh()
        return self.tasks

    async def start(self, task_id: str) -> DriverTaskRead:
        task = self.get_task(task_id)
        if not can_transition(task.status, ExecutionStatus.IN_PROGRESS):
            logger.info("start ignored for task %s in status %s", task_id, task.status)
            return task
        try:
            await self.store.update_task(task_id, {"status": ExecutionStatus.IN_PROGRESS})
        except StoreWriteError:
            # Left as is; the next refresh shows the authoritative status.
            logger.warning("start rejected for task %s", task_id, exc_info=True)
            return task
        self._bump()
        updated = task.model_copy(update={"status": ExecutionStatus.IN_PROGRESS})
        self._replace(updated)
        event_bus.publish_dict(
            "driver_task.started",
            {"task_id": task_id, "driver_name": self.profile.name},
            actor_id=self.profile.name,
        )
        return updated

    def open_completion(self, task_id: str) -> CompletionSession:
        task = self.get_task(task_id)
        self.completion = CompletionSession.for_task(task)
        return self.completion

    def _require_completion(self) -> CompletionSession:
        if self.completion is None:
            raise ConflictError("no completion session is open")
        return self.completion

    def update_completion(self, update: CompletionFieldsUpdate) -> CompletionSession:
        session = self._require_completion()
        session.apply(update)
        return session

    async def attach_image(self, upload: ImageUpload) -> ImageSlot:
        session = self._require_completion()
        return await self.capture.attach_image(session, self.profile.name, upload)

    async def attach_images(self, uploads: list[ImageUpload]) -> list[ImageSlot]:
        session = self._require_completion()
        return await self.capture.attach_images(session, self.profile.name, uploads)

    async def submit(self) -> DriverTaskRead:
        """Record a completion entry and mark the session's task completed.

        The entry insert is attempted first and is not required to succeed. The task
        update falls back to a status-and-notes write when the full write is rejected;
        when that also fails the error propagates and nothing changes locally.
        """
        session = self._require_completion()
        task = self.get_task(session.task_id)
        if task.status == ExecutionStatus.COMPLETED and task.admin_status != AdminStatus.RETURNED:
            raise ConflictError("task is already completed")

        completed_at = self.clock()
        image_urls = session.image_urls()
        notes = session.notes or None
        entry = DriverTaskEntry(
            task_id=task.id,
            liters=parse_quantity(session.quantity_added, session.liters),
            actual_liters_in_tank=parse_leading_float(session.actual_liters_in_tank),
            rate=parse_leading_float(session.rate),
            station=session.station or None,
            receipt_number=session.receipt or None,
            photo_url=session.photo_url or None,
            odometer=parse_leading_int(session.odometer),
            notes=notes,
            submitted_by=self.profile.name,
            submitted_at=completed_at,
            **image_urls,
        )
        try:
            await self.store.insert_entry(entry)
        except StoreWriteError:
            logger.warning("entry insert rejected for task %s", task.id, exc_info=True)

        reduced = False
        try:
            await self.store.update_task(
                task.id,
                {
                    "status": ExecutionStatus.COMPLETED,
                    "notes": notes,
                    "completed_at": completed_at,
                    **image_urls,
                },
            )
        except StoreWriteError:
            logger.warning("completion write rejected for task %s, retrying status only", task.id, exc_info=True)
            await self.store.update_task(task.id, {"status": ExecutionStatus.COMPLETED, "notes": notes})
            reduced = True

        self._bump()
        updated = task.model_copy(
            update={
                "status": ExecutionStatus.COMPLETED,
                "notes": notes,
                "local_completed_at": completed_at,
            }
        )
        self._replace(updated)
        self.tasks = apply_retention(self.tasks, completed_at)
        self.completion = None
        event_bus.publish_dict(
            "driver_task.completed",
            {
                "task_id": task.id,
                "entry_id": entry.id,
                "liters": entry.liters,
                "images": sorted(image_urls),
                "reduced_write": reduced,
            },
            actor_id=self.profile.name,
        )
        return updated

    def counts(self) -> DriverTaskCounts:
        return count_tasks(self.tasks)

    def visible_tasks(
        self,
        mode: TaskFilterMode = TaskFilterMode.ALL,
        query: str | None = None,
    ) -> list[DriverTaskRead]:
        base = [task for task in self.tasks if task.status != ExecutionStatus.COMPLETED]
        if mode is TaskFilterMode.ACTIVE:
            base = [
                task
                for task in base
                if task.status in {ExecutionStatus.PENDING, ExecutionStatus.IN_PROGRESS}
            ]
        elif mode is TaskFilterMode.RETURNED:
            base = [task for task in base if task.admin_status == AdminStatus.RETURNED]
        return [task for task in base if matches_query(task, query)]

    def recent_completed(self) -> list[tuple[DriverTaskRead, datetime]]:
        return recent_completed(self.tasks, self.clock())

    async def logout(self) -> None:
        self._bump()
        self.tasks = []
        self.loaded = False
        self.completion = None
        self.cache.clear()
        await self.push.unbind()


class WorkspaceRegistry:
    """Maps each signed-in driver to their workspace for the life of the process."""

    def __init__(self) -> None:
        self._workspaces: dict[str, DriverWorkspace] = {}

    @staticmethod
    def key(profile: DriverProfile) -> str:
        return profile.name.strip().lower()

    async def get_or_create(
        self,
        profile: DriverProfile,
        store: FuelDataStore,
        media: MediaStorage,
    ) -> DriverWorkspace:
        key = self.key(profile)
        workspace = self._workspaces.get(key)
        if workspace is None or workspace.store is not store:
            workspace = DriverWorkspace(profile, store, media)
            self._workspaces[key] = workspace
        elif workspace.profile != profile:
            workspace.profile = profile
            await workspace.push.bind_profile(profile)
        return workspace

    def get(self, profile: DriverProfile) -> DriverWorkspace | None:
        return self._workspaces.get(self.key(profile))

    async def logout(self, profile: DriverProfile) -> None:
        workspace = self._workspaces.pop(self.key(profile), None)
        if workspace is not None:
            await workspace.logout()

    def clear(self) -> None:
        self._workspaces.clear()


workspace_registry = WorkspaceRegistry()
