from __future__ import annotations

import logging

from fuel_dispatch.adapters.base import FuelDataStore, StoreReadError
from fuel_dispatch.domain.models import (
    DriverTask,
    DriverTaskCounts,
    DriverTaskCreate,
    DriverTaskEntryRead,
    DriverTaskImport,
    DriverTaskRead,
    Site,
    SiteCreate,
    SiteRead,
    task_view,
)
from fuel_dispatch.domain.state_machine import (
    AdminStatus,
    ExecutionStatus,
    ingest_admin_status,
)
from fuel_dispatch.infra.events import event_bus
from fuel_dispatch.services.driver_workspace import count_tasks, matches_query

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    pass


class NotFoundError(DispatchError):
    pass


class ValidationError(DispatchError):
    pass


def _execution_status(raw: str | None) -> ExecutionStatus:
    try:
        return ExecutionStatus((raw or "").strip().lower())
    except ValueError:
        return ExecutionStatus.PENDING


class DispatchBoard:
    """Back-office view over every driver task."""

    def __init__(self, store: FuelDataStore) -> None:
        self.store = store
        self.tasks: list[DriverTaskRead] = []

    def _get(self, task_id: str) -> DriverTaskRead:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise NotFoundError("task not found")

    async def load(self) -> list[DriverTaskRead]:
        try:
            rows = await self.store.list_tasks()
        except StoreReadError:
            logger.warning("task listing failed", exc_info=True)
            rows = []
        self.tasks = [task_view(row) for row in rows]
        return self.tasks

    async def create_task(self, payload: DriverTaskCreate, actor_id: str | None) -> DriverTaskRead:
        site_name = payload.site_name.strip()
        driver_name = payload.driver_name.strip()
        if not site_name or not driver_name:
            raise ValidationError("site_name and driver_name are required")
        row = DriverTask(
            site_id=(payload.site_id or "").strip() or None,
            site_name=site_name,
            driver_name=driver_name,
            driver_phone=(payload.driver_phone or "").strip() or None,
            scheduled_at=payload.scheduled_at,
            status=ExecutionStatus.PENDING,
            admin_status=AdminStatus.CREATION,
            required_liters=payload.required_liters,
            notes=payload.notes,
            created_by=actor_id,
        )
        saved = await self.store.insert_tasks([row])
        created = task_view(saved[0])
        self.tasks.insert(0, created)
        event_bus.publish_dict(
            "driver_task.created",
            {"task_id": created.id, "driver_name": driver_name, "site_name": site_name},
            actor_id=actor_id,
        )
        return created

    async def import_tasks(self, payloads: list[DriverTaskImport], actor_id: str | None) -> list[DriverTaskRead]:
        """Bulk-insert missions synced from elsewhere.

        Imported rows keep their raw execution status; their administrative label is
        taken as given or derived from that status.
        """
        rows = [
            DriverTask(
                mission_id=item.mission_id,
                site_id=item.site_id,
                site_name=item.site_name,
                driver_name=item.driver_name,
                driver_phone=item.driver_phone,
                scheduled_at=item.scheduled_at,
                status=_execution_status(item.status),
                admin_status=ingest_admin_status(item.status, item.admin_status),
                required_liters=item.required_liters,
                notes=item.notes,
                site_latitude=item.latitude,
                site_longitude=item.longitude,
                legacy=dict(item.legacy),
                created_by=actor_id,
            )
            for item in payloads
        ]
        if not rows:
            return []
        saved = [task_view(row) for row in await self.store.insert_tasks(rows)]
        self.tasks = [*saved, *self.tasks]
        event_bus.publish_dict(
            "driver_task.imported",
            {"task_ids": [task.id for task in saved], "count": len(saved)},
            actor_id=actor_id,
        )
        return saved

    async def set_admin_status(self, task_id: str, admin_status: AdminStatus, actor_id: str | None) -> DriverTaskRead:
        task = self._get(task_id)
        await self.store.update_task(task_id, {"admin_status": admin_status})
        updated = task.model_copy(update={"admin_status": admin_status})
        self.tasks = [updated if item.id == task_id else item for item in self.tasks]
        event_bus.publish_dict(
            "driver_task.admin_status_changed",
            {"task_id": task_id, "from": task.admin_status, "to": admin_status},
            actor_id=actor_id,
        )
        return updated

    async def remove(self, task_id: str, actor_id: str | None) -> None:
        task = self._get(task_id)
        await self.store.delete_task(task_id)
        self.tasks = [item for item in self.tasks if item.id != task_id]
        event_bus.publish_dict(
            "driver_task.deleted",
            {"task_id": task_id, "driver_name": task.driver_name},
            actor_id=actor_id,
        )

    def counts(self) -> DriverTaskCounts:
        return count_tasks(self.tasks)

    def counts_by_admin_status(self) -> dict[str, int]:
        counts = {label.value: 0 for label in AdminStatus}
        for task in self.tasks:
            if task.admin_status is not None:
                counts[task.admin_status.value] += 1
        return counts

    def filtered(
        self,
        *,
        status: ExecutionStatus | None = None,
        admin_status: AdminStatus | None = None,
        driver_name: str | None = None,
        query: str | None = None,
    ) -> list[DriverTaskRead]:
        driver = (driver_name or "").strip().lower()
        return [
            task
            for task in self.tasks
            if (status is None or task.status == status)
            and (admin_status is None or task.admin_status == admin_status)
            and (not driver or (task.driver_name or "").strip().lower() == driver)
            and matches_query(task, query)
        ]

    async def list_entries(self, task_id: str) -> list[DriverTaskEntryRead]:
        self._get(task_id)
        try:
            rows = await self.store.list_entries(task_id)
        except StoreReadError:
            logger.warning("entry listing failed for %s", task_id, exc_info=True)
            rows = []
        return [DriverTaskEntryRead.model_validate(row) for row in rows]

    async def create_site(self, payload: SiteCreate) -> SiteRead:
        name = payload.site_name.strip()
        if not name:
            raise ValidationError("site_name is required")
        row = await self.store.insert_site(
            Site(
                site_name=name,
                city=payload.city,
                latitude=payload.latitude,
                longitude=payload.longitude,
            )
        )
        return SiteRead.model_validate(row)

    async def list_sites(self) -> list[SiteRead]:
        try:
            rows = await self.store.list_sites()
        except StoreReadError:
            logger.warning("site listing failed", exc_info=True)
            rows = []
        return [SiteRead.model_validate(row) for row in rows]
