from __future__ import annotations

import asyncio
import copy
from collections import Counter
from itertools import count
from typing import Any, TypeVar

from sqlmodel import SQLModel

from fuel_dispatch.adapters.base import (
    StoreNotFoundError,
    StoreReadError,
    StoreWriteError,
)
from fuel_dispatch.domain.models import (
    DriverNotification,
    DriverPushToken,
    DriverTask,
    DriverTaskEntry,
    Site,
    now_utc,
)

READ_OPERATIONS = frozenset(
    {
        "list_tasks_for_driver",
        "list_tasks",
        "list_entries",
        "find_sites_by_ids",
        "find_sites_by_names",
        "list_sites",
        "list_notifications",
        "list_read_ids",
    }
)

RowT = TypeVar("RowT", bound=SQLModel)


def _clone(row: RowT) -> RowT:
    return type(row)(**copy.deepcopy(row.model_dump()))


class MemoryDataStore:
    """In-process store used by the `memory` data backend and by tests.

    `fail_on` names operations that should be rejected, `reject_columns` makes
    `update_task` refuse any change touching those columns, and `latency_seconds`
    yields to the event loop before every operation.
    """

    def __init__(
        self,
        *,
        fail_on: set[str] | None = None,
        reject_columns: set[str] | None = None,
        latency_seconds: float = 0.0,
    ) -> None:
        self.fail_on: set[str] = set(fail_on or ())
        self.reject_columns: set[str] = set(reject_columns or ())
        self.latency_seconds = max(latency_seconds, 0.0)
        self.calls: Counter[str] = Counter()
        self.tasks: dict[str, DriverTask] = {}
        self.entries: list[DriverTaskEntry] = []
        self.sites: dict[int, Site] = {}
        self.push_tokens: dict[str, DriverPushToken] = {}
        self.notifications: dict[int, DriverNotification] = {}
        self.reads: set[tuple[int, str]] = set()
        self._site_ids = count(1)
        self._notification_ids = count(1)

    async def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        await asyncio.sleep(self.latency_seconds)
        if operation in self.fail_on:
            if operation in READ_OPERATIONS:
                raise StoreReadError(f"{operation} unavailable")
            raise StoreWriteError(f"{operation} rejected")

    async def list_tasks_for_driver(self, driver_name: str, driver_phone: str | None) -> list[DriverTask]:
        await self._enter("list_tasks_for_driver")
        phone = (driver_phone or "").strip()
        rows = [
            _clone(task)
            for task in self.tasks.values()
            if task.driver_name == driver_name or (phone and task.driver_phone == phone)
        ]
        return sorted(rows, key=lambda task: (task.scheduled_at is None, task.scheduled_at or now_utc()))

    async def list_tasks(self) -> list[DriverTask]:
        await self._enter("list_tasks")
        return sorted(
            (_clone(task) for task in self.tasks.values()),
            key=lambda task: task.created_at,
            reverse=True,
        )

    async def insert_tasks(self, tasks: list[DriverTask]) -> list[DriverTask]:
        await self._enter("insert_tasks")
        for task in tasks:
            self.tasks[task.id] = _clone(task)
        return [_clone(task) for task in tasks]

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> None:
        await self._enter("update_task")
        rejected = sorted(set(changes) & self.reject_columns)
        if rejected:
            raise StoreWriteError(f"unknown column: {', '.join(rejected)}")
        task = self.tasks.get(task_id)
        if task is None:
            raise StoreNotFoundError("task not found")
        for key, value in changes.items():
            setattr(task, key, value)
        task.updated_at = now_utc()

    async def delete_task(self, task_id: str) -> None:
        await self._enter("delete_task")
        if self.tasks.pop(task_id, None) is None:
            raise StoreNotFoundError("task not found")

    async def insert_entry(self, entry: DriverTaskEntry) -> DriverTaskEntry:
        await self._enter("insert_entry")
        self.entries.append(_clone(entry))
        return entry

    async def list_entries(self, task_id: str) -> list[DriverTaskEntry]:
        await self._enter("list_entries")
        rows = [_clone(entry) for entry in self.entries if entry.task_id == task_id]
        return sorted(rows, key=lambda entry: entry.submitted_at, reverse=True)

    async def find_sites_by_ids(self, site_ids: list[int]) -> list[Site]:
        await self._enter("find_sites_by_ids")
        wanted = set(site_ids)
        return [_clone(site) for site_id, site in self.sites.items() if site_id in wanted]

    async def find_sites_by_names(self, site_names: list[str]) -> list[Site]:
        await self._enter("find_sites_by_names")
        wanted = {name.strip().lower() for name in site_names}
        return [_clone(site) for site in self.sites.values() if site.site_name.strip().lower() in wanted]

    async def insert_site(self, site: Site) -> Site:
        await self._enter("insert_site")
        if site.id is None:
            site.id = next(self._site_ids)
        self.sites[site.id] = _clone(site)
        return site

    async def list_sites(self) -> list[Site]:
        await self._enter("list_sites")
        return sorted((_clone(site) for site in self.sites.values()), key=lambda site: site.site_name)

    async def upsert_push_token(self, record: DriverPushToken) -> None:
        await self._enter("upsert_push_token")
        self.push_tokens[record.token] = _clone(record)

    async def list_notifications(self, driver_name: str, limit: int) -> list[DriverNotification]:
        await self._enter("list_notifications")
        rows = [
            _clone(item)
            for item in self.notifications.values()
            if item.driver_name is None or item.driver_name == driver_name
        ]
        rows.sort(key=lambda item: (item.created_at, item.id or 0), reverse=True)
        return rows[:limit]

    async def list_read_ids(self, driver_name: str, notification_ids: list[int]) -> set[int]:
        await self._enter("list_read_ids")
        return {item for item in notification_ids if (item, driver_name) in self.reads}

    async def upsert_reads(self, driver_name: str, notification_ids: list[int]) -> None:
        await self._enter("upsert_reads")
        self.reads.update((item, driver_name) for item in notification_ids)

    async def insert_notification(self, notification: DriverNotification) -> DriverNotification:
        await self._enter("insert_notification")
        if notification.id is None:
            notification.id = next(self._notification_ids)
        self.notifications[notification.id] = _clone(notification)
        return notification
