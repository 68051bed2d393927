from __future__ import annotations

from typing import Any, Protocol

from fuel_dispatch.domain.models import (
    DriverNotification,
    DriverPushToken,
    DriverTask,
    DriverTaskEntry,
    Site,
)


class StoreError(Exception):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class StoreNotFoundError(StoreWriteError):
    pass


class TaskStore(Protocol):
    async def list_tasks_for_driver(self, driver_name: str, driver_phone: str | None) -> list[DriverTask]: ...

    async def list_tasks(self) -> list[DriverTask]: ...

    async def insert_tasks(self, tasks: list[DriverTask]) -> list[DriverTask]: ...

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> None: ...

    async def delete_task(self, task_id: str) -> None: ...


class TaskEntryStore(Protocol):
    async def insert_entry(self, entry: DriverTaskEntry) -> DriverTaskEntry: ...

    async def list_entries(self, task_id: str) -> list[DriverTaskEntry]: ...


class SiteDirectory(Protocol):
    async def find_sites_by_ids(self, site_ids: list[int]) -> list[Site]: ...

    async def find_sites_by_names(self, site_names: list[str]) -> list[Site]: ...

    async def insert_site(self, site: Site) -> Site: ...

    async def list_sites(self) -> list[Site]: ...


class PushTokenStore(Protocol):
    async def upsert_push_token(self, record: DriverPushToken) -> None: ...


class NotificationStore(Protocol):
    async def list_notifications(self, driver_name: str, limit: int) -> list[DriverNotification]: ...

    async def list_read_ids(self, driver_name: str, notification_ids: list[int]) -> set[int]: ...

    async def upsert_reads(self, driver_name: str, notification_ids: list[int]) -> None: ...

    async def insert_notification(self, notification: DriverNotification) -> DriverNotification: ...


class MediaStorage(Protocol):
    async def upload(self, *, object_path: str, content: bytes, content_type: str) -> str: ...


class FuelDataStore(TaskStore, TaskEntryStore, SiteDirectory, PushTokenStore, NotificationStore, Protocol):
    pass
