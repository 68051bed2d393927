from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from fuel_dispatch.adapters.base import StoreNotFoundError, StoreReadError, StoreWriteError
from fuel_dispatch.domain.models import (
    DriverNotification,
    DriverNotificationRead,
    DriverPushToken,
    DriverTask,
    DriverTaskEntry,
    Site,
    now_utc,
)
from fuel_dispatch.infra.db import open_session

TASK_COLUMNS = frozenset(DriverTask.model_fields)

T = TypeVar("T")


async def _read(work: Callable[[Session], T]) -> T:
    def _run() -> T:
        with open_session() as session:
            return work(session)

    try:
        return await asyncio.to_thread(_run)
    except SQLAlchemyError as exc:
        raise StoreReadError(str(exc)) from exc


async def _write(work: Callable[[Session], T]) -> T:
    def _run() -> T:
        with open_session() as session:
            result = work(session)
            session.commit()
            return result

    try:
        return await asyncio.to_thread(_run)
    except SQLAlchemyError as exc:
        raise StoreWriteError(str(exc)) from exc


class SqlDataStore:
    """SQLModel-backed implementation of every store collaborator.

    Sessions are blocking, so each call runs in a worker thread and independent
    lookups can be awaited together.
    """

    async def list_tasks_for_driver(self, driver_name: str, driver_phone: str | None) -> list[DriverTask]:
        identity = [DriverTask.driver_name == driver_name]
        if driver_phone and driver_phone.strip():
            identity.append(DriverTask.driver_phone == driver_phone)
        statement = select(DriverTask).where(or_(*identity)).order_by(col(DriverTask.scheduled_at).asc())
        return await _read(lambda session: list(session.exec(statement).all()))

    async def list_tasks(self) -> list[DriverTask]:
        statement = select(DriverTask).order_by(col(DriverTask.created_at).desc())
        return await _read(lambda session: list(session.exec(statement).all()))

    async def insert_tasks(self, tasks: list[DriverTask]) -> list[DriverTask]:
        def _insert(session: Session) -> list[DriverTask]:
            session.add_all(tasks)
            session.flush()
            return tasks

        return await _write(_insert)

    async def update_task(self, task_id: str, changes: dict[str, Any]) -> None:
        unknown = sorted(set(changes) - TASK_COLUMNS)
        if unknown:
            raise StoreWriteError(f"unknown column: {', '.join(unknown)}")

        def _update(session: Session) -> None:
            task = session.get(DriverTask, task_id)
            if task is None:
                raise StoreNotFoundError("task not found")
            for key, value in changes.items():
                setattr(task, key, value)
            task.updated_at = now_utc()
            session.add(task)

        await _write(_update)

    async def delete_task(self, task_id: str) -> None:
        def _delete(session: Session) -> None:
            task = session.get(DriverTask, task_id)
            if task is None:
                raise StoreNotFoundError("task not found")
            session.delete(task)

        await _write(_delete)

    async def insert_entry(self, entry: DriverTaskEntry) -> DriverTaskEntry:
        def _insert(session: Session) -> DriverTaskEntry:
            session.add(entry)
            session.flush()
            return entry

        return await _write(_insert)

    async def list_entries(self, task_id: str) -> list[DriverTaskEntry]:
        statement = (
            select(DriverTaskEntry)
            .where(DriverTaskEntry.task_id == task_id)
            .order_by(col(DriverTaskEntry.submitted_at).desc())
        )
        return await _read(lambda session: list(session.exec(statement).all()))

    async def find_sites_by_ids(self, site_ids: list[int]) -> list[Site]:
        if not site_ids:
            return []
        statement = select(Site).where(col(Site.id).in_(site_ids))
        return await _read(lambda session: list(session.exec(statement).all()))

    async def find_sites_by_names(self, site_names: list[str]) -> list[Site]:
        normalized = sorted({name.strip().lower() for name in site_names if name.strip()})
        if not normalized:
            return []
        statement = select(Site).where(func.lower(func.trim(Site.site_name)).in_(normalized))
        return await _read(lambda session: list(session.exec(statement).all()))

    async def insert_site(self, site: Site) -> Site:
        def _insert(session: Session) -> Site:
            session.add(site)
            session.flush()
            return site

        return await _write(_insert)

    async def list_sites(self) -> list[Site]:
        statement = select(Site).order_by(col(Site.site_name))
        return await _read(lambda session: list(session.exec(statement).all()))

    async def upsert_push_token(self, record: DriverPushToken) -> None:
        await _write(lambda session: session.merge(record))

    async def list_notifications(self, driver_name: str, limit: int) -> list[DriverNotification]:
        statement = (
            select(DriverNotification)
            .where(
                or_(
                    col(DriverNotification.driver_name).is_(None),
                    DriverNotification.driver_name == driver_name,
                )
            )
            .order_by(col(DriverNotification.created_at).desc())
            .limit(limit)
        )
        return await _read(lambda session: list(session.exec(statement).all()))

    async def list_read_ids(self, driver_name: str, notification_ids: list[int]) -> set[int]:
        if not notification_ids:
            return set()
        statement = (
            select(DriverNotificationRead.notification_id)
            .where(DriverNotificationRead.driver_name == driver_name)
            .where(col(DriverNotificationRead.notification_id).in_(notification_ids))
        )
        return await _read(lambda session: set(session.exec(statement).all()))

    async def upsert_reads(self, driver_name: str, notification_ids: list[int]) -> None:
        def _upsert(session: Session) -> None:
            for notification_id in notification_ids:
                session.merge(
                    DriverNotificationRead(
                        notification_id=notification_id,
                        driver_name=driver_name,
                        read_at=now_utc(),
                    )
                )

        await _write(_upsert)

    async def insert_notification(self, notification: DriverNotification) -> DriverNotification:
        def _insert(session: Session) -> DriverNotification:
            session.add(notification)
            session.flush()
            return notification

        return await _write(_insert)
