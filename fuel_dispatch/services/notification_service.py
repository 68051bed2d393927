from __future__ import annotations

import logging

from fuel_dispatch.adapters.base import NotificationStore, StoreReadError
from fuel_dispatch.domain.models import (
    DriverNotification,
    NotificationCreate,
    NotificationInboxRead,
    NotificationRead,
)
from fuel_dispatch.infra.events import event_bus

logger = logging.getLogger(__name__)

INBOX_LIMIT = 50


class NotificationError(Exception):
    pass


class ValidationError(NotificationError):
    pass


class NotificationInbox:
    def __init__(self, store: NotificationStore) -> None:
        self.store = store

    async def load(self, driver_name: str) -> NotificationInboxRead:
        try:
            rows = await self.store.list_notifications(driver_name, INBOX_LIMIT)
        except StoreReadError:
            logger.warning("notification lookup failed for %s", driver_name, exc_info=True)
            rows = []
        notifications = [NotificationRead.model_validate(row) for row in rows]
        ids = [item.id for item in notifications]
        if not ids:
            return NotificationInboxRead(notifications=[], unread_count=0)
        try:
            read_ids = await self.store.list_read_ids(driver_name, ids)
        except StoreReadError:
            logger.warning("read receipt lookup failed for %s", driver_name, exc_info=True)
            read_ids = set()
        unread = sum(1 for item in ids if item not in read_ids)
        return NotificationInboxRead(notifications=notifications, unread_count=unread)

    async def mark_all_read(self, driver_name: str) -> NotificationInboxRead:
        inbox = await self.load(driver_name)
        ids = [item.id for item in inbox.notifications]
        if ids:
            await self.store.upsert_reads(driver_name, ids)
        return inbox.model_copy(update={"unread_count": 0})

    async def send(self, payload: NotificationCreate, sent_by: str | None) -> NotificationRead:
        title = payload.title.strip()
        message = payload.message.strip()
        if not title or not message:
            raise ValidationError("title and message are required")
        target = (payload.driver_name or "").strip() or None
        row = await self.store.insert_notification(
            DriverNotification(title=title, message=message, driver_name=target, sent_by=sent_by)
        )
        notification = NotificationRead.model_validate(row)
        event_bus.publish_dict(
            "driver_notification.sent",
            {"notification_id": notification.id, "driver_name": target, "broadcast": target is None},
            actor_id=sent_by,
        )
        return notification
