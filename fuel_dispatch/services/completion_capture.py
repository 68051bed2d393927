from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath

from fuel_dispatch.adapters.base import MediaStorage
from fuel_dispatch.domain.models import (
    CompletionFieldsUpdate,
    CompletionSessionRead,
    DriverTaskRead,
    ImageSlotRead,
    ImageTag,
    now_utc,
)

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024
DEFAULT_IMAGE_EXTENSION = "jpg"
DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"^\s*[+-]?\d+")
_WHITESPACE = re.compile(r"\s+")


class CompletionError(Exception):
    pass


class ImageTooLargeError(CompletionError):
    pass


def parse_leading_float(raw: str | None) -> float | None:
    """Read the numeric prefix of `raw` ("12.5abc" -> 12.5); None when there is none."""
    if not raw:
        return None
    match = _LEADING_FLOAT.match(raw)
    if match is None:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def parse_leading_int(raw: str | None) -> int | None:
    if not raw:
        return None
    match = _LEADING_INT.match(raw)
    return int(match.group(0)) if match else None


def parse_quantity(quantity_added: str | None, liters: str | None) -> float:
    raw = quantity_added or liters or "0"
    value = parse_leading_float(raw)
    return value if value is not None else 0.0


@dataclass
class ImageSlot:
    tag: ImageTag
    preview: str | None = None
    url: str | None = None
    uploading: bool = False
    error: str | None = None

    def to_read(self) -> ImageSlotRead:
        return ImageSlotRead(
            tag=self.tag,
            preview=self.preview,
            url=self.url,
            uploading=self.uploading,
            error=self.error,
        )


def _empty_slots() -> dict[ImageTag, ImageSlot]:
    return {tag: ImageSlot(tag=tag) for tag in ImageTag}


@dataclass
class CompletionSession:
    task_id: str
    site_id: str = ""
    mission_id: str = ""
    actual_liters_in_tank: str = ""
    quantity_added: str = ""
    liters: str = ""
    notes: str = ""
    rate: str = ""
    station: str = ""
    receipt: str = ""
    photo_url: str = ""
    odometer: str = ""
    slots: dict[ImageTag, ImageSlot] = field(default_factory=_empty_slots)

    @classmethod
    def for_task(cls, task: DriverTaskRead) -> CompletionSession:
        return cls(
            task_id=task.id,
            site_id=str(task.site_id or task.site_name or ""),
            mission_id=str(task.mission_id or task.id),
            notes=task.notes or "",
        )

    def apply(self, update: CompletionFieldsUpdate) -> None:
        for key, value in update.model_dump(exclude_unset=True).items():
            setattr(self, key, value or "")

    def image_urls(self) -> dict[str, str]:
        return {slot.tag.url_field: slot.url for slot in self.slots.values() if slot.url}

    @property
    def uploading(self) -> bool:
        return any(slot.uploading for slot in self.slots.values())

    def to_read(self) -> CompletionSessionRead:
        return CompletionSessionRead(
            task_id=self.task_id,
            site_id=self.site_id,
            mission_id=self.mission_id,
            actual_liters_in_tank=self.actual_liters_in_tank,
            quantity_added=self.quantity_added,
            liters=self.liters,
            notes=self.notes,
            rate=self.rate,
            station=self.station,
            receipt=self.receipt,
            photo_url=self.photo_url,
            odometer=self.odometer,
            slots=[self.slots[tag].to_read() for tag in ImageTag],
        )


@dataclass(frozen=True)
class ImageUpload:
    tag: ImageTag
    file_name: str
    content: bytes
    content_type: str = DEFAULT_IMAGE_CONTENT_TYPE


class CompletionCapture:
    """Uploads completion photos into the slots of a completion session."""

    def __init__(self, storage: MediaStorage, clock: Callable[[], datetime] = now_utc) -> None:
        self.storage = storage
        self.clock = clock

    def build_object_path(
        self,
        *,
        driver_name: str | None,
        task_id: str | None,
        tag: ImageTag,
        file_name: str,
    ) -> str:
        folder = _WHITESPACE.sub("_", (driver_name or "").strip()).replace("/", "_") or "driver"
        suffix = PurePosixPath(file_name.replace("\\", "/")).suffix.lstrip(".").lower()
        extension = suffix or DEFAULT_IMAGE_EXTENSION
        stamp = int(self.clock().timestamp() * 1000)
        return f"{folder}/{task_id or 'misc'}/{tag.value}_{stamp}.{extension}"

    async def attach_image(
        self,
        session: CompletionSession,
        driver_name: str | None,
        upload: ImageUpload,
    ) -> ImageSlot:
        slot = session.slots[upload.tag]
        slot.preview = f"local:{upload.file_name}"
        slot.url = None
        slot.error = None
        if len(upload.content) > MAX_IMAGE_BYTES:
            slot.error = "Max file size is 10MB"
            raise ImageTooLargeError(slot.error)

        object_path = self.build_object_path(
            driver_name=driver_name,
            task_id=session.task_id,
            tag=upload.tag,
            file_name=upload.file_name,
        )
        slot.uploading = True
        try:
            url = await self.storage.upload(
                object_path=object_path,
                content=upload.content,
                content_type=upload.content_type or DEFAULT_IMAGE_CONTENT_TYPE,
            )
        except Exception as exc:
            # The local preview stays and the slot has no url; the driver may pick the file again.
            logger.warning("image upload failed for %s slot %s", session.task_id, upload.tag, exc_info=True)
            slot.error = f"Image upload failed: {exc}"
            return slot
        finally:
            slot.uploading = False
        slot.url = url
        slot.preview = url
        return slot

    async def _attach_quietly(
        self,
        session: CompletionSession,
        driver_name: str | None,
        upload: ImageUpload,
    ) -> ImageSlot:
        try:
            return await self.attach_image(session, driver_name, upload)
        except ImageTooLargeError:
            return session.slots[upload.tag]

    async def attach_images(
        self,
        session: CompletionSession,
        driver_name: str | None,
        uploads: list[ImageUpload],
    ) -> list[ImageSlot]:
        return list(
            await asyncio.gather(*(self._attach_quietly(session, driver_name, upload) for upload in uploads))
        )
