from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from fuel_dispatch.domain.state_machine import AdminStatus, ExecutionStatus, ingest_admin_status


def now_utc() -> datetime:
    return datetime.now(UTC)


class EventRecord(SQLModel, table=True):
    __tablename__ = "events"

    event_id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    event_type: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    actor_id: str | None = Field(default=None, index=True)
    correlation_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    actor_id: str | None = Field(default=None, index=True)
    role: str | None = Field(default=None, index=True)
    action: str
    resource: str
    method: str
    status_code: int
    ts: datetime = Field(default_factory=now_utc, index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class Dispatcher(SQLModel, table=True):
    __tablename__ = "dispatchers"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Driver(SQLModel, table=True):
    __tablename__ = "drivers"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    phone: str | None = Field(default=None, index=True)
    password_sha256: str | None = None
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Site(SQLModel, table=True):
    __tablename__ = "sites"

    id: int | None = Field(default=None, primary_key=True)
    site_name: str = Field(index=True)
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)


class DriverTask(SQLModel, table=True):
    __tablename__ = "driver_tasks"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    mission_id: str | None = Field(default=None, index=True)
    site_id: str | None = Field(default=None, index=True)
    site_name: str | None = Field(default=None, index=True)
    driver_name: str | None = Field(default=None, index=True)
    driver_phone: str | None = Field(default=None, index=True)
    scheduled_at: datetime | None = Field(default=None, index=True)
    status: ExecutionStatus = Field(default=ExecutionStatus.PENDING, index=True)
    admin_status: AdminStatus | None = Field(default=AdminStatus.CREATION, index=True)
    required_liters: float | None = None
    notes: str | None = None
    site_latitude: float | None = None
    site_longitude: float | None = None
    counter_before_url: str | None = None
    tank_before_url: str | None = None
    counter_after_url: str | None = None
    tank_after_url: str | None = None
    completed_at: datetime | None = Field(default=None, index=True)
    legacy: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    created_by: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc, index=True)


class DriverTaskEntry(SQLModel, table=True):
    __tablename__ = "driver_task_entries"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    task_id: str = Field(index=True)
    liters: float = 0.0
    actual_liters_in_tank: float | None = None
    rate: float | None = None
    station: str | None = None
    receipt_number: str | None = None
    photo_url: str | None = None
    odometer: int | None = None
    counter_before_url: str | None = None
    tank_before_url: str | None = None
    counter_after_url: str | None = None
    tank_after_url: str | None = None
    notes: str | None = None
    submitted_by: str | None = Field(default=None, index=True)
    submitted_at: datetime = Field(default_factory=now_utc, index=True)


class DriverPushToken(SQLModel, table=True):
    __tablename__ = "driver_push_tokens"

    token: str = Field(primary_key=True)
    driver_name: str | None = Field(default=None, index=True)
    driver_phone: str | None = Field(default=None, index=True)
    platform: str
    updated_at: datetime = Field(default_factory=now_utc, index=True)


class DriverNotification(SQLModel, table=True):
    __tablename__ = "driver_notifications"

    id: int | None = Field(default=None, primary_key=True)
    title: str
    message: str
    driver_name: str | None = Field(default=None, index=True)
    sent_by: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)


class DriverNotificationRead(SQLModel, table=True):
    __tablename__ = "driver_notification_reads"

    notification_id: int = Field(primary_key=True)
    driver_name: str = Field(primary_key=True)
    read_at: datetime = Field(default_factory=now_utc)


class EventEnvelope(BaseModel):
    event_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    event_type: str
    ts: datetime = PydanticField(default_factory=now_utc)
    actor_id: str | None = None
    correlation_id: str | None = None
    payload: dict[str, Any]


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ImageTag(StrEnum):
    COUNTER_BEFORE = "counter_before"
    TANK_BEFORE = "tank_before"
    COUNTER_AFTER = "counter_after"
    TANK_AFTER = "tank_after"

    @property
    def url_field(self) -> str:
        return f"{self.value}_url"


class DriverProfile(BaseModel):
    name: str
    phone: str | None = None


class DispatcherBootstrapRequest(BaseModel):
    username: str
    password: str


class DispatcherLoginRequest(BaseModel):
    username: str
    password: str


class DriverLoginRequest(BaseModel):
    name: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    permissions: list[str] = PydanticField(default_factory=list)


class DispatcherRead(ORMReadModel):
    id: str
    username: str
    is_active: bool
    created_at: datetime


class DriverCreate(BaseModel):
    name: str
    phone: str | None = None
    password: str | None = None
    active: bool = True


class DriverRead(ORMReadModel):
    id: int
    name: str
    phone: str | None
    active: bool
    created_at: datetime


class SiteCreate(BaseModel):
    site_name: str
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class SiteRead(ORMReadModel):
    id: int
    site_name: str
    city: str | None
    latitude: float | None
    longitude: float | None


class DriverTaskCreate(BaseModel):
    site_id: str | None = None
    site_name: str = ""
    driver_name: str = ""
    driver_phone: str | None = None
    scheduled_at: datetime | None = None
    required_liters: float | None = None
    notes: str | None = None


class DriverTaskImport(BaseModel):
    mission_id: str | None = None
    site_id: str | None = None
    site_name: str | None = None
    driver_name: str | None = None
    driver_phone: str | None = None
    scheduled_at: datetime | None = None
    status: str | None = None
    admin_status: str | None = None
    required_liters: float | None = None
    notes: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    legacy: dict[str, Any] = PydanticField(default_factory=dict)


class DriverTaskRead(ORMReadModel):
    """In-memory view of a task as a workspace or board holds it."""

    id: str
    mission_id: str | None = None
    site_id: str | None = None
    site_name: str | None = None
    driver_name: str | None = None
    driver_phone: str | None = None
    scheduled_at: datetime | None = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    admin_status: AdminStatus | None = None
    required_liters: float | None = None
    notes: str | None = None
    site_latitude: float | None = None
    site_longitude: float | None = None
    counter_before_url: str | None = None
    tank_before_url: str | None = None
    counter_after_url: str | None = None
    tank_after_url: str | None = None
    completed_at: datetime | None = None
    local_completed_at: datetime | None = None
    legacy: dict[str, Any] = PydanticField(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AdminStatusUpdateRequest(BaseModel):
    admin_status: AdminStatus


class DriverTaskEntryRead(ORMReadModel):
    id: str
    task_id: str
    liters: float
    actual_liters_in_tank: float | None
    rate: float | None
    station: str | None
    receipt_number: str | None
    photo_url: str | None
    odometer: int | None
    counter_before_url: str | None
    tank_before_url: str | None
    counter_after_url: str | None
    tank_after_url: str | None
    notes: str | None
    submitted_by: str | None
    submitted_at: datetime


class DriverTaskCounts(BaseModel):
    pending: int = 0
    in_progress: int = 0
    returned: int = 0
    open: int = 0
    active_total: int = 0


class ImageSlotRead(BaseModel):
    tag: ImageTag
    preview: str | None = None
    url: str | None = None
    uploading: bool = False
    error: str | None = None


class CompletionFieldsUpdate(BaseModel):
    actual_liters_in_tank: str | None = None
    quantity_added: str | None = None
    liters: str | None = None
    notes: str | None = None
    rate: str | None = None
    station: str | None = None
    receipt: str | None = None
    photo_url: str | None = None
    odometer: str | None = None


class CompletionSessionRead(BaseModel):
    task_id: str
    site_id: str
    mission_id: str
    actual_liters_in_tank: str
    quantity_added: str
    liters: str
    notes: str
    rate: str
    station: str
    receipt: str
    photo_url: str
    odometer: str
    slots: list[ImageSlotRead]


class NotificationCreate(BaseModel):
    title: str = ""
    message: str = ""
    driver_name: str | None = None


class NotificationRead(ORMReadModel):
    id: int
    title: str
    message: str
    driver_name: str | None
    sent_by: str | None
    created_at: datetime


class NotificationInboxRead(BaseModel):
    notifications: list[NotificationRead]
    unread_count: int


class PushRegistrationRequest(BaseModel):
    token: str
    platform: str


class PushBindingStateRead(BaseModel):
    state: str
    token: str | None
    driver_name: str | None
    driver_phone: str | None
    platform: str | None
    last_synced_signature: str | None


class NotificationTapRequest(BaseModel):
    data: dict[str, Any] | None = None


class NotificationTapRead(BaseModel):
    target: str


def task_view(row: DriverTask) -> DriverTaskRead:
    view = DriverTaskRead.model_validate(row)
    if view.admin_status is None:
        view.admin_status = ingest_admin_status(view.status, None)
    return view


class DispatchCountsRead(BaseModel):
    counts: DriverTaskCounts
    by_admin_status: dict[str, int]


class CompletedTaskRead(BaseModel):
    task: DriverTaskRead
    completed_at: datetime


class SubmitResultRead(BaseModel):
    task: DriverTaskRead
    counts: DriverTaskCounts


class DirectionsRead(BaseModel):
    task_id: str
    url: str
