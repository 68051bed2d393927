from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from fuel_dispatch.adapters.base import FuelDataStore, StoreNotFoundError, StoreWriteError
from fuel_dispatch.api.deps import get_data_store, get_driver_profile, get_driver_workspace
from fuel_dispatch.domain.models import (
    CompletedTaskRead,
    CompletionFieldsUpdate,
    CompletionSessionRead,
    DirectionsRead,
    DriverProfile,
    DriverTaskCounts,
    DriverTaskRead,
    ImageSlotRead,
    ImageTag,
    NotificationInboxRead,
    NotificationTapRead,
    NotificationTapRequest,
    PushBindingStateRead,
    PushRegistrationRequest,
    SubmitResultRead,
)
from fuel_dispatch.infra.audit import set_audit_context
from fuel_dispatch.services.completion_capture import DEFAULT_IMAGE_CONTENT_TYPE, ImageTooLargeError, ImageUpload
from fuel_dispatch.services.coordinate_service import directions_url
from fuel_dispatch.services.driver_workspace import (
    ConflictError,
    DriverWorkspace,
    NotFoundError,
    TaskFilterMode,
)
from fuel_dispatch.services.notification_service import NotificationInbox
from fuel_dispatch.services.push_binding import resolve_notification_target

router = APIRouter()


def get_notification_inbox(store: Annotated[FuelDataStore, Depends(get_data_store)]) -> NotificationInbox:
    return NotificationInbox(store)


Workspace = Annotated[DriverWorkspace, Depends(get_driver_workspace)]
Profile = Annotated[DriverProfile, Depends(get_driver_profile)]
Inbox = Annotated[NotificationInbox, Depends(get_notification_inbox)]


def _handle_driver_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError | StoreNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, ImageTooLargeError):
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc)) from exc
    if isinstance(exc, StoreWriteError):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    raise exc


@router.get("/tasks", response_model=list[DriverTaskRead])
async def list_tasks(
    workspace: Workspace,
    mode: TaskFilterMode = TaskFilterMode.ALL,
    q: str | None = None,
) -> list[DriverTaskRead]:
    await workspace.refresh()
    return workspace.visible_tasks(mode, q)


@router.get("/tasks/counts", response_model=DriverTaskCounts)
async def task_counts(workspace: Workspace) -> DriverTaskCounts:
    await workspace.ensure_loaded()
    return workspace.counts()


@router.get("/tasks/history", response_model=list[CompletedTaskRead])
async def completed_history(workspace: Workspace) -> list[CompletedTaskRead]:
    await workspace.ensure_loaded()
    return [CompletedTaskRead(task=task, completed_at=instant) for task, instant in workspace.recent_completed()]


@router.get("/tasks/{task_id}/directions", response_model=DirectionsRead)
async def task_directions(task_id: str, workspace: Workspace) -> DirectionsRead:
    await workspace.ensure_loaded()
    try:
        task = workspace.get_task(task_id)
    except NotFoundError as exc:
        _handle_driver_error(exc)
        raise
    url = directions_url(task)
    if url is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="site location unknown")
    return DirectionsRead(task_id=task_id, url=url)


@router.post("/tasks/{task_id}/start", response_model=DriverTaskRead)
async def start_task(task_id: str, workspace: Workspace, request: Request) -> DriverTaskRead:
    set_audit_context(request, action="driver.start_task", resource=f"driver_task:{task_id}")
    await workspace.ensure_loaded()
    try:
        return await workspace.start(task_id)
    except NotFoundError as exc:
        _handle_driver_error(exc)
        raise


@router.post("/tasks/{task_id}/completion", response_model=CompletionSessionRead)
async def open_completion(task_id: str, workspace: Workspace) -> CompletionSessionRead:
    await workspace.ensure_loaded()
    try:
        return workspace.open_completion(task_id).to_read()
    except NotFoundError as exc:
        _handle_driver_error(exc)
        raise


@router.get("/completion", response_model=CompletionSessionRead)
def get_completion(workspace: Workspace) -> CompletionSessionRead:
    if workspace.completion is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no completion session is open")
    return workspace.completion.to_read()


@router.patch("/completion", response_model=CompletionSessionRead)
def update_completion(payload: CompletionFieldsUpdate, workspace: Workspace) -> CompletionSessionRead:
    try:
        return workspace.update_completion(payload).to_read()
    except ConflictError as exc:
        _handle_driver_error(exc)
        raise


@router.put("/completion/images/{tag}", response_model=ImageSlotRead)
async def upload_completion_image(
    tag: ImageTag,
    request: Request,
    workspace: Workspace,
    x_file_name: Annotated[str, Header()] = "image.jpg",
) -> ImageSlotRead:
    content = await request.body()
    upload = ImageUpload(
        tag=tag,
        file_name=x_file_name,
        content=content,
        content_type=request.headers.get("content-type") or DEFAULT_IMAGE_CONTENT_TYPE,
    )
    try:
        slot = await workspace.attach_image(upload)
    except (ConflictError, ImageTooLargeError) as exc:
        _handle_driver_error(exc)
        raise
    return slot.to_read()


@router.post("/completion/submit", response_model=SubmitResultRead)
async def submit_completion(workspace: Workspace, request: Request) -> SubmitResultRead:
    if workspace.completion is not None:
        set_audit_context(
            request,
            action="driver.submit_completion",
            resource=f"driver_task:{workspace.completion.task_id}",
        )
    try:
        task = await workspace.submit()
    except (NotFoundError, ConflictError, StoreWriteError) as exc:
        _handle_driver_error(exc)
        raise
    return SubmitResultRead(task=task, counts=workspace.counts())


@router.get("/notifications", response_model=NotificationInboxRead)
async def list_notifications(profile: Profile, inbox: Inbox) -> NotificationInboxRead:
    return await inbox.load(profile.name)


@router.post("/notifications/read-all", response_model=NotificationInboxRead)
async def mark_notifications_read(profile: Profile, inbox: Inbox) -> NotificationInboxRead:
    try:
        return await inbox.mark_all_read(profile.name)
    except StoreWriteError as exc:
        _handle_driver_error(exc)
        raise


@router.post("/push/registration", response_model=PushBindingStateRead)
async def register_push_token(payload: PushRegistrationRequest, workspace: Workspace) -> PushBindingStateRead:
    await workspace.push.on_registration(payload.token, payload.platform, profile=workspace.profile)
    return workspace.push.to_read()


@router.get("/push/binding", response_model=PushBindingStateRead)
def push_binding_state(workspace: Workspace) -> PushBindingStateRead:
    return workspace.push.to_read()


@router.post("/push/tap", response_model=NotificationTapRead)
def notification_tap(payload: NotificationTapRequest, _profile: Profile) -> NotificationTapRead:
    return NotificationTapRead(target=resolve_notification_target(payload.data))
