from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from fuel_dispatch.adapters.base import FuelDataStore, StoreNotFoundError, StoreWriteError
from fuel_dispatch.api.deps import get_current_claims, get_data_store, require_perm
from fuel_dispatch.domain.models import (
    AdminStatusUpdateRequest,
    DispatchCountsRead,
    DriverTaskCreate,
    DriverTaskEntryRead,
    DriverTaskImport,
    DriverTaskRead,
    NotificationCreate,
    NotificationRead,
    SiteCreate,
    SiteRead,
)
from fuel_dispatch.domain.permissions import (
    PERM_NOTIFICATION_WRITE,
    PERM_SITE_READ,
    PERM_SITE_WRITE,
    PERM_TASK_READ,
    PERM_TASK_REVIEW,
    PERM_TASK_WRITE,
)
from fuel_dispatch.domain.state_machine import AdminStatus, ExecutionStatus
from fuel_dispatch.infra.audit import set_audit_context
from fuel_dispatch.services.dispatch_board import DispatchBoard, NotFoundError, ValidationError
from fuel_dispatch.services.notification_service import NotificationInbox
from fuel_dispatch.services.notification_service import ValidationError as NotificationValidationError

router = APIRouter()


def get_dispatch_board(store: Annotated[FuelDataStore, Depends(get_data_store)]) -> DispatchBoard:
    return DispatchBoard(store)


def get_notification_inbox(store: Annotated[FuelDataStore, Depends(get_data_store)]) -> NotificationInbox:
    return NotificationInbox(store)


Claims = Annotated[dict[str, Any], Depends(get_current_claims)]
Board = Annotated[DispatchBoard, Depends(get_dispatch_board)]
Inbox = Annotated[NotificationInbox, Depends(get_notification_inbox)]


def _handle_dispatch_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError | StoreNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ValidationError | NotificationValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if isinstance(exc, StoreWriteError):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    raise exc


@router.post(
    "/tasks",
    response_model=DriverTaskRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_TASK_WRITE))],
)
async def create_task(payload: DriverTaskCreate, claims: Claims, board: Board) -> DriverTaskRead:
    try:
        return await board.create_task(payload, actor_id=claims["sub"])
    except (ValidationError, StoreWriteError) as exc:
        _handle_dispatch_error(exc)
        raise


@router.post(
    "/tasks/import",
    response_model=list[DriverTaskRead],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_TASK_WRITE))],
)
async def import_tasks(
    payload: list[DriverTaskImport],
    claims: Claims,
    board: Board,
    request: Request,
) -> list[DriverTaskRead]:
    set_audit_context(request, action="dispatch.import_tasks", detail={"count": len(payload)})
    try:
        return await board.import_tasks(payload, actor_id=claims["sub"])
    except StoreWriteError as exc:
        _handle_dispatch_error(exc)
        raise


@router.get(
    "/tasks",
    response_model=list[DriverTaskRead],
    dependencies=[Depends(require_perm(PERM_TASK_READ))],
)
async def list_tasks(
    board: Board,
    status_filter: Annotated[ExecutionStatus | None, Query(alias="status")] = None,
    admin_status: AdminStatus | None = None,
    driver_name: str | None = None,
    q: str | None = None,
) -> list[DriverTaskRead]:
    await board.load()
    return board.filtered(status=status_filter, admin_status=admin_status, driver_name=driver_name, query=q)


@router.get(
    "/tasks/counts",
    response_model=DispatchCountsRead,
    dependencies=[Depends(require_perm(PERM_TASK_READ))],
)
async def task_counts(board: Board) -> DispatchCountsRead:
    await board.load()
    return DispatchCountsRead(counts=board.counts(), by_admin_status=board.counts_by_admin_status())


@router.patch(
    "/tasks/{task_id}/admin-status",
    response_model=DriverTaskRead,
    dependencies=[Depends(require_perm(PERM_TASK_REVIEW))],
)
async def set_admin_status(
    task_id: str,
    payload: AdminStatusUpdateRequest,
    claims: Claims,
    board: Board,
    request: Request,
) -> DriverTaskRead:
    set_audit_context(
        request,
        action="dispatch.set_admin_status",
        resource=f"driver_task:{task_id}",
        detail={"admin_status": payload.admin_status.value},
    )
    await board.load()
    try:
        return await board.set_admin_status(task_id, payload.admin_status, actor_id=claims["sub"])
    except (NotFoundError, StoreWriteError) as exc:
        _handle_dispatch_error(exc)
        raise


@router.delete(
    "/tasks/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_perm(PERM_TASK_WRITE))],
)
async def delete_task(task_id: str, claims: Claims, board: Board, request: Request) -> Response:
    set_audit_context(request, action="dispatch.delete_task", resource=f"driver_task:{task_id}")
    await board.load()
    try:
        await board.remove(task_id, actor_id=claims["sub"])
    except (NotFoundError, StoreWriteError) as exc:
        _handle_dispatch_error(exc)
        raise
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/tasks/{task_id}/entries",
    response_model=list[DriverTaskEntryRead],
    dependencies=[Depends(require_perm(PERM_TASK_READ))],
)
async def list_task_entries(task_id: str, board: Board) -> list[DriverTaskEntryRead]:
    await board.load()
    try:
        return await board.list_entries(task_id)
    except NotFoundError as exc:
        _handle_dispatch_error(exc)
        raise


@router.post(
    "/sites",
    response_model=SiteRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_SITE_WRITE))],
)
async def create_site(payload: SiteCreate, board: Board) -> SiteRead:
    try:
        return await board.create_site(payload)
    except (ValidationError, StoreWriteError) as exc:
        _handle_dispatch_error(exc)
        raise


@router.get(
    "/sites",
    response_model=list[SiteRead],
    dependencies=[Depends(require_perm(PERM_SITE_READ))],
)
async def list_sites(board: Board) -> list[SiteRead]:
    return await board.list_sites()


@router.post(
    "/notifications",
    response_model=NotificationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_NOTIFICATION_WRITE))],
)
async def send_notification(payload: NotificationCreate, claims: Claims, inbox: Inbox) -> NotificationRead:
    try:
        return await inbox.send(payload, sent_by=claims["sub"])
    except (NotificationValidationError, StoreWriteError) as exc:
        _handle_dispatch_error(exc)
        raise
