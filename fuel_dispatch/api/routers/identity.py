from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from fuel_dispatch.api.deps import get_driver_profile, require_perm
from fuel_dispatch.domain.models import (
    DispatcherBootstrapRequest,
    DispatcherLoginRequest,
    DispatcherRead,
    DriverCreate,
    DriverLoginRequest,
    DriverProfile,
    DriverRead,
    TokenResponse,
)
from fuel_dispatch.domain.permissions import PERM_DRIVER_READ, PERM_DRIVER_WRITE, ROLE_DISPATCHER, ROLE_DRIVER
from fuel_dispatch.infra.audit import set_audit_context
from fuel_dispatch.infra.auth import create_access_token
from fuel_dispatch.services.driver_workspace import workspace_registry
from fuel_dispatch.services.identity_service import (
    AuthError,
    ConflictError,
    IdentityService,
    NotFoundError,
    ValidationError,
)

router = APIRouter()


def get_identity_service() -> IdentityService:
    return IdentityService()


Service = Annotated[IdentityService, Depends(get_identity_service)]
Profile = Annotated[DriverProfile, Depends(get_driver_profile)]


def _handle_identity_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, AuthError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    raise exc


@router.post("/bootstrap-dispatcher", response_model=DispatcherRead, status_code=status.HTTP_201_CREATED)
def bootstrap_dispatcher(payload: DispatcherBootstrapRequest, service: Service) -> DispatcherRead:
    try:
        dispatcher = service.bootstrap_dispatcher(payload)
        return DispatcherRead.model_validate(dispatcher)
    except (NotFoundError, ConflictError, AuthError, ValidationError) as exc:
        _handle_identity_error(exc)
        raise


@router.post("/dispatcher-login", response_model=TokenResponse)
def dispatcher_login(payload: DispatcherLoginRequest, request: Request, service: Service) -> TokenResponse:
    try:
        dispatcher, permissions = service.dispatcher_login(payload.username, payload.password)
    except (NotFoundError, ConflictError, AuthError, ValidationError) as exc:
        set_audit_context(request, action="identity.dispatcher_login", detail={"username": payload.username})
        _handle_identity_error(exc)
        raise
    token = create_access_token(subject=dispatcher.id, role=ROLE_DISPATCHER, permissions=permissions)
    return TokenResponse(access_token=token, role=ROLE_DISPATCHER, permissions=permissions)


@router.post("/driver-login", response_model=TokenResponse)
def driver_login(payload: DriverLoginRequest, request: Request, service: Service) -> TokenResponse:
    set_audit_context(request, action="identity.driver_login", detail={"driver_name": payload.name})
    try:
        profile, permissions = service.driver_login(payload.name, payload.password)
    except (NotFoundError, ConflictError, AuthError, ValidationError) as exc:
        _handle_identity_error(exc)
        raise
    token = create_access_token(
        subject=profile.name,
        role=ROLE_DRIVER,
        permissions=permissions,
        driver_name=profile.name,
        driver_phone=profile.phone,
    )
    return TokenResponse(access_token=token, role=ROLE_DRIVER, permissions=permissions)


@router.post("/driver-logout", status_code=status.HTTP_204_NO_CONTENT)
async def driver_logout(profile: Profile, request: Request) -> Response:
    set_audit_context(request, action="identity.driver_logout")
    await workspace_registry.logout(profile)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/drivers",
    response_model=DriverRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_perm(PERM_DRIVER_WRITE))],
)
def create_driver(payload: DriverCreate, service: Service) -> DriverRead:
    try:
        driver = service.create_driver(payload)
        return DriverRead.model_validate(driver)
    except (NotFoundError, ConflictError, AuthError, ValidationError) as exc:
        _handle_identity_error(exc)
        raise


@router.get(
    "/drivers",
    response_model=list[DriverRead],
    dependencies=[Depends(require_perm(PERM_DRIVER_READ))],
)
def list_drivers(service: Service) -> list[DriverRead]:
    return [DriverRead.model_validate(item) for item in service.list_drivers()]
