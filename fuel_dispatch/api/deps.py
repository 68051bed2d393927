from __future__ import annotations

import os
from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from fuel_dispatch.adapters.base import FuelDataStore
from fuel_dispatch.adapters.memory_store import MemoryDataStore
from fuel_dispatch.adapters.sql_store import SqlDataStore
from fuel_dispatch.domain.models import DriverProfile
from fuel_dispatch.domain.permissions import PERM_DRIVER_APP, ROLE_DRIVER, has_permission
from fuel_dispatch.infra.auth import decode_access_token
from fuel_dispatch.infra.request_context import set_request_context
from fuel_dispatch.services.driver_workspace import DriverWorkspace, workspace_registry
from fuel_dispatch.services.object_storage_service import ObjectStorageService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/identity/dispatcher-login")

_memory_store: MemoryDataStore | None = None
_sql_store = SqlDataStore()


def get_current_claims(
    request: Request,
    token: str = Depends(oauth2_scheme),
) -> dict[str, Any]:
    try:
        claims = decode_access_token(token)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc
    request.state.claims = claims
    set_request_context(claims.get("sub"), claims.get("role"))
    return claims


def require_perm(permission: str) -> Callable[[dict[str, Any]], dict[str, Any]]:
    def _checker(
        claims: Annotated[dict[str, Any], Depends(get_current_claims)],
    ) -> dict[str, Any]:
        if not has_permission(claims, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {permission}",
            )
        return claims

    return _checker


def get_data_store() -> FuelDataStore:
    global _memory_store
    backend = os.getenv("FUEL_DATA_BACKEND", "sql").strip().lower()
    if backend == "memory":
        if _memory_store is None:
            _memory_store = MemoryDataStore()
        return _memory_store
    if backend != "sql":
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"unsupported data backend: {backend}",
        )
    return _sql_store


def reset_memory_store() -> None:
    global _memory_store
    _memory_store = None


def get_media_storage() -> ObjectStorageService:
    return ObjectStorageService()


def get_driver_profile(
    claims: Annotated[dict[str, Any], Depends(require_perm(PERM_DRIVER_APP))],
) -> DriverProfile:
    name = claims.get("driver_name")
    if claims.get("role") != ROLE_DRIVER or not isinstance(name, str) or not name.strip():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Driver session required",
        )
    return DriverProfile(name=name, phone=claims.get("driver_phone") or None)


async def get_driver_workspace(
    profile: Annotated[DriverProfile, Depends(get_driver_profile)],
    store: Annotated[FuelDataStore, Depends(get_data_store)],
    media: Annotated[ObjectStorageService, Depends(get_media_storage)],
) -> DriverWorkspace:
    return await workspace_registry.get_or_create(profile, store, media)
