from __future__ import annotations

import mimetypes
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from fuel_dispatch.api.deps import get_media_storage
from fuel_dispatch.services.object_storage_service import (
    ObjectStorageError,
    ObjectStorageNotFoundError,
    ObjectStorageService,
)

router = APIRouter()

Storage = Annotated[ObjectStorageService, Depends(get_media_storage)]


@router.get("/{bucket}/{object_key:path}")
def read_object(bucket: str, object_key: str, storage: Storage) -> FileResponse:
    try:
        path = storage.get_download_path(bucket=bucket, object_key=object_key)
    except ObjectStorageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ObjectStorageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(path=path, filename=path.name, media_type=media_type)
