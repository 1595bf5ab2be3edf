from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mediastore.core.security import get_current_user
from mediastore.dependencies import get_coordinator
from mediastore.models.file import FileRecord
from mediastore.models.user import User
from mediastore.schemas.file import (
    ConfirmUploadResponse,
    DeleteFileResponse,
    DownloadUrlResponse,
    FileInfo,
    UploadRequest,
    UploadTicketResponse,
)
from mediastore.services.file_lifecycle import BeginUpload, FileLifecycleCoordinator

logger = logging.getLogger("mediastore")

router = APIRouter(prefix="/files", tags=["Files"])


async def _owned_file(file_id: str, current_user: User, coordinator: FileLifecycleCoordinator) -> FileRecord:
    file = await coordinator.describe_file(file_id)
    if str(file.uploader_id) != str(current_user.id) and not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return file


@router.post("/uploads", response_model=UploadTicketResponse, status_code=status.HTTP_201_CREATED)
async def begin_upload(
    body: UploadRequest,
    coordinator: FileLifecycleCoordinator = Depends(get_coordinator),
    current_user: User = Depends(get_current_user),
):
    ticket = await coordinator.begin_upload(BeginUpload(
        uploader_id=str(current_user.id),
        name=body.name,
        size=body.size,
        mime_type=body.mime_type,
        extension=body.extension.lower(),
        checksum=body.checksum,
    ))
    return UploadTicketResponse(
        file_id=ticket.file_id,
        storage_key=ticket.storage_key,
        upload_url=ticket.upload_url,
        upload_fields=ticket.upload_fields,
        expires_at=ticket.expires_at,
    )


@router.get("/{file_id}", response_model=FileInfo)
async def get_file(
    file_id: str,
    coordinator: FileLifecycleCoordinator = Depends(get_coordinator),
    current_user: User = Depends(get_current_user),
):
    return await _owned_file(file_id, current_user, coordinator)


@router.post("/{file_id}/confirm", response_model=ConfirmUploadResponse)
async def confirm_upload(
    file_id: str,
    coordinator: FileLifecycleCoordinator = Depends(get_coordinator),
    current_user: User = Depends(get_current_user),
):
    await _owned_file(file_id, current_user, coordinator)
    confirmed = await coordinator.confirm_upload(file_id)
    return ConfirmUploadResponse(
        file_id=confirmed.file_id,
        storage_key=confirmed.storage_key,
        size=confirmed.size,
        confirmed_at=confirmed.confirmed_at,
    )


@router.get("/{file_id}/download-url", response_model=DownloadUrlResponse)
async def get_download_url(
    file_id: str,
    inline: bool = Query(False, description="Ask the browser to display instead of save"),
    coordinator: FileLifecycleCoordinator = Depends(get_coordinator),
    current_user: User = Depends(get_current_user),
):
    file = await _owned_file(file_id, current_user, coordinator)
    ticket = await coordinator.request_download(file_id, filename=file.name, inline=inline)
    return DownloadUrlResponse(
        storage_key=ticket.storage_key,
        download_url=ticket.download_url,
        expires_at=ticket.expires_at,
    )


@router.delete("/{file_id}", response_model=DeleteFileResponse)
async def delete_file(
    file_id: str,
    coordinator: FileLifecycleCoordinator = Depends(get_coordinator),
    current_user: User = Depends(get_current_user),
):
    await _owned_file(file_id, current_user, coordinator)
    deleted = await coordinator.delete_file(file_id)
    logger.info("File %s deleted by user %s", file_id, current_user.id)
    return DeleteFileResponse(
        file_id=deleted.file_id,
        storage_key=deleted.storage_key,
        deleted_at=deleted.deleted_at,
    )
