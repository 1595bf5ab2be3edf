"""Keeps ``files`` / ``storage`` rows consistent with the objects in the bucket.

Ordering rules:

* begin upload inserts both rows and mints the upload URL inside one
  transaction, so a signing failure leaves no rows behind;
* delete removes the object first and only then soft-deletes the record, so a
  committed ``is_deleted`` implies the object is gone. A crash between the two
  leaves an active-looking record without an object; nothing reconciles that.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.concurrency import run_in_threadpool

from mediastore.core.errors import ErrorKind, FileLifecycleError, MediaStoreError
from mediastore.models.file import FileRecord
from mediastore.models.storage import StorageRecord
from mediastore.monitoring.setup import record_file_operation
from mediastore.services.object_storage import ObjectStorageGateway
from mediastore.services.validation import validate_upload_request

logger = logging.getLogger("mediastore")

STORAGE_PROVIDER = "s3"


@dataclass(frozen=True)
class BeginUpload:
    uploader_id: str
    name: str
    size: int
    mime_type: str
    extension: str
    checksum: str


@dataclass(frozen=True)
class UploadTicket:
    file_id: str
    storage_key: str
    upload_url: str
    upload_fields: dict
    expires_at: datetime


@dataclass(frozen=True)
class DownloadTicket:
    storage_key: str
    download_url: str
    expires_at: datetime


@dataclass(frozen=True)
class DeletedFile:
    file_id: str
    storage_key: str
    deleted_at: datetime


@dataclass(frozen=True)
class ConfirmedUpload:
    file_id: str
    storage_key: str
    size: int
    confirmed_at: datetime


def storage_key_for(file_id: str, extension: str) -> str:
    return f"files/{file_id}.{extension}"


@asynccontextmanager
async def _observed(operation: str):
    start = time.time()
    outcome = "ok"
    try:
        yield
    except MediaStoreError as e:
        outcome = e.kind.value
        raise
    except Exception:
        outcome = "error"
        raise
    finally:
        record_file_operation(operation, outcome, time.time() - start)


class FileLifecycleCoordinator:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        gateway: ObjectStorageGateway,
        bucket: Optional[str] = None,
    ):
        self._sessions = sessions
        self._gateway = gateway
        self._bucket = bucket if bucket is not None else gateway.bucket

    async def _get_file(self, db: AsyncSession, file_id: str) -> FileRecord:
        res = await db.execute(select(FileRecord).where(FileRecord.id == file_id))
        file = res.scalars().first()
        if not file:
            raise FileLifecycleError(ErrorKind.FILE_NOT_FOUND, f"File {file_id} not found")
        return file

    async def _get_storage(self, db: AsyncSession, file_id: str) -> StorageRecord:
        res = await db.execute(
            select(StorageRecord).where(
                StorageRecord.file_id == file_id,
                StorageRecord.storage_provider == STORAGE_PROVIDER,
            )
        )
        record = res.scalars().first()
        if not record:
            logger.critical("Storage record missing for file %s; file and storage rows are out of sync", file_id)
            raise FileLifecycleError(
                ErrorKind.STORAGE_RECORD_MISSING, f"Storage record not found for file {file_id}"
            )
        return record

    async def begin_upload(self, request: BeginUpload) -> UploadTicket:
        async with _observed("begin_upload"):
            file_id = str(uuid.uuid4())
            storage_key = storage_key_for(file_id, request.extension)
            validate_upload_request(
                self._gateway.limits, storage_key, request.mime_type, request.size, request.checksum
            )

            try:
                async with self._sessions() as db, db.begin():
                    db.add(FileRecord(
                        id=file_id,
                        uploader_id=request.uploader_id,
                        name=request.name,
                        size=request.size,
                        mime_type=request.mime_type,
                        extension=request.extension,
                        checksum=request.checksum,
                        is_deleted=False,
                    ))
                    await db.flush()
                    db.add(StorageRecord(
                        file_id=file_id,
                        storage_provider=STORAGE_PROVIDER,
                        bucket=self._bucket,
                        storage_key=storage_key,
                    ))
                    await db.flush()

                    presigned = await run_in_threadpool(
                        self._gateway.create_upload_url,
                        storage_key,
                        request.mime_type,
                        request.size,
                        request.checksum,
                    )
            except IntegrityError as e:
                logger.warning("Upload request rejected for uploader %s: %s", request.uploader_id, e.orig)
                raise FileLifecycleError(
                    ErrorKind.INVALID_REFERENCE,
                    "Upload request references an unknown uploader or a conflicting storage key",
                    e,
                ) from e

            logger.info("Upload requested file_id=%s key=%s size=%s", file_id, storage_key, request.size)
            return UploadTicket(
                file_id=file_id,
                storage_key=storage_key,
                upload_url=presigned.url,
                upload_fields=presigned.fields,
                expires_at=presigned.expires_at,
            )

    async def request_download(
        self, file_id: str, filename: Optional[str] = None, inline: bool = False
    ) -> DownloadTicket:
        async with _observed("request_download"):
            async with self._sessions() as db:
                file = await self._get_file(db, file_id)
                if file.is_deleted:
                    raise FileLifecycleError(ErrorKind.FILE_DELETED, f"File {file_id} is deleted")
                record = await self._get_storage(db, file_id)

            presigned = await run_in_threadpool(
                self._gateway.create_download_url, record.storage_key, filename, inline
            )
            return DownloadTicket(
                storage_key=record.storage_key,
                download_url=presigned.url,
                expires_at=presigned.expires_at,
            )

    async def delete_file(self, file_id: str) -> DeletedFile:
        async with _observed("delete_file"):
            async with self._sessions() as db, db.begin():
                file = await self._get_file(db, file_id)
                if file.is_deleted:
                    raise FileLifecycleError(ErrorKind.ALREADY_DELETED, f"File {file_id} is already deleted")
                record = await self._get_storage(db, file_id)

                await run_in_threadpool(self._gateway.delete_object, record.storage_key)

                deleted_at = datetime.now(timezone.utc)
                res = await db.execute(
                    update(FileRecord)
                    .where(FileRecord.id == file_id, FileRecord.is_deleted.is_(False))
                    .values(is_deleted=True, deleted_at=deleted_at)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 0:
                    raise FileLifecycleError(ErrorKind.ALREADY_DELETED, f"File {file_id} is already deleted")

            logger.info("Deleted file_id=%s key=%s", file_id, record.storage_key)
            return DeletedFile(file_id=file_id, storage_key=record.storage_key, deleted_at=deleted_at)

    async def confirm_upload(self, file_id: str) -> ConfirmedUpload:
        """Verify the object arrived and mark the file active.

        Confirming an already confirmed file returns the stored timestamp.
        """
        async with _observed("confirm_upload"):
            async with self._sessions() as db, db.begin():
                file = await self._get_file(db, file_id)
                if file.is_deleted:
                    raise FileLifecycleError(ErrorKind.FILE_DELETED, f"File {file_id} is deleted")
                record = await self._get_storage(db, file_id)
                if file.confirmed_at is not None:
                    return ConfirmedUpload(file_id, record.storage_key, file.size, file.confirmed_at)

                status = await run_in_threadpool(self._gateway.object_exists, record.storage_key)
                if not status.exists:
                    raise FileLifecycleError(
                        ErrorKind.UPLOAD_INCOMPLETE, f"Object for file {file_id} has not been uploaded"
                    )
                if status.metadata.size != file.size:
                    raise FileLifecycleError(
                        ErrorKind.UPLOAD_MISMATCH,
                        f"Uploaded object is {status.metadata.size} bytes, expected {file.size}",
                    )

                confirmed_at = datetime.now(timezone.utc)
                res = await db.execute(
                    update(FileRecord)
                    .where(
                        FileRecord.id == file_id,
                        FileRecord.is_deleted.is_(False),
                        FileRecord.confirmed_at.is_(None),
                    )
                    .values(confirmed_at=confirmed_at)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 0:
                    # A concurrent delete or confirm committed after our read.
                    await db.refresh(file)
                    if file.is_deleted:
                        raise FileLifecycleError(ErrorKind.FILE_DELETED, f"File {file_id} is deleted")
                    confirmed_at = file.confirmed_at

            logger.info("Confirmed upload file_id=%s size=%s", file_id, file.size)
            return ConfirmedUpload(file_id, record.storage_key, file.size, confirmed_at)

    async def describe_file(self, file_id: str) -> FileRecord:
        async with self._sessions() as db:
            return await self._get_file(db, file_id)
