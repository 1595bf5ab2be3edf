"""Object storage gateway over an S3-compatible store (MinIO client).

Signed URLs are minted locally without network I/O; existence checks, deletes
and bucket operations go to the store. Backend error codes are translated into
the closed :class:`~mediastore.core.errors.ErrorKind` taxonomy here and nowhere
else.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from minio import Minio
from minio.datatypes import PostPolicy
from minio.error import S3Error
from urllib3.exceptions import HTTPError as TransportError

from mediastore.core.errors import ErrorKind, StorageError
from mediastore.monitoring.setup import record_storage_error
from mediastore.services.validation import (
    StorageLimits,
    validate_bucket_name,
    validate_download_request,
    validate_key,
    validate_upload_request,
)
from mediastore.utils.headers import content_disposition

logger = logging.getLogger("mediastore")

CHECKSUM_ALGORITHM = "SHA256"
CHECKSUM_META_FIELD = "x-amz-meta-sha256"
OBJECT_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "ResourceNotFound"})
BUCKET_NOT_FOUND_CODES = frozenset({"NoSuchBucket", "NotFound", "ResourceNotFound"})
BUCKET_ALREADY_EXISTS_CODES = frozenset({"BucketAlreadyOwnedByYou", "BucketAlreadyExists"})


@dataclass(frozen=True)
class PresignedUpload:
    url: str
    key: str
    expires_at: datetime
    fields: dict = field(default_factory=dict)


@dataclass(frozen=True)
class PresignedDownload:
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class DeleteResult:
    success: bool
    key: str


@dataclass(frozen=True)
class ObjectMetadata:
    size: int
    content_type: Optional[str]
    last_modified: Optional[datetime]
    etag: Optional[str]


@dataclass(frozen=True)
class ObjectStatus:
    exists: bool
    metadata: Optional[ObjectMetadata] = None


@dataclass(frozen=True)
class BucketResult:
    success: bool
    bucket_name: str
    created: bool


def checksum_header_value(checksum: str) -> str:
    """Hex SHA-256 digest to the base64 form S3 expects in checksum headers."""
    return base64.b64encode(bytes.fromhex(checksum)).decode()


def _error_code(exc: BaseException) -> Optional[str]:
    return exc.code if isinstance(exc, S3Error) else None


def translate_error(exc: BaseException, action: str) -> StorageError:
    """Map a backend exception onto the storage error taxonomy."""
    if isinstance(exc, StorageError):
        return exc
    code = _error_code(exc)
    if code == "AccessDenied":
        err = StorageError(ErrorKind.ACCESS_DENIED, f"Access denied while trying to {action}", exc)
    elif isinstance(exc, (TransportError, ConnectionError, TimeoutError)):
        err = StorageError(ErrorKind.NETWORK_ERROR, f"Network error while trying to {action}", exc)
    else:
        err = StorageError(ErrorKind.UNKNOWN_ERROR, f"Failed to {action}: {exc}", exc)
    record_storage_error(err.kind)
    return err


class ObjectStorageGateway:
    def __init__(self, client: Minio, bucket: str, endpoint_url: str, limits: StorageLimits | None = None):
        self._client = client
        self.bucket = validate_bucket_name(bucket)
        self.endpoint_url = endpoint_url.rstrip("/")
        self.limits = limits or StorageLimits()

    def create_upload_url(
        self,
        key: str,
        content_type: str,
        content_length: int,
        checksum: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        expires_in: Optional[int] = None,
    ) -> PresignedUpload:
        """Mint a presigned POST form for a single object.

        The policy pins the key, content type, exact content length and (when
        given) the checksum and metadata, so the store rejects any transfer
        that deviates from what was requested here.
        """
        req = validate_upload_request(
            self.limits, key, content_type, content_length, checksum, metadata, expires_in
        )
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=req.expires_in)

        form = {"key": req.key, "Content-Type": req.content_type}
        if req.checksum:
            # The store hashes the body against x-amz-checksum-sha256; the meta
            # field only carries the hex digest along with the object.
            form["x-amz-checksum-algorithm"] = CHECKSUM_ALGORITHM
            form["x-amz-checksum-sha256"] = checksum_header_value(req.checksum)
            form[CHECKSUM_META_FIELD] = req.checksum
        for name, value in req.metadata.items():
            form[f"x-amz-meta-{name.lower()}"] = value

        policy = PostPolicy(self.bucket, expires_at)
        for element, value in form.items():
            policy.add_equals_condition(element, value)
        policy.add_content_length_range_condition(req.content_length, req.content_length)

        try:
            signed = self._client.presigned_post_policy(policy)
        except Exception as e:
            raise translate_error(e, f"sign upload for {req.key}") from e

        fields = dict(signed)
        fields.update(form)
        return PresignedUpload(
            url=f"{self.endpoint_url}/{self.bucket}",
            key=req.key,
            expires_at=expires_at,
            fields=fields,
        )

    def create_download_url(
        self,
        key: str,
        filename: Optional[str] = None,
        inline: bool = False,
        expires_in: Optional[int] = None,
    ) -> PresignedDownload:
        req = validate_download_request(self.limits, key, filename, inline, expires_in)
        response_headers = None
        if req.filename:
            response_headers = {
                "response-content-disposition": content_disposition(req.filename, req.inline)
            }

        try:
            url = self._client.get_presigned_url(
                "GET",
                self.bucket,
                req.key,
                expires=timedelta(seconds=req.expires_in),
                response_headers=response_headers,
            )
        except Exception as e:
            raise translate_error(e, f"sign download for {req.key}") from e

        return PresignedDownload(
            url=url,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=req.expires_in),
        )

    def delete_object(self, key: str) -> DeleteResult:
        key = validate_key(key)
        try:
            self._client.remove_object(self.bucket, key)
        except Exception as e:
            if _error_code(e) in OBJECT_NOT_FOUND_CODES:
                logger.info("Object %s already absent from bucket %s", key, self.bucket)
                return DeleteResult(success=True, key=key)
            raise translate_error(e, f"delete object {key}") from e
        logger.info("Deleted object %s from bucket %s", key, self.bucket)
        return DeleteResult(success=True, key=key)

    def object_exists(self, key: str) -> ObjectStatus:
        key = validate_key(key)
        try:
            stat = self._client.stat_object(self.bucket, key)
        except Exception as e:
            if _error_code(e) in OBJECT_NOT_FOUND_CODES:
                return ObjectStatus(exists=False)
            raise translate_error(e, f"stat object {key}") from e
        return ObjectStatus(
            exists=True,
            metadata=ObjectMetadata(
                size=stat.size,
                content_type=stat.content_type,
                last_modified=stat.last_modified,
                etag=stat.etag,
            ),
        )

    def bucket_exists(self, bucket_name: str) -> bool:
        bucket_name = validate_bucket_name(bucket_name)
        try:
            return bool(self._client.bucket_exists(bucket_name))
        except Exception as e:
            if _error_code(e) in BUCKET_NOT_FOUND_CODES:
                return False
            raise translate_error(e, f"check bucket {bucket_name}") from e

    def create_bucket(self, bucket_name: str) -> BucketResult:
        bucket_name = validate_bucket_name(bucket_name)
        try:
            self._client.make_bucket(bucket_name)
        except Exception as e:
            if _error_code(e) in BUCKET_ALREADY_EXISTS_CODES:
                return BucketResult(success=True, bucket_name=bucket_name, created=False)
            raise translate_error(e, f"create bucket {bucket_name}") from e
        return BucketResult(success=True, bucket_name=bucket_name, created=True)

    def ensure_bucket_exists(self, bucket_name: str) -> BucketResult:
        if self.bucket_exists(bucket_name):
            return BucketResult(success=True, bucket_name=bucket_name, created=False)
        return self.create_bucket(bucket_name)

    def ping(self) -> None:
        try:
            self._client.list_buckets()
        except Exception as e:
            raise translate_error(e, "reach object storage") from e
