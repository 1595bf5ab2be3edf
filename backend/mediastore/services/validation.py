from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from mediastore.core.errors import invalid_parameters

KEY_MIN_LENGTH = 1
KEY_MAX_LENGTH = 1024
KEY_PATTERN = re.compile(r"^[a-zA-Z0-9!\-_.*'()/]+$")

BUCKET_MIN_LENGTH = 3
BUCKET_MAX_LENGTH = 63
BUCKET_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")

CHECKSUM_PATTERN = re.compile(r"^[a-f0-9]{64}$")
METADATA_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9\-_]+$")
FILENAME_MAX_LENGTH = 255
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

DEFAULT_ALLOWED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "video/mp4",
    "video/webm",
    "video/quicktime",
    "application/pdf",
    "text/plain",
})


@dataclass(frozen=True)
class StorageLimits:
    max_content_length: int = 500 * 1024 * 1024
    allowed_content_types: frozenset = DEFAULT_ALLOWED_CONTENT_TYPES
    upload_default_expiry: int = 900
    upload_max_expiry: int = 3600
    download_default_expiry: int = 3600
    download_max_expiry: int = 86400

    @classmethod
    def from_settings(cls, settings) -> "StorageLimits":
        return cls(
            max_content_length=settings.MAX_FILE_SIZE,
            allowed_content_types=frozenset(settings.ALLOWED_CONTENT_TYPES),
            upload_default_expiry=settings.UPLOAD_URL_DEFAULT_EXPIRY,
            upload_max_expiry=settings.UPLOAD_URL_MAX_EXPIRY,
            download_default_expiry=settings.DOWNLOAD_URL_DEFAULT_EXPIRY,
            download_max_expiry=settings.DOWNLOAD_URL_MAX_EXPIRY,
        )


@dataclass(frozen=True)
class UploadRequest:
    key: str
    content_type: str
    content_length: int
    expires_in: int
    checksum: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DownloadRequest:
    key: str
    expires_in: int
    filename: Optional[str] = None
    inline: bool = False


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_key(key) -> str:
    if not isinstance(key, str) or len(key) < KEY_MIN_LENGTH:
        raise invalid_parameters("Object key cannot be empty")
    if len(key) > KEY_MAX_LENGTH:
        raise invalid_parameters(f"Object key exceeds maximum length of {KEY_MAX_LENGTH} characters")
    if not KEY_PATTERN.match(key):
        raise invalid_parameters(
            "Object key contains invalid characters. Allowed: alphanumeric, !, -, _, ., *, ', (, ), /"
        )
    if key.startswith("/") or key.endswith("/"):
        raise invalid_parameters("Object key cannot start or end with a slash")
    return key


def validate_bucket_name(name) -> str:
    if not isinstance(name, str) or len(name) < BUCKET_MIN_LENGTH:
        raise invalid_parameters(f"Bucket name must be at least {BUCKET_MIN_LENGTH} characters")
    if len(name) > BUCKET_MAX_LENGTH:
        raise invalid_parameters(f"Bucket name must be at most {BUCKET_MAX_LENGTH} characters")
    if not BUCKET_PATTERN.match(name):
        raise invalid_parameters("Bucket name must be lowercase alphanumeric with hyphens")
    return name


def validate_content_type(content_type, allowed=DEFAULT_ALLOWED_CONTENT_TYPES) -> str:
    if content_type not in allowed:
        raise invalid_parameters(f"Content type not allowed: {content_type!r}")
    return content_type


def validate_content_length(content_length, maximum: int) -> int:
    if not _is_int(content_length):
        raise invalid_parameters("Content length must be an integer")
    if content_length <= 0:
        raise invalid_parameters("Content length must be positive")
    if content_length > maximum:
        raise invalid_parameters(f"File size exceeds maximum of {maximum} bytes")
    return content_length


def validate_checksum(checksum) -> Optional[str]:
    if checksum is None:
        return None
    if not isinstance(checksum, str) or not CHECKSUM_PATTERN.match(checksum):
        raise invalid_parameters("Checksum must be a valid SHA-256 hash")
    return checksum


def validate_metadata(metadata) -> dict:
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise invalid_parameters("Metadata must be a mapping of strings")
    for k, v in metadata.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise invalid_parameters("Metadata keys and values must be strings")
        if not v:
            raise invalid_parameters(f"Metadata value for {k!r} cannot be empty")
        if not METADATA_KEY_PATTERN.match(k):
            raise invalid_parameters(f"Metadata key contains invalid characters: {k!r}")
    return dict(metadata)


def validate_filename(filename) -> Optional[str]:
    if filename is None:
        return None
    if not isinstance(filename, str) or not filename:
        raise invalid_parameters("Filename must be a non-empty string")
    if len(filename) > FILENAME_MAX_LENGTH:
        raise invalid_parameters(f"Filename exceeds maximum length of {FILENAME_MAX_LENGTH} characters")
    if CONTROL_CHARS.search(filename):
        raise invalid_parameters("Filename contains control characters")
    return filename


def resolve_expiration(expires_in, default: int, maximum: int) -> int:
    if expires_in is None:
        return default
    if not _is_int(expires_in) or expires_in <= 0:
        raise invalid_parameters("Expiration must be a positive number of seconds")
    if expires_in > maximum:
        raise invalid_parameters(f"Expiration exceeds maximum of {maximum} seconds")
    return expires_in


def validate_upload_request(
    limits: StorageLimits,
    key,
    content_type,
    content_length,
    checksum=None,
    metadata=None,
    expires_in=None,
) -> UploadRequest:
    return UploadRequest(
        key=validate_key(key),
        content_type=validate_content_type(content_type, limits.allowed_content_types),
        content_length=validate_content_length(content_length, limits.max_content_length),
        checksum=validate_checksum(checksum),
        metadata=validate_metadata(metadata),
        expires_in=resolve_expiration(expires_in, limits.upload_default_expiry, limits.upload_max_expiry),
    )


def validate_download_request(
    limits: StorageLimits,
    key,
    filename=None,
    inline: bool = False,
    expires_in=None,
) -> DownloadRequest:
    return DownloadRequest(
        key=validate_key(key),
        filename=validate_filename(filename),
        inline=bool(inline),
        expires_in=resolve_expiration(expires_in, limits.download_default_expiry, limits.download_max_expiry),
    )
