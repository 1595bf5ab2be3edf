"""Error taxonomy shared by the storage gateway and the file lifecycle coordinator.

Every failure carries a stable ``kind`` and a human-readable message. Storage
errors may also carry the backend exception as ``cause``; only the gateway's
translation layer looks inside it.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    ACCESS_DENIED = "ACCESS_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_DELETED = "FILE_DELETED"
    ALREADY_DELETED = "ALREADY_DELETED"
    STORAGE_RECORD_MISSING = "STORAGE_RECORD_MISSING"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    UPLOAD_INCOMPLETE = "UPLOAD_INCOMPLETE"
    UPLOAD_MISMATCH = "UPLOAD_MISMATCH"


class MediaStoreError(Exception):
    def __init__(self, kind: ErrorKind, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class StorageError(MediaStoreError):
    """Raised by validation and by the object storage gateway."""


class FileLifecycleError(MediaStoreError):
    """Raised by the file lifecycle coordinator."""


def invalid_parameters(message: str) -> StorageError:
    return StorageError(ErrorKind.INVALID_PARAMETERS, message)
