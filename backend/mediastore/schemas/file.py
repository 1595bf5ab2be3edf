from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UploadRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    size: int = Field(gt=0)
    mime_type: str
    extension: str = Field(min_length=1, max_length=16, pattern=r"^[A-Za-z0-9]+$")
    checksum: str = Field(pattern=r"^[a-f0-9]{64}$")

class UploadTicketResponse(BaseModel):
    file_id: str
    storage_key: str
    upload_url: str
    upload_fields: dict[str, str]
    expires_at: datetime

class DownloadUrlResponse(BaseModel):
    storage_key: str
    download_url: str
    expires_at: datetime

class DeleteFileResponse(BaseModel):
    file_id: str
    storage_key: str
    deleted_at: datetime

class ConfirmUploadResponse(BaseModel):
    file_id: str
    storage_key: str
    size: int
    confirmed_at: datetime

class FileInfo(BaseModel):
    id: str
    name: str
    size: int
    mime_type: str
    extension: str
    checksum: str
    uploaded_at: datetime
    confirmed_at: datetime | None
    is_deleted: bool
    deleted_at: datetime | None
    status: str

    model_config = ConfigDict(from_attributes=True)

class ErrorResponse(BaseModel):
    detail: str
    code: str
