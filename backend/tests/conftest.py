import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from minio import Minio
from minio.error import S3Error

from mediastore import models  # noqa: F401
from mediastore.core.database import Base, make_engine, make_sessionmaker
from mediastore.models.user import User
from mediastore.services.file_lifecycle import FileLifecycleCoordinator
from mediastore.services.object_storage import (
    DeleteResult,
    ObjectMetadata,
    ObjectStatus,
    ObjectStorageGateway,
    PresignedDownload,
    PresignedUpload,
)
from mediastore.services.validation import StorageLimits

TEST_BUCKET = "test-bucket"
TEST_ENDPOINT = "localhost:9000"
EXPIRES_AT = datetime(2026, 2, 9, tzinfo=timezone.utc)


def s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message=f"{code} raised by test",
        resource=f"/{TEST_BUCKET}/files/x.mp4",
        request_id="req-1",
        host_id="host-1",
        response=MagicMock(),
    )


@pytest.fixture
def minio_client():
    # A configured region keeps signing offline.
    return Minio(
        TEST_ENDPOINT,
        access_key="minioadmin",
        secret_key="minioadmin",
        secure=False,
        region="us-east-1",
    )


@pytest.fixture
def mock_client():
    return MagicMock(spec=Minio)


@pytest.fixture
def limits():
    return StorageLimits()


@pytest.fixture
def signing_gateway(minio_client, limits):
    return ObjectStorageGateway(minio_client, TEST_BUCKET, f"http://{TEST_ENDPOINT}", limits)


@pytest.fixture
def mock_gateway_client(mock_client, limits):
    return ObjectStorageGateway(mock_client, TEST_BUCKET, f"http://{TEST_ENDPOINT}", limits)


@pytest.fixture
def fake_gateway():
    gateway = MagicMock(spec=ObjectStorageGateway)
    gateway.bucket = TEST_BUCKET
    gateway.limits = StorageLimits()
    gateway.create_upload_url.side_effect = lambda key, *args, **kwargs: PresignedUpload(
        url=f"http://{TEST_ENDPOINT}/{TEST_BUCKET}",
        key=key,
        expires_at=EXPIRES_AT,
        fields={"key": key},
    )
    gateway.create_download_url.return_value = PresignedDownload(
        url="https://example.com/download",
        expires_at=EXPIRES_AT,
    )
    gateway.delete_object.side_effect = lambda key: DeleteResult(success=True, key=key)
    gateway.object_exists.return_value = ObjectStatus(
        exists=True,
        metadata=ObjectMetadata(size=1024, content_type="video/mp4", last_modified=EXPIRES_AT, etag="etag"),
    )
    return gateway


@pytest.fixture
async def sessions():
    engine = make_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
async def uploader(sessions):
    user = User(id=str(uuid.uuid4()), email="uploader@example.com", hashed_password="not-a-real-hash")
    async with sessions() as db:
        db.add(user)
        await db.commit()
    return user


@pytest.fixture
def coordinator(sessions, fake_gateway):
    return FileLifecycleCoordinator(sessions, fake_gateway, TEST_BUCKET)
