import dataclasses
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, func, select, update
from sqlalchemy.pool import NullPool

from conftest import TEST_BUCKET
from mediastore.core.database import Base, make_engine, make_sessionmaker
from mediastore.core.errors import ErrorKind, FileLifecycleError, StorageError
from mediastore.models.file import FileRecord
from mediastore.models.storage import StorageRecord
from mediastore.models.user import User
from mediastore.services.file_lifecycle import BeginUpload, FileLifecycleCoordinator
from mediastore.services.object_storage import DeleteResult, ObjectMetadata, ObjectStatus


def intro_upload(uploader_id: str) -> BeginUpload:
    return BeginUpload(
        uploader_id=uploader_id,
        name="intro.mp4",
        size=1024,
        mime_type="video/mp4",
        extension="mp4",
        checksum="a" * 64,
    )


async def insert_file(sessions, uploader, *, deleted=False, with_storage=True) -> str:
    file_id = str(uuid.uuid4())
    async with sessions() as db:
        db.add(FileRecord(
            id=file_id,
            uploader_id=uploader.id,
            name="lesson.mp4",
            size=2048,
            mime_type="video/mp4",
            extension="mp4",
            checksum="b" * 64,
            is_deleted=deleted,
            deleted_at=datetime.now(timezone.utc) if deleted else None,
        ))
        await db.flush()
        if with_storage:
            db.add(StorageRecord(
                file_id=file_id,
                storage_provider="s3",
                bucket=TEST_BUCKET,
                storage_key=f"files/{file_id}.mp4",
            ))
        await db.commit()
    return file_id


async def count_rows(sessions, model) -> int:
    async with sessions() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def load_file(sessions, file_id) -> FileRecord:
    async with sessions() as db:
        return (await db.execute(select(FileRecord).where(FileRecord.id == file_id))).scalars().one()


async def test_begin_upload_creates_both_rows(coordinator, sessions, uploader, fake_gateway):
    ticket = await coordinator.begin_upload(intro_upload(uploader.id))

    assert ticket.storage_key == f"files/{ticket.file_id}.mp4"
    assert ticket.upload_url == f"http://localhost:9000/{TEST_BUCKET}"
    assert ticket.upload_fields == {"key": ticket.storage_key}
    fake_gateway.create_upload_url.assert_called_once_with(
        ticket.storage_key, "video/mp4", 1024, "a" * 64
    )

    file = await load_file(sessions, ticket.file_id)
    assert file.name == "intro.mp4"
    assert file.size == 1024
    assert file.mime_type == "video/mp4"
    assert file.extension == "mp4"
    assert file.checksum == "a" * 64
    assert file.uploader_id == uploader.id
    assert file.is_deleted is False
    assert file.deleted_at is None
    assert file.status == "pending"

    async with sessions() as db:
        record = (await db.execute(
            select(StorageRecord).where(StorageRecord.file_id == ticket.file_id)
        )).scalars().one()
    assert record.storage_provider == "s3"
    assert record.bucket == TEST_BUCKET
    assert record.storage_key == ticket.storage_key


async def test_begin_upload_rolls_back_when_signing_fails(coordinator, sessions, uploader, fake_gateway):
    fake_gateway.create_upload_url.side_effect = StorageError(ErrorKind.INVALID_PARAMETERS, "Content type not allowed")

    with pytest.raises(StorageError):
        await coordinator.begin_upload(intro_upload(uploader.id))

    assert await count_rows(sessions, FileRecord) == 0
    assert await count_rows(sessions, StorageRecord) == 0


async def test_begin_upload_rejects_unknown_uploader(coordinator, sessions, fake_gateway):
    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.begin_upload(intro_upload(str(uuid.uuid4())))

    assert exc_info.value.kind is ErrorKind.INVALID_REFERENCE
    fake_gateway.create_upload_url.assert_not_called()
    assert await count_rows(sessions, FileRecord) == 0


async def test_request_download_returns_stored_key(coordinator, sessions, uploader, fake_gateway):
    file_id = await insert_file(sessions, uploader)

    ticket = await coordinator.request_download(file_id)

    assert ticket.storage_key == f"files/{file_id}.mp4"
    assert ticket.download_url == "https://example.com/download"
    fake_gateway.create_download_url.assert_called_once_with(ticket.storage_key, None, False)


async def test_request_download_missing_file(coordinator):
    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.request_download("00000000-0000-0000-0000-000000000000")
    assert exc_info.value.kind is ErrorKind.FILE_NOT_FOUND


async def test_request_download_deleted_file(coordinator, sessions, uploader, fake_gateway):
    file_id = await insert_file(sessions, uploader, deleted=True)
    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.request_download(file_id)
    assert exc_info.value.kind is ErrorKind.FILE_DELETED
    fake_gateway.create_download_url.assert_not_called()


async def test_request_download_without_storage_record(coordinator, sessions, uploader):
    file_id = await insert_file(sessions, uploader, with_storage=False)
    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.request_download(file_id)
    assert exc_info.value.kind is ErrorKind.STORAGE_RECORD_MISSING


async def test_delete_file_removes_object_then_soft_deletes(coordinator, sessions, uploader, fake_gateway):
    file_id = await insert_file(sessions, uploader)

    deleted = await coordinator.delete_file(file_id)

    assert deleted.file_id == file_id
    assert deleted.storage_key == f"files/{file_id}.mp4"
    fake_gateway.delete_object.assert_called_once_with(deleted.storage_key)

    file = await load_file(sessions, file_id)
    assert file.is_deleted is True
    assert file.deleted_at is not None
    assert deleted.deleted_at.tzinfo is timezone.utc
    assert file.deleted_at == deleted.deleted_at
    assert file.status == "deleted"
    assert await count_rows(sessions, StorageRecord) == 1


async def test_delete_already_deleted_does_not_touch_store(coordinator, sessions, uploader, fake_gateway):
    file_id = await insert_file(sessions, uploader)
    await coordinator.delete_file(file_id)

    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.delete_file(file_id)

    assert exc_info.value.kind is ErrorKind.ALREADY_DELETED
    assert fake_gateway.delete_object.call_count == 1


async def test_delete_missing_file(coordinator, fake_gateway):
    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.delete_file(str(uuid.uuid4()))
    assert exc_info.value.kind is ErrorKind.FILE_NOT_FOUND
    fake_gateway.delete_object.assert_not_called()


async def test_delete_without_storage_record(coordinator, sessions, uploader, fake_gateway):
    file_id = await insert_file(sessions, uploader, with_storage=False)
    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.delete_file(file_id)
    assert exc_info.value.kind is ErrorKind.STORAGE_RECORD_MISSING
    fake_gateway.delete_object.assert_not_called()


async def test_delete_keeps_record_active_when_store_fails(coordinator, sessions, uploader, fake_gateway):
    file_id = await insert_file(sessions, uploader)
    fake_gateway.delete_object.side_effect = StorageError(ErrorKind.NETWORK_ERROR, "Network error")

    with pytest.raises(StorageError) as exc_info:
        await coordinator.delete_file(file_id)

    assert exc_info.value.kind is ErrorKind.NETWORK_ERROR
    file = await load_file(sessions, file_id)
    assert file.is_deleted is False
    assert file.deleted_at is None


async def test_confirm_upload_marks_file_active(coordinator, sessions, uploader, fake_gateway):
    ticket = await coordinator.begin_upload(intro_upload(uploader.id))

    confirmed = await coordinator.confirm_upload(ticket.file_id)

    assert confirmed.storage_key == ticket.storage_key
    assert confirmed.size == 1024
    fake_gateway.object_exists.assert_called_once_with(ticket.storage_key)
    file = await load_file(sessions, ticket.file_id)
    assert file.confirmed_at is not None
    assert file.confirmed_at == confirmed.confirmed_at
    assert file.uploaded_at.tzinfo is timezone.utc
    assert file.status == "active"

    again = await coordinator.confirm_upload(ticket.file_id)
    assert again.confirmed_at == file.confirmed_at
    assert fake_gateway.object_exists.call_count == 1


async def test_confirm_upload_before_transfer(coordinator, sessions, uploader, fake_gateway):
    ticket = await coordinator.begin_upload(intro_upload(uploader.id))
    fake_gateway.object_exists.return_value = ObjectStatus(exists=False)

    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.confirm_upload(ticket.file_id)

    assert exc_info.value.kind is ErrorKind.UPLOAD_INCOMPLETE
    assert (await load_file(sessions, ticket.file_id)).confirmed_at is None


async def test_confirm_upload_size_mismatch(coordinator, uploader, fake_gateway):
    ticket = await coordinator.begin_upload(intro_upload(uploader.id))
    fake_gateway.object_exists.return_value = ObjectStatus(
        exists=True,
        metadata=ObjectMetadata(size=1, content_type="video/mp4", last_modified=None, etag=None),
    )

    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.confirm_upload(ticket.file_id)
    assert exc_info.value.kind is ErrorKind.UPLOAD_MISMATCH


async def test_upload_download_delete_round(coordinator, uploader):
    ticket = await coordinator.begin_upload(intro_upload(uploader.id))

    download = await coordinator.request_download(ticket.file_id)
    assert download.storage_key == ticket.storage_key

    await coordinator.delete_file(ticket.file_id)

    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.request_download(ticket.file_id)
    assert exc_info.value.kind is ErrorKind.FILE_DELETED


@pytest.mark.parametrize("size", [0, -1])
async def test_begin_upload_rejects_non_positive_size(coordinator, sessions, uploader, fake_gateway, size):
    upload = BeginUpload(uploader.id, "intro.mp4", size, "video/mp4", "mp4", "a" * 64)

    with pytest.raises(StorageError) as exc_info:
        await coordinator.begin_upload(upload)

    assert exc_info.value.kind is ErrorKind.INVALID_PARAMETERS
    fake_gateway.create_upload_url.assert_not_called()
    assert await count_rows(sessions, FileRecord) == 0


@pytest.mark.parametrize("field,value", [
    ("mime_type", "text/html"),
    ("extension", "m p4"),
    ("checksum", "not-a-digest"),
])
async def test_begin_upload_rejects_bad_parameters(coordinator, sessions, uploader, field, value):
    upload = dataclasses.replace(intro_upload(uploader.id), **{field: value})

    with pytest.raises(StorageError) as exc_info:
        await coordinator.begin_upload(upload)

    assert exc_info.value.kind is ErrorKind.INVALID_PARAMETERS
    assert await count_rows(sessions, FileRecord) == 0


@pytest.fixture
async def shared_db(tmp_path):
    """A file database plus a second, synchronous engine writing to it."""
    path = tmp_path / "mediastore.db"
    engine = make_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    other = create_engine(f"sqlite:///{path}", poolclass=NullPool, connect_args={"check_same_thread": False})
    sessions = make_sessionmaker(engine)

    user = User(id=str(uuid.uuid4()), email="racer@example.com", hashed_password="not-a-real-hash")
    async with sessions() as db:
        db.add(user)
        await db.commit()

    yield sessions, other, user
    other.dispose()
    await engine.dispose()


def write_from_other_connection(engine, file_id, **values):
    with engine.begin() as conn:
        conn.execute(update(FileRecord).where(FileRecord.id == file_id).values(**values))


async def test_delete_losing_race_reports_already_deleted(shared_db, fake_gateway):
    sessions, other, user = shared_db
    file_id = await insert_file(sessions, user)
    first_deleted_at = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    def deleted_elsewhere(key):
        write_from_other_connection(other, file_id, is_deleted=True, deleted_at=first_deleted_at)
        return DeleteResult(success=True, key=key)

    fake_gateway.delete_object.side_effect = deleted_elsewhere
    coordinator = FileLifecycleCoordinator(sessions, fake_gateway, TEST_BUCKET)

    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.delete_file(file_id)

    assert exc_info.value.kind is ErrorKind.ALREADY_DELETED
    file = await load_file(sessions, file_id)
    assert file.is_deleted is True
    assert file.deleted_at == first_deleted_at


async def test_confirm_after_concurrent_delete_reports_deleted(shared_db, fake_gateway):
    sessions, other, user = shared_db
    file_id = await insert_file(sessions, user)

    def deleted_while_checking(key):
        write_from_other_connection(
            other, file_id, is_deleted=True, deleted_at=datetime.now(timezone.utc)
        )
        return ObjectStatus(
            exists=True,
            metadata=ObjectMetadata(size=2048, content_type="video/mp4", last_modified=None, etag=None),
        )

    fake_gateway.object_exists.side_effect = deleted_while_checking
    coordinator = FileLifecycleCoordinator(sessions, fake_gateway, TEST_BUCKET)

    with pytest.raises(FileLifecycleError) as exc_info:
        await coordinator.confirm_upload(file_id)

    assert exc_info.value.kind is ErrorKind.FILE_DELETED
    file = await load_file(sessions, file_id)
    assert file.confirmed_at is None


async def test_confirm_after_concurrent_confirm_returns_stored_time(shared_db, fake_gateway):
    sessions, other, user = shared_db
    file_id = await insert_file(sessions, user)
    first_confirmed_at = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    def confirmed_while_checking(key):
        write_from_other_connection(other, file_id, confirmed_at=first_confirmed_at)
        return ObjectStatus(
            exists=True,
            metadata=ObjectMetadata(size=2048, content_type="video/mp4", last_modified=None, etag=None),
        )

    fake_gateway.object_exists.side_effect = confirmed_while_checking
    coordinator = FileLifecycleCoordinator(sessions, fake_gateway, TEST_BUCKET)

    confirmed = await coordinator.confirm_upload(file_id)

    assert confirmed.confirmed_at == first_confirmed_at
    assert (await load_file(sessions, file_id)).confirmed_at == first_confirmed_at
