import uuid

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint

from mediastore.core.database import Base


class StorageRecord(Base):
    """Where a file's bytes live. Created with its FileRecord and never updated."""

    __tablename__ = "storage"
    __table_args__ = (
        UniqueConstraint("storage_provider", "bucket", "storage_key", name="uq_storage_provider_bucket_key"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    file_id = Column(String(36), ForeignKey("files.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    storage_provider = Column(String, nullable=False)
    bucket = Column(String, nullable=True)
    storage_key = Column(String, nullable=False)
    cdn_url = Column(String, nullable=True)
