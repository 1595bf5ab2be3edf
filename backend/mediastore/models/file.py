import uuid

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, ForeignKey, String

from mediastore.core.database import Base, UTCDateTime, utcnow


class FileRecord(Base):
    """A logical uploaded asset. Rows are never removed; deletion flips ``is_deleted``."""

    __tablename__ = "files"
    __table_args__ = (
        CheckConstraint("size > 0", name="ck_files_size_positive"),
        CheckConstraint(
            "(is_deleted AND deleted_at IS NOT NULL) OR (NOT is_deleted AND deleted_at IS NULL)",
            name="ck_files_deleted_at_matches_flag",
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    uploader_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    size = Column(BigInteger, nullable=False)
    mime_type = Column(String, nullable=False)
    extension = Column(String, nullable=False)
    checksum = Column(String(64), nullable=False, index=True)
    uploaded_at = Column(UTCDateTime, default=utcnow, nullable=False)
    confirmed_at = Column(UTCDateTime, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(UTCDateTime, nullable=True)

    @property
    def status(self) -> str:
        if self.is_deleted:
            return "deleted"
        return "active" if self.confirmed_at else "pending"
