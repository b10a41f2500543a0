"""StoredObject model - file metadata, with the payload split across BlobChunk rows."""
import uuid
from datetime import datetime
from sqlalchemy import (
    BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, LargeBinary, String, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, CreatedAtMixin, OwnerMixin


class StoredObject(Base, CreatedAtMixin, OwnerMixin):
    __tablename__ = "blob_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    storage_key: Mapped[str] = mapped_column(String(600), nullable=False, unique=True)
    original_name: Mapped[str] = mapped_column(String(500), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    chunk_size: Mapped[int] = mapped_column(Integer, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_blob_files_owner_listing", "owner_id", "deleted", "created_at"),
        Index("idx_blob_files_deleted_at", "deleted", "deleted_at"),
    )

    @property
    def chunk_count(self) -> int:
        return (self.size_bytes + self.chunk_size - 1) // self.chunk_size

    @property
    def download_url(self) -> str:
        return f"/api/files/download/{self.storage_key}"

    @property
    def is_in_use(self) -> bool:
        # Set by whatever references the file (products, posts); never at this layer
        return False


class BlobChunk(Base):
    __tablename__ = "blob_chunks"

    file_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("blob_files.id", ondelete="CASCADE"), primary_key=True
    )
    n: Mapped[int] = mapped_column(Integer, primary_key=True)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
