"""StoredFile ORM model. Metadata record referencing one stored object by key."""

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from cloudvault.infrastructure.persistence.database import Base
from cloudvault.infrastructure.persistence.models.mixins import CuidMixin, TimestampMixin


class StoredFile(CuidMixin, TimestampMixin, Base):
    """File metadata. Table: stored_file. key is unique (write-once object keys)."""

    __tablename__ = "stored_file"

    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    backend: Mapped[str] = mapped_column(String(16), nullable=False)
    original_name: Mapped[str] = mapped_column(String(1024), nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    etag: Mapped[str | None] = mapped_column(String(255), nullable=True)
    version_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("ix_stored_file_user_created", "user_id", "created_at"),)
