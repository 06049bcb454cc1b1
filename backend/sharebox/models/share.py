from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharebox.db.base import Base
from sharebox.db.types import UTCDateTime


class Share(Base):
    __tablename__ = "shares"
    __table_args__ = (
        CheckConstraint("max_downloads >= 0", name="ck_share_max_downloads_non_negative"),
        CheckConstraint("download_count >= 0", name="ck_share_download_count_non_negative"),
    )

    share_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    max_downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    files: Mapped[list[SharedFile]] = relationship(
        "SharedFile",
        back_populates="share",
        cascade="all, delete-orphan",
        order_by="SharedFile.position",
        lazy="selectin",
        passive_deletes=True,
    )

    @property
    def password_protected(self) -> bool:
        return bool(self.password_hash)

    @property
    def total_size(self) -> int:
        return sum(entry.size_bytes for entry in self.files)


class SharedFile(Base):
    __tablename__ = "shared_files"
    __table_args__ = (
        UniqueConstraint("share_id", "position", name="uq_shared_file_position"),
        CheckConstraint("size_bytes >= 0", name="ck_shared_file_size_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    share_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("shares.share_id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    original_name: Mapped[str] = mapped_column(String(1024), nullable=False)
    stored_name: Mapped[str] = mapped_column(String(512), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(255))

    share: Mapped[Share] = relationship("Share", back_populates="files")
