"""文件元数据模型：current_version 始终等于其版本链中的最大版本号。"""

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filehub.packages.drive.models.base import Base, TimestampMixin


class File(TimestampMixin, Base):
    __tablename__ = "files"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    folder_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    owner_id: Mapped[int] = mapped_column(Integer, index=True)
    size: Mapped[int] = mapped_column(BigInteger, default=0)
    mime_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream")
    current_version: Mapped[int] = mapped_column(Integer, default=1)
    permissions: Mapped[str] = mapped_column(String(3), default="644")

    folder: Mapped[Optional["Folder"]] = relationship("Folder", lazy="joined")

    __table_args__ = (
        UniqueConstraint("folder_id", "owner_id", "name", name="uq_files_folder_owner_name"),
    )
