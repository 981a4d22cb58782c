"""目录模型：以可空 parent_id 自引用组织成树。

存储规则：
- path：祖先名称以 '/' 拼接，不以 '/' 开头，例如 "Reports/2024"；
- parent_id 为空表示该目录位于所属分区的根层级；
- partition_id 创建时由父目录继承或显式指定，此后不可修改。
"""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filehub.packages.drive.core.constants import GENERAL_PARTITION_ID
from filehub.packages.drive.models.base import Base, TimestampMixin


class Folder(TimestampMixin, Base):
    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    path: Mapped[str] = mapped_column(String(2048))
    parent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    owner_id: Mapped[int] = mapped_column(Integer, index=True)
    partition_id: Mapped[int] = mapped_column(ForeignKey("partitions.id"), index=True)
    permissions: Mapped[str] = mapped_column(String(3), default="755")

    partition: Mapped["Partition"] = relationship("Partition", lazy="joined")

    __table_args__ = (
        UniqueConstraint("parent_id", "owner_id", "name", name="uq_folders_parent_owner_name"),
    )

    @property
    def is_general(self) -> bool:
        return self.partition_id == GENERAL_PARTITION_ID
