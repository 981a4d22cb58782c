"""系统分区模型：General / My Folders / Shared With Me 三个固定逻辑根。

分区不是用户可创建、重命名或删除的记录，仅在初始化时写入，主键稳定。
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from filehub.packages.drive.models.base import Base, TimestampMixin


class Partition(TimestampMixin, Base):
    __tablename__ = "partitions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(64), unique=True)
    partition_type: Mapped[str] = mapped_column(String(32), unique=True, index=True)
