"""角色模型：role_key 取值 member/admin/super_admin，对应放置策略中的角色层级。"""

from typing import List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from filehub.packages.drive.models.base import Base, TimestampMixin, user_roles


class Role(TimestampMixin, Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(50), unique=True)
    role_key: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    remark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    users: Mapped[List["User"]] = relationship(
        "User",
        secondary=user_roles,
        back_populates="roles",
    )
