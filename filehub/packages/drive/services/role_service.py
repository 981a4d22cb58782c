"""角色/身份提供方：根据操作者 ID 返回其当前角色集合。

放置策略只消费这里返回的角色名称集合，自身从不查询数据库。
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from filehub.packages.drive.core.exceptions import NotFoundError
from filehub.packages.drive.crud.users import user_crud
from filehub.packages.drive.models.role import Role
from filehub.packages.drive.models.user import User


class RoleService:
    def get_user_roles(self, db: Session, user_id: int) -> list[str]:
        user = user_crud.get(db, user_id)
        if user is None:
            return []
        return sorted({(role.role_key or "").strip().lower() for role in user.roles if role.role_key})

    def assign_roles(self, db: Session, user_id: int, role_keys: list[str]) -> User:
        """覆盖式设置用户角色并提交。"""
        user = user_crud.get(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        keys = [key.strip().lower() for key in role_keys if key and key.strip()]
        user.roles = db.query(Role).filter(Role.role_key.in_(keys)).all() if keys else []
        db.add(user)
        db.commit()
        return user


role_service = RoleService()
