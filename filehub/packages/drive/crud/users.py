"""用户 CRUD：集中管理用户与角色相关的数据操作。"""

from typing import Iterable

from sqlalchemy.orm import Session

from filehub.packages.drive.crud.base import CRUDBase
from filehub.packages.drive.models.role import Role
from filehub.packages.drive.models.user import User


class CRUDUser(CRUDBase[User]):
    def create_with_roles(self, db: Session, *, username: str, role_keys: Iterable[str] = ()) -> User:
        """创建用户并按 role_key 附加角色，未知角色被忽略。"""
        keys = [key for key in role_keys if key]
        roles = db.query(Role).filter(Role.role_key.in_(keys)).all() if keys else []
        user = User(username=username, is_active=True)
        user.roles = roles
        db.add(user)
        db.flush()
        return user


user_crud = CRUDUser(User)
