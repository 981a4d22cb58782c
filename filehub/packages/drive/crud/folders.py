"""Folder CRUD：封装树形查询（直接子目录、根层级目录、同名检查）。"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from filehub.packages.drive.core.constants import GENERAL_PARTITION_ID
from filehub.packages.drive.crud.base import CRUDBase
from filehub.packages.drive.models.folder import Folder


class CRUDFolder(CRUDBase[Folder]):
    def list_children(self, db: Session, parent_id: int, *, owner_id: Optional[int] = None) -> list[Folder]:
        """返回直接子目录；``owner_id`` 为空时不过滤所属用户（General 共享场景）。"""
        query = self.query(db).filter(Folder.parent_id == parent_id)
        if owner_id is not None:
            query = query.filter(Folder.owner_id == owner_id)
        return query.order_by(Folder.name.asc(), Folder.id.asc()).all()

    def list_child_ids(self, db: Session, parent_id: int) -> list[int]:
        return [row[0] for row in db.query(Folder.id).filter(Folder.parent_id == parent_id).all()]

    def exists(self, db: Session, folder_id: int) -> bool:
        """直接查库，不走会话的 identity map。"""
        return db.query(Folder.id).filter(Folder.id == folder_id).first() is not None

    def delete_many(self, db: Session, folder_ids: list[int]) -> int:
        if not folder_ids:
            return 0
        return self.query(db).filter(Folder.id.in_(folder_ids)).delete(synchronize_session="fetch")

    def list_partition_roots(self, db: Session, partition_id: int, *, owner_id: Optional[int] = None) -> list[Folder]:
        """返回某分区根层级（parent_id 为空）的目录。"""
        query = self.query(db).filter(Folder.partition_id == partition_id).filter(Folder.parent_id.is_(None))
        if owner_id is not None:
            query = query.filter(Folder.owner_id == owner_id)
        return query.order_by(Folder.name.asc(), Folder.id.asc()).all()

    def find_sibling(
        self,
        db: Session,
        *,
        name: str,
        parent_id: Optional[int],
        partition_id: int,
        owner_id: int,
        exclude_id: Optional[int] = None,
    ) -> Optional[Folder]:
        """在 (parent_id, owner_id, name) 作用域内查找同名目录。

        General 分区对所有用户可见，因此同名检查忽略 owner_id；
        根层级（parent_id 为空）按分区区分作用域。
        """
        query = self.query(db).filter(Folder.name == name)
        if parent_id is None:
            query = query.filter(Folder.parent_id.is_(None)).filter(Folder.partition_id == partition_id)
        else:
            query = query.filter(Folder.parent_id == parent_id)
        if partition_id != GENERAL_PARTITION_ID:
            query = query.filter(Folder.owner_id == owner_id)
        if exclude_id is not None:
            query = query.filter(Folder.id != exclude_id)
        return query.first()


folder_crud = CRUDFolder(Folder)
