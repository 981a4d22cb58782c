"""CRUD 基类：为各实体提供通用的数据访问方法。

写方法默认只 flush 不提交：命名空间的一次变更（校验 + 写入 + 路径重建）
必须落在同一事务内，由服务层统一 commit/rollback。
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

from filehub.packages.drive.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """封装常见的查询、创建与保存逻辑，减少重复代码。"""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def query(self, db: Session) -> Query:
        return db.query(self.model)

    def get(self, db: Session, id: Any, *, for_update: bool = False) -> Optional[ModelType]:
        """按主键读取；``for_update`` 在支持的数据库上加行锁（SQLite 忽略）。"""
        if id is None:
            return None
        return db.get(self.model, id, with_for_update=for_update or None)

    def create(self, db: Session, obj_in: Dict[str, Any], *, auto_commit: bool = False) -> ModelType:
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        db.flush()
        if auto_commit:
            db.commit()
        return db_obj

    def save(self, db: Session, db_obj: ModelType, *, auto_commit: bool = False) -> ModelType:
        db.add(db_obj)
        db.flush()
        if auto_commit:
            db.commit()
        return db_obj

    def hard_delete(self, db: Session, db_obj: ModelType, *, auto_commit: bool = False) -> None:
        """物理删除行。

        文件/目录的删除需要强一致展示，不提供软删除语义。
        """
        db.delete(db_obj)
        db.flush()
        if auto_commit:
            db.commit()
