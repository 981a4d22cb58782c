"""Partition CRUD。"""

from __future__ import annotations

from sqlalchemy.orm import Session

from filehub.packages.drive.crud.base import CRUDBase
from filehub.packages.drive.models.partition import Partition


class CRUDPartition(CRUDBase[Partition]):
    def get_by_type(self, db: Session, partition_type: str) -> Partition | None:
        return self.query(db).filter(Partition.partition_type == partition_type).first()

    def list_ordered(self, db: Session) -> list[Partition]:
        return self.query(db).order_by(Partition.id.asc()).all()


partition_crud = CRUDPartition(Partition)
