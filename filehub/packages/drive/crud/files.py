"""File 与 FileVersion CRUD。"""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from filehub.packages.drive.crud.base import CRUDBase
from filehub.packages.drive.models.file import File
from filehub.packages.drive.models.file_version import FileVersion


class CRUDFile(CRUDBase[File]):
    def find_in_folder(
        self,
        db: Session,
        *,
        folder_id: int,
        name: str,
        owner_id: Optional[int],
        exclude_id: Optional[int] = None,
    ) -> Optional[File]:
        """按 (folder_id, owner_id, name) 查找；``owner_id`` 为空表示跨用户（General）。"""
        query = self.query(db).filter(File.folder_id == folder_id).filter(File.name == name)
        if owner_id is not None:
            query = query.filter(File.owner_id == owner_id)
        if exclude_id is not None:
            query = query.filter(File.id != exclude_id)
        return query.first()

    def list_in_folder(self, db: Session, folder_id: int, *, owner_id: Optional[int] = None) -> list[File]:
        query = self.query(db).filter(File.folder_id == folder_id)
        if owner_id is not None:
            query = query.filter(File.owner_id == owner_id)
        return query.order_by(File.name.asc(), File.id.asc()).all()

    def sum_size_in_folder(self, db: Session, folder_id: int) -> int:
        total = db.query(func.coalesce(func.sum(File.size), 0)).filter(File.folder_id == folder_id).scalar()
        return int(total or 0)

    def list_in_folders(self, db: Session, folder_ids: Iterable[int]) -> list[File]:
        ids = list(folder_ids)
        if not ids:
            return []
        return self.query(db).filter(File.folder_id.in_(ids)).all()


class CRUDFileVersion(CRUDBase[FileVersion]):
    def get_version(self, db: Session, *, file_id: int, version: int) -> Optional[FileVersion]:
        return (
            self.query(db)
            .filter(FileVersion.file_id == file_id)
            .filter(FileVersion.version == version)
            .first()
        )

    def list_for_file(self, db: Session, file_id: int, *, newest_first: bool = True) -> list[FileVersion]:
        order = FileVersion.version.desc() if newest_first else FileVersion.version.asc()
        return self.query(db).filter(FileVersion.file_id == file_id).order_by(order).all()

    def list_for_files(self, db: Session, file_ids: Iterable[int]) -> list[FileVersion]:
        ids = list(file_ids)
        if not ids:
            return []
        return self.query(db).filter(FileVersion.file_id.in_(ids)).all()


file_crud = CRUDFile(File)
file_version_crud = CRUDFileVersion(FileVersion)
