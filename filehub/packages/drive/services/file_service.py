"""文件元数据与版本服务。

文件按 (folder_id, owner_id, name) 唯一；重复上传同名文件即追加新版本，
``current_version`` 始终等于版本链中的最大版本号。版本号竞争依赖
(file_id, version) 唯一约束：失败方回滚后重新读取并重试。
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from filehub.packages.drive.core.config import get_settings
from filehub.packages.drive.core.constants import UNSET, VERSION_CONFLICT_RETRIES
from filehub.packages.drive.core.enums import ChangeEventEnum, PartitionTypeEnum, PlacementOperationEnum
from filehub.packages.drive.core.exceptions import (
    AccessDeniedError,
    AppException,
    ConflictError,
    InvalidPlacementError,
    NotFoundError,
    ValidationError,
)
from filehub.packages.drive.core.logger import get_logger
from filehub.packages.drive.core.policy import is_elevated, require_placement
from filehub.packages.drive.core.timezone import isoformat
from filehub.packages.drive.crud.files import file_crud, file_version_crud
from filehub.packages.drive.crud.folders import folder_crud
from filehub.packages.drive.db.session import transaction
from filehub.packages.drive.models.file import File
from filehub.packages.drive.models.file_version import FileVersion
from filehub.packages.drive.models.folder import Folder
from filehub.packages.drive.services.blob_store import build_storage_key, get_blob_store, purge_blobs
from filehub.packages.drive.services.notifier import file_event_payload, get_notifier
from filehub.packages.drive.services.partition_service import partition_service
from filehub.packages.drive.utils.naming import join_path, normalize_name, validate_permissions

logger = get_logger("files")

DEFAULT_MIME_TYPE = "application/octet-stream"

MSG_FILE_NOT_FOUND = "File not found"
MSG_FOLDER_NOT_FOUND = "Folder not found"
MSG_ACCESS_DENIED = "Access denied"
MSG_DUPLICATE = "File with this name already exists in this folder"
MSG_FOLDER_REQUIRED = "Files must be placed inside a folder"


@dataclass
class UploadItem:
    """批量上传中的单个文件。"""

    name: str
    content: bytes
    mime_type: Optional[str] = None


@dataclass
class FileContent:
    content: bytes
    mime_type: str
    name: str
    version: int

    @property
    def size(self) -> int:
        return len(self.content)


def guess_mime_type(name: str, declared: Optional[str] = None) -> str:
    """优先使用客户端声明的类型，其次按扩展名推断。"""
    if declared and declared.strip() and declared != DEFAULT_MIME_TYPE:
        return declared.strip()
    guessed, _ = mimetypes.guess_type(name)
    return guessed or DEFAULT_MIME_TYPE


class FileService:
    """聚合文件上传、版本、读取、移动与删除能力。"""

    # ----------------------------
    # 上传
    # ----------------------------
    def upload_file(
        self,
        db: Session,
        *,
        name: str,
        folder_id: Optional[int],
        owner_id: int,
        actor_roles: Iterable[str],
        content: bytes,
        mime_type: Optional[str] = None,
        size: Optional[int] = None,
        permissions: Optional[str] = None,
    ) -> File:
        """上传文件；同一目录下同名文件已存在时追加新版本。"""
        if folder_id is None:
            raise InvalidPlacementError(MSG_FOLDER_REQUIRED)
        file_name = normalize_name(name, kind="File")
        file_permissions = validate_permissions(permissions, default=get_settings().default_file_permissions)
        data = content or b""
        roles = list(actor_roles or ())

        file, created = self._with_version_retry(
            lambda: self._upload_once(
                db,
                name=file_name,
                folder_id=folder_id,
                owner_id=owner_id,
                actor_roles=roles,
                data=data,
                mime_type=guess_mime_type(file_name, mime_type),
                size=size,
                permissions=file_permissions,
            )
        )

        logger.info(
            "File uploaded id=%s name=%s version=%s size=%s",
            file.id,
            file.name,
            file.current_version,
            file.size,
        )
        event = ChangeEventEnum.FILE_CREATED if created else ChangeEventEnum.FILE_UPDATED
        get_notifier().publish(event, file_event_payload(file, owner_id))
        return file

    def upload_files(
        self,
        db: Session,
        *,
        folder_id: Optional[int],
        owner_id: int,
        actor_roles: Iterable[str],
        items: Iterable[UploadItem],
    ) -> list[File]:
        """批量上传：单个文件失败只记录并跳过，返回成功上传的文件。"""
        batch = list(items or ())
        if not batch:
            raise ValidationError("No files provided")
        limit = get_settings().max_batch_files
        if len(batch) > limit:
            raise ValidationError(f"At most {limit} files can be uploaded at once")

        roles = list(actor_roles or ())
        uploaded: list[File] = []
        for item in batch:
            try:
                uploaded.append(
                    self.upload_file(
                        db,
                        name=item.name,
                        folder_id=folder_id,
                        owner_id=owner_id,
                        actor_roles=roles,
                        content=item.content,
                        mime_type=item.mime_type,
                    )
                )
            except AppException as exc:
                logger.warning("Skipped file %r in batch upload: %s", item.name, exc.msg)
            except Exception:
                logger.warning("Skipped file %r in batch upload", item.name, exc_info=True)
        logger.info("Batch upload finished folder=%s uploaded=%s/%s", folder_id, len(uploaded), len(batch))
        return uploaded

    def upload_new_version(
        self,
        db: Session,
        file_id: int,
        *,
        actor_id: int,
        content: bytes,
        mime_type: Optional[str] = None,
        size: Optional[int] = None,
    ) -> File:
        """为已存在的文件追加版本；只校验所有权，不再校验目录放置规则。"""
        data = content or b""

        def _attempt() -> tuple[File, bool]:
            written: list[str] = []
            try:
                with transaction(db):
                    file = file_crud.get(db, file_id, for_update=True)
                    if file is None:
                        raise NotFoundError(MSG_FILE_NOT_FOUND)
                    if file.owner_id != actor_id:
                        raise AccessDeniedError(MSG_ACCESS_DENIED)
                    self._append_version(
                        db,
                        file,
                        version=file.current_version + 1,
                        data=data,
                        mime_type=guess_mime_type(file.name, mime_type),
                        size=size,
                        uploaded_by=actor_id,
                        written=written,
                    )
            except Exception:
                purge_blobs(written)
                raise
            return file, False

        file, _ = self._with_version_retry(_attempt)
        logger.info("File version uploaded id=%s version=%s size=%s", file.id, file.current_version, file.size)
        get_notifier().publish(ChangeEventEnum.FILE_UPDATED, file_event_payload(file, actor_id))
        return file

    def _upload_once(
        self,
        db: Session,
        *,
        name: str,
        folder_id: int,
        owner_id: int,
        actor_roles: list[str],
        data: bytes,
        mime_type: str,
        size: Optional[int],
        permissions: str,
    ) -> tuple[File, bool]:
        written: list[str] = []
        try:
            with transaction(db):
                folder = folder_crud.get(db, folder_id)
                if folder is None:
                    raise NotFoundError(MSG_FOLDER_NOT_FOUND)
                partition_type = partition_service.type_of(folder.partition_id)
                if partition_type is PartitionTypeEnum.MY_FOLDERS and folder.owner_id != owner_id:
                    raise AccessDeniedError("Cannot upload file to another user's folder")
                require_placement(actor_roles, partition_type, PlacementOperationEnum.UPLOAD)

                file = file_crud.find_in_folder(db, folder_id=folder.id, name=name, owner_id=owner_id)
                created = file is None
                if created:
                    if folder.is_general and file_crud.find_in_folder(
                        db, folder_id=folder.id, name=name, owner_id=None
                    ):
                        raise ConflictError(MSG_DUPLICATE)
                    file = file_crud.create(
                        db,
                        {
                            "name": name,
                            "folder_id": folder.id,
                            "owner_id": owner_id,
                            "size": 0,
                            "mime_type": mime_type,
                            "current_version": 0,
                            "permissions": permissions,
                        },
                    )
                self._append_version(
                    db,
                    file,
                    version=file.current_version + 1,
                    data=data,
                    mime_type=mime_type,
                    size=size,
                    uploaded_by=owner_id,
                    written=written,
                )
        except Exception:
            purge_blobs(written)
            raise
        return file, created

    def _append_version(
        self,
        db: Session,
        file: File,
        *,
        version: int,
        data: bytes,
        mime_type: str,
        size: Optional[int],
        uploaded_by: int,
        written: list[str],
    ) -> FileVersion:
        """写入版本行与内容，并把文件的当前版本/大小/类型指向新版本。"""
        byte_size = len(data) if size is None else int(size)
        storage_key = build_storage_key(file.owner_id, file.id, version, file.name)
        record = file_version_crud.create(
            db,
            {
                "file_id": file.id,
                "version": version,
                "storage_key": storage_key,
                "size": byte_size,
                "mime_type": mime_type,
                "uploaded_by": uploaded_by,
            },
        )
        file.current_version = version
        file.size = byte_size
        file.mime_type = mime_type
        file_crud.save(db, file)

        get_blob_store().put(storage_key, data)
        written.append(storage_key)
        return record

    @staticmethod
    def _with_version_retry(attempt: Callable[[], tuple[File, bool]]) -> tuple[File, bool]:
        for index in range(1, VERSION_CONFLICT_RETRIES + 1):
            try:
                return attempt()
            except IntegrityError:
                logger.warning("Version conflict while storing file, retry %s/%s", index, VERSION_CONFLICT_RETRIES)
        raise ConflictError("File was modified concurrently, please retry")

    # ----------------------------
    # 查询
    # ----------------------------
    def get_file(self, db: Session, file_id: int, *, actor_id: int) -> File:
        file = file_crud.get(db, file_id)
        if file is None:
            raise NotFoundError(MSG_FILE_NOT_FOUND)
        self._ensure_readable(file, actor_id)
        return file

    def list_files(self, db: Session, folder_id: int, *, actor_id: int) -> list[File]:
        """General 目录返回所有用户的文件，其余目录仅所属用户可列出自己的文件。"""
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError(MSG_FOLDER_NOT_FOUND)
        if folder.is_general:
            return file_crud.list_in_folder(db, folder.id)
        if folder.owner_id != actor_id:
            raise AccessDeniedError(MSG_ACCESS_DENIED)
        return file_crud.list_in_folder(db, folder.id, owner_id=actor_id)

    def list_versions(self, db: Session, file_id: int, *, actor_id: int) -> list[FileVersion]:
        file = self.get_file(db, file_id, actor_id=actor_id)
        return file_version_crud.list_for_file(db, file.id, newest_first=True)

    def get_file_content(
        self,
        db: Session,
        file_id: int,
        *,
        actor_id: int,
        version: Optional[int] = None,
    ) -> FileContent:
        """读取指定版本（默认当前版本）的内容。"""
        file = file_crud.get(db, file_id)
        if file is None:
            raise NotFoundError(MSG_FILE_NOT_FOUND)
        target = file.current_version if version is None else version
        record = file_version_crud.get_version(db, file_id=file.id, version=target)
        if record is None:
            raise NotFoundError("file version not found")
        self._ensure_readable(file, actor_id)
        data = get_blob_store().get(record.storage_key)
        return FileContent(content=data, mime_type=record.mime_type, name=file.name, version=record.version)

    @staticmethod
    def _ensure_readable(file: File, actor_id: int) -> None:
        folder = file.folder
        if folder is not None and folder.is_general:
            return
        if file.owner_id != actor_id:
            raise AccessDeniedError(MSG_ACCESS_DENIED)

    # ----------------------------
    # 更新（重命名/移动/权限）
    # ----------------------------
    def update_file(
        self,
        db: Session,
        file_id: int,
        *,
        actor_id: int,
        actor_roles: Iterable[str],
        name: Any = UNSET,
        folder_id: Any = UNSET,
        permissions: Any = UNSET,
    ) -> File:
        roles = list(actor_roles or ())
        with transaction(db):
            file = file_crud.get(db, file_id, for_update=True)
            if file is None:
                raise NotFoundError(MSG_FILE_NOT_FOUND)
            current_folder: Optional[Folder] = file.folder
            general_writer = current_folder is not None and current_folder.is_general and is_elevated(roles)
            if file.owner_id != actor_id and not general_writer:
                raise AccessDeniedError(MSG_ACCESS_DENIED)

            new_name = normalize_name(name, kind="File") if name is not UNSET and name is not None else file.name
            renaming = new_name != file.name
            moving = folder_id is not UNSET and folder_id != file.folder_id

            target = current_folder
            if moving:
                # General 管理员只能原地改名/改权限，移动仍限所有者
                if file.owner_id != actor_id:
                    raise AccessDeniedError("Only the owner can move a file")
                if folder_id is None:
                    raise InvalidPlacementError(MSG_FOLDER_REQUIRED)
                target = folder_crud.get(db, folder_id)
                if target is None:
                    raise NotFoundError(MSG_FOLDER_NOT_FOUND)
                partition_type = partition_service.type_of(target.partition_id)
                require_placement(roles, partition_type, PlacementOperationEnum.MOVE)
                if partition_type is PartitionTypeEnum.MY_FOLDERS and target.owner_id != file.owner_id:
                    raise AccessDeniedError("Cannot move file to another user's folder")

            if (renaming or moving) and target is None:
                raise InvalidPlacementError(MSG_FOLDER_REQUIRED)

            if permissions is not UNSET and permissions is not None:
                file.permissions = validate_permissions(permissions, default=file.permissions)

            if renaming or moving:
                scope_owner = None if target.is_general else file.owner_id
                duplicate = file_crud.find_in_folder(
                    db, folder_id=target.id, name=new_name, owner_id=scope_owner, exclude_id=file.id
                )
                if duplicate is not None:
                    raise ConflictError(MSG_DUPLICATE)
                file.name = new_name
                file.folder_id = target.id
                file.folder = target

            try:
                file_crud.save(db, file)
            except IntegrityError as exc:
                raise ConflictError(MSG_DUPLICATE) from exc

        logger.info("File updated id=%s name=%s folder=%s", file.id, file.name, file.folder_id)
        get_notifier().publish(ChangeEventEnum.FILE_UPDATED, file_event_payload(file, actor_id))
        return file

    # ----------------------------
    # 删除
    # ----------------------------
    def delete_file(self, db: Session, file_id: int, *, actor_id: int) -> None:
        """删除文件及全部版本；内容在提交后从 Blob 存储清除。"""
        with transaction(db):
            file = file_crud.get(db, file_id, for_update=True)
            if file is None:
                raise NotFoundError(MSG_FILE_NOT_FOUND)
            if file.owner_id != actor_id:
                raise AccessDeniedError(MSG_ACCESS_DENIED)
            payload = file_event_payload(file, actor_id)
            versions = file_version_crud.list_for_file(db, file.id)
            storage_keys = [record.storage_key for record in versions]
            for record in versions:
                db.delete(record)
            db.flush()
            file_crud.hard_delete(db, file)

        purge_blobs(storage_keys)
        logger.info("File deleted id=%s name=%s versions=%s", file_id, payload["file"]["name"], len(storage_keys))
        get_notifier().publish(ChangeEventEnum.FILE_DELETED, payload)

    # ----------------------------
    # 序列化
    # ----------------------------
    @staticmethod
    def serialize(file: File) -> dict[str, Any]:
        folder = file.folder
        return {
            "fileId": file.id,
            "name": file.name,
            "folderId": file.folder_id,
            "ownerId": file.owner_id,
            "systemFolderId": folder.partition_id if folder else None,
            "path": join_path(folder.path if folder else None, file.name),
            "size": int(file.size or 0),
            "mimeType": file.mime_type,
            "currentVersion": file.current_version,
            "permissions": file.permissions,
            "createdAt": isoformat(file.create_time),
            "updatedAt": isoformat(file.update_time),
        }

    @staticmethod
    def serialize_version(record: FileVersion) -> dict[str, Any]:
        return {
            "versionId": record.id,
            "fileId": record.file_id,
            "version": record.version,
            "size": int(record.size or 0),
            "mimeType": record.mime_type,
            "uploadedBy": record.uploaded_by,
            "createdAt": isoformat(record.create_time),
        }


file_service = FileService()
