"""站内通知服务：订阅变更事件并写入用户通知，同时提供查询与已读标记。"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from filehub.packages.drive.core.enums import ChangeEventEnum, NotificationTypeEnum
from filehub.packages.drive.core.exceptions import NotFoundError
from filehub.packages.drive.core.logger import get_logger
from filehub.packages.drive.core.timezone import isoformat
from filehub.packages.drive.crud.folders import folder_crud
from filehub.packages.drive.crud.notifications import notification_crud
from filehub.packages.drive.crud.partitions import partition_crud
from filehub.packages.drive.db import session as db_session
from filehub.packages.drive.models.notification import Notification
from filehub.packages.drive.services.notifier import Notifier

logger = get_logger("notifications")

# 事件类型 -> (通知类型, 标题, 消息模板)
_TEMPLATES: dict[str, tuple[NotificationTypeEnum, str, str]] = {
    ChangeEventEnum.FILE_CREATED.value: (
        NotificationTypeEnum.FILE_UPLOADED, "File uploaded", 'File "{name}" was uploaded successfully.'
    ),
    ChangeEventEnum.FILE_UPDATED.value: (
        NotificationTypeEnum.FILE_UPDATED, "File updated", 'File "{name}" was updated.'
    ),
    ChangeEventEnum.FILE_DELETED.value: (
        NotificationTypeEnum.FILE_DELETED, "File deleted", 'File "{name}" was deleted.'
    ),
    ChangeEventEnum.FOLDER_CREATED.value: (
        NotificationTypeEnum.FOLDER_CREATED, "Folder created", 'Folder "{name}" was created.'
    ),
    ChangeEventEnum.FOLDER_UPDATED.value: (
        NotificationTypeEnum.FOLDER_UPDATED, "Folder updated", 'Folder "{name}" was updated.'
    ),
    ChangeEventEnum.FOLDER_DELETED.value: (
        NotificationTypeEnum.FOLDER_DELETED, "Folder deleted", 'Folder "{name}" was deleted.'
    ),
}


class NotificationService:
    """聚合站内通知的写入、查询与已读能力。"""

    # ----------------------------
    # 事件订阅
    # ----------------------------
    def register(self, notifier: Notifier) -> None:
        """把事件处理器挂到通知器上；通知器按处理器去重，重复注册无副作用。"""
        notifier.subscribe(self.handle_event)

    def handle_event(self, event_kind: str, payload: dict[str, Any]) -> None:
        template = _TEMPLATES.get(event_kind)
        if template is None:
            return
        with db_session.SessionLocal() as db:
            try:
                self.create_from_event(db, event_kind, payload)
                db.commit()
            except Exception:
                db.rollback()
                logger.warning("Failed to create notification for %s", event_kind, exc_info=True)

    def create_from_event(self, db: Session, event_kind: str, payload: dict[str, Any]) -> Optional[Notification]:
        template = _TEMPLATES.get(event_kind)
        if template is None:
            return None
        notification_type, title, message = template
        is_file = event_kind.startswith("file.")
        node = payload.get("file" if is_file else "folder") or {}
        metadata = self._build_metadata(db, node, is_file=is_file)
        return notification_crud.create(
            db,
            {
                "user_id": payload["userId"],
                "type": notification_type.value,
                "title": title,
                "message": message.format(name=node.get("name", "")),
                "metadata_json": metadata,
            },
        )

    def _build_metadata(self, db: Session, node: dict[str, Any], *, is_file: bool) -> dict[str, Any]:
        partition_id = node.get("systemFolderId")
        partition = partition_crud.get(db, partition_id) if partition_id else None
        if is_file:
            folder = folder_crud.get(db, node.get("folderId"))
            return {
                "fileId": node.get("fileId"),
                "fileName": node.get("name"),
                "folderId": node.get("folderId"),
                "folderName": folder.name if folder else None,
                "systemFolderId": partition_id,
                "systemFolderName": partition.name if partition else None,
                "path": node.get("path"),
                "size": node.get("size"),
                "mimeType": node.get("mimeType"),
            }
        parent = folder_crud.get(db, node.get("parentId"))
        return {
            "folderId": node.get("folderId"),
            "folderName": node.get("name"),
            "parentId": node.get("parentId"),
            "parentFolderName": parent.name if parent else None,
            "path": node.get("path") or node.get("name"),
            "systemFolderId": partition_id,
            "systemFolderName": partition.name if partition else None,
        }

    # ----------------------------
    # 查询与已读
    # ----------------------------
    def list_notifications(
        self,
        db: Session,
        *,
        user_id: int,
        unread_only: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> dict:
        page = max(page, 1)
        page_size = max(page_size, 1)
        items, total = notification_crud.list_for_user(
            db,
            user_id,
            unread_only=unread_only,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        return {
            "total": total,
            "items": [self.serialize(item) for item in items],
            "page": page,
            "page_size": page_size,
        }

    def mark_read(self, db: Session, *, user_id: int, notification_id: int) -> Notification:
        notification = notification_crud.get_for_user(db, notification_id, user_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        notification.is_read = True
        notification_crud.save(db, notification, auto_commit=True)
        return notification

    def mark_all_read(self, db: Session, *, user_id: int) -> int:
        updated = notification_crud.mark_all_read(db, user_id)
        db.commit()
        return updated

    @staticmethod
    def serialize(notification: Notification) -> dict:
        return {
            "notificationId": notification.id,
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "metadata": notification.metadata_json,
            "read": bool(notification.is_read),
            "createdAt": isoformat(notification.create_time),
        }


notification_service = NotificationService()
