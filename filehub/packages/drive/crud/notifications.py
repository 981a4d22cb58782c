"""Notification CRUD。"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from filehub.packages.drive.crud.base import CRUDBase
from filehub.packages.drive.models.notification import Notification


class CRUDNotification(CRUDBase[Notification]):
    def list_for_user(
        self,
        db: Session,
        user_id: int,
        *,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[list[Notification], int]:
        query = self.query(db).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        total = query.count()
        items = (
            query.order_by(Notification.id.desc())
            .offset(max(skip, 0))
            .limit(max(limit, 1))
            .all()
        )
        return items, total

    def get_for_user(self, db: Session, notification_id: int, user_id: int) -> Optional[Notification]:
        return (
            self.query(db)
            .filter(Notification.id == notification_id)
            .filter(Notification.user_id == user_id)
            .first()
        )

    def mark_all_read(self, db: Session, user_id: int) -> int:
        return (
            self.query(db)
            .filter(Notification.user_id == user_id)
            .filter(Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )


notification_crud = CRUDNotification(Notification)
