"""站内通知路由：列表查询与已读标记。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from filehub.packages.drive.api.v1.schemas.notifications import (
    NotificationListResponse,
    NotificationMutationResponse,
    NotificationResponse,
)
from filehub.packages.drive.core.dependencies import get_current_active_user, get_db
from filehub.packages.drive.core.responses import create_response
from filehub.packages.drive.models.user import User
from filehub.packages.drive.services.notification_service import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    page: int = Query(1, ge=1, description="页码，从 1 开始"),
    page_size: int = Query(20, ge=1, le=200, description="每页数量"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    payload = notification_service.list_notifications(
        db,
        user_id=current_user.id,
        unread_only=unread_only,
        page=page,
        page_size=page_size,
    )
    return create_response("获取通知列表成功", payload)


# 固定路径需在 /{notification_id}/read 之前注册
@router.patch("/read-all", response_model=NotificationMutationResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    updated = notification_service.mark_all_read(db, user_id=current_user.id)
    return create_response("全部标记为已读", {"updated": updated})


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    notification = notification_service.mark_read(db, user_id=current_user.id, notification_id=notification_id)
    return create_response("标记已读成功", notification_service.serialize(notification))
