"""站内通知响应模型。"""

from typing import Any, List, Optional

from pydantic import BaseModel

from filehub.packages.drive.api.v1.schemas.common import ResponseEnvelope


class NotificationItem(BaseModel):
    notificationId: int
    type: str
    title: str
    message: str
    metadata: Optional[dict[str, Any]] = None
    read: bool
    createdAt: Optional[str] = None


class NotificationListPayload(BaseModel):
    total: int
    items: List[NotificationItem]
    page: int
    page_size: int


NotificationListResponse = ResponseEnvelope[NotificationListPayload]
NotificationResponse = ResponseEnvelope[NotificationItem]
NotificationMutationResponse = ResponseEnvelope[Any]
