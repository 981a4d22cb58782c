"""目录树相关的请求/响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from filehub.packages.drive.api.v1.schemas.common import ResponseEnvelope


class FolderCreateBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parentId: Optional[int] = None
    systemFolderType: Optional[str] = None  # GENERAL / MY_FOLDERS，未指定父目录时生效
    permissions: Optional[str] = None


class FolderUpdateBody(BaseModel):
    """部分更新：未出现的字段保持不变；``parentId: null`` 表示移动到分区根层级。"""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    parentId: Optional[int] = None
    permissions: Optional[str] = None


FolderResponse = ResponseEnvelope[dict]
FolderListResponse = ResponseEnvelope[list[dict]]
FolderMutationResponse = ResponseEnvelope[Any]
