"""文件与版本相关的请求/响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from filehub.packages.drive.api.v1.schemas.common import ResponseEnvelope


class FileUpdateBody(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    folderId: Optional[int] = None
    permissions: Optional[str] = None


FileResponse = ResponseEnvelope[dict]
FileListResponse = ResponseEnvelope[list[dict]]
FileMutationResponse = ResponseEnvelope[Any]
