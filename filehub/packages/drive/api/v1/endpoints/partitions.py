"""系统分区只读路由。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from filehub.packages.drive.api.v1.schemas.folders import FolderListResponse
from filehub.packages.drive.core.dependencies import get_current_active_user, get_db
from filehub.packages.drive.core.responses import create_response
from filehub.packages.drive.models.user import User
from filehub.packages.drive.services.partition_service import partition_service

router = APIRouter(prefix="/partitions", tags=["partitions"])


@router.get("", response_model=FolderListResponse)
def list_partitions(
    db: Session = Depends(get_db),
    _: User = Depends(get_current_active_user),
):
    items = [
        {
            "systemFolderId": partition.id,
            "name": partition.name,
            "systemFolderType": partition.partition_type,
        }
        for partition in partition_service.list_partitions(db)
    ]
    return create_response("获取系统分区成功", items)
