"""目录树相关的路由定义。"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from filehub.packages.drive.api.v1.schemas.folders import (
    FolderCreateBody,
    FolderListResponse,
    FolderMutationResponse,
    FolderResponse,
    FolderUpdateBody,
)
from filehub.packages.drive.core.constants import HTTP_STATUS_CREATED, UNSET
from filehub.packages.drive.core.dependencies import get_actor_roles, get_current_active_user, get_db
from filehub.packages.drive.core.responses import create_response
from filehub.packages.drive.models.user import User
from filehub.packages.drive.services.folder_service import folder_service

router = APIRouter(prefix="/folders", tags=["folders"])


@router.get("/tree", response_model=FolderListResponse)
def get_folder_tree(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    tree = folder_service.get_folder_tree(db, current_user.id)
    return create_response("获取目录树成功", tree)


@router.get("/{folder_id}", response_model=FolderResponse)
def get_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """返回目录详情及其直接子目录。"""
    folder = folder_service.get_folder(db, folder_id, actor_id=current_user.id)
    payload = folder_service.serialize(folder)
    payload["size"] = folder_service.calculate_folder_size(db, folder.id)
    payload["children"] = folder_service.get_folder_children(db, folder.id, actor_id=current_user.id)
    return create_response("获取目录成功", payload)


@router.get("/{node_id}/children", response_model=FolderListResponse)
def get_folder_children(
    node_id: int,
    partition: bool = Query(False, description="为 true 时 node_id 视为系统分区 ID"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    children = folder_service.get_folder_children(
        db, node_id, actor_id=current_user.id, partition=partition
    )
    return create_response("获取子目录成功", children)


@router.post("", response_model=FolderResponse, status_code=HTTP_STATUS_CREATED)
def create_folder(
    body: FolderCreateBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    actor_roles: list[str] = Depends(get_actor_roles),
):
    folder = folder_service.create_folder(
        db,
        name=body.name,
        owner_id=current_user.id,
        actor_roles=actor_roles,
        parent_id=body.parentId,
        partition_type=body.systemFolderType,
        permissions=body.permissions,
    )
    return create_response("创建目录成功", folder_service.serialize(folder), HTTP_STATUS_CREATED)


@router.patch("/{folder_id}", response_model=FolderResponse)
def update_folder(
    folder_id: int,
    body: FolderUpdateBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    actor_roles: list[str] = Depends(get_actor_roles),
):
    provided = body.model_fields_set
    folder = folder_service.update_folder(
        db,
        folder_id,
        actor_id=current_user.id,
        actor_roles=actor_roles,
        name=body.name if "name" in provided else UNSET,
        parent_id=body.parentId if "parentId" in provided else UNSET,
        permissions=body.permissions if "permissions" in provided else UNSET,
    )
    return create_response("更新目录成功", folder_service.serialize(folder))


@router.delete("/{folder_id}", response_model=FolderMutationResponse)
def delete_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    folder_service.delete_folder(db, folder_id, actor_id=current_user.id)
    return create_response("删除目录成功", {"folderId": folder_id})
