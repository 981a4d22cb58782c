"""文件上传、版本与下载路由。"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from filehub.packages.drive.api.v1.schemas.files import (
    FileListResponse,
    FileMutationResponse,
    FileResponse,
    FileUpdateBody,
)
from filehub.packages.drive.core.constants import HTTP_STATUS_CREATED, UNSET
from filehub.packages.drive.core.dependencies import get_actor_roles, get_current_active_user, get_db
from filehub.packages.drive.core.responses import create_response
from filehub.packages.drive.models.user import User
from filehub.packages.drive.services.file_service import UploadItem, file_service

router = APIRouter(prefix="/files", tags=["files"])


@router.post("", response_model=FileListResponse, status_code=HTTP_STATUS_CREATED)
async def upload_files(
    folder_id: int = Form(..., alias="folderId"),
    files: list[UploadFile] = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    actor_roles: list[str] = Depends(get_actor_roles),
):
    """批量上传：同名文件追加新版本，单个文件失败不影响其余文件。"""
    items: list[UploadItem] = []
    for upload in files:
        content = await upload.read()
        items.append(UploadItem(name=upload.filename or "", content=content, mime_type=upload.content_type))
    uploaded = file_service.upload_files(
        db,
        folder_id=folder_id,
        owner_id=current_user.id,
        actor_roles=actor_roles,
        items=items,
    )
    payload = [file_service.serialize(item) for item in uploaded]
    return create_response(
        f"成功上传 {len(uploaded)}/{len(items)} 个文件",
        payload,
        HTTP_STATUS_CREATED,
    )


@router.get("", response_model=FileListResponse)
def list_files(
    folder_id: int = Query(..., alias="folderId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    files = file_service.list_files(db, folder_id, actor_id=current_user.id)
    return create_response("获取文件列表成功", [file_service.serialize(item) for item in files])


@router.get("/{file_id}", response_model=FileResponse)
def get_file(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    file = file_service.get_file(db, file_id, actor_id=current_user.id)
    return create_response("获取文件成功", file_service.serialize(file))


@router.get("/{file_id}/versions", response_model=FileListResponse)
def list_versions(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    versions = file_service.list_versions(db, file_id, actor_id=current_user.id)
    return create_response("获取版本列表成功", [file_service.serialize_version(item) for item in versions])


@router.post("/{file_id}/versions", response_model=FileResponse, status_code=HTTP_STATUS_CREATED)
async def upload_new_version(
    file_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    content = await file.read()
    updated = file_service.upload_new_version(
        db,
        file_id,
        actor_id=current_user.id,
        content=content,
        mime_type=file.content_type,
    )
    return create_response("上传新版本成功", file_service.serialize(updated), HTTP_STATUS_CREATED)


@router.get("/{file_id}/download")
def download_file(
    file_id: int,
    version: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    result = file_service.get_file_content(db, file_id, actor_id=current_user.id, version=version)
    headers = {
        "Content-Disposition": f"attachment; filename*=UTF-8''{quote(result.name)}",
        "X-File-Version": str(result.version),
    }
    return Response(content=result.content, media_type=result.mime_type, headers=headers)


@router.patch("/{file_id}", response_model=FileResponse)
def update_file(
    file_id: int,
    body: FileUpdateBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    actor_roles: list[str] = Depends(get_actor_roles),
):
    provided = body.model_fields_set
    file = file_service.update_file(
        db,
        file_id,
        actor_id=current_user.id,
        actor_roles=actor_roles,
        name=body.name if "name" in provided else UNSET,
        folder_id=body.folderId if "folderId" in provided else UNSET,
        permissions=body.permissions if "permissions" in provided else UNSET,
    )
    return create_response("更新文件成功", file_service.serialize(file))


@router.delete("/{file_id}", response_model=FileMutationResponse)
def delete_file(
    file_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    file_service.delete_file(db, file_id, actor_id=current_user.id)
    return create_response("删除文件成功", {"fileId": file_id})
