"""Blob 存储抽象与实现：统一封装本地与 S3 的文件内容读写。

命名空间核心只通过 ``put/get/delete`` 三个操作访问文件内容，
key 由调用方决定（所属用户 + 文件 + 版本即可唯一定位）。
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import status

from filehub.packages.drive.core.config import Settings, get_settings
from filehub.packages.drive.core.constants import HTTP_STATUS_BAD_REQUEST
from filehub.packages.drive.core.exceptions import AppException, NotFoundError
from filehub.packages.drive.core.logger import get_logger

logger = get_logger("blobs")


def build_storage_key(owner_id: int, file_id: int, version: int, name: str) -> str:
    """按 所属用户/文件/版本/文件名 生成对象 key。"""
    return f"user_{owner_id}/{file_id}/v{version}/{name}"


class BlobStore:
    """Blob 存储接口。"""

    def put(self, key: str, data: bytes) -> None:  # pragma: no cover - interface definition
        raise NotImplementedError

    def get(self, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def exists(self, key: str) -> bool:  # pragma: no cover
        raise NotImplementedError


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalBlobStore(BlobStore):
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - 极端情况下可能失败
            raise AppException(f"无法创建本地存储目录: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR) from exc

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, key: str) -> Path:
        candidate = (self.root / key.strip().lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise AppException("非法存储 key: 越权访问", HTTP_STATUS_BAD_REQUEST) from exc
        return candidate

    def put(self, key: str, data: bytes) -> None:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def get(self, key: str) -> bytes:
        target = self._resolve(key)
        if not target.is_file():
            raise NotFoundError("File content not found")
        return target.read_bytes()

    def delete(self, key: str) -> None:
        target = self._resolve(key)
        target.unlink(missing_ok=True)
        # 顺带清理空的上级目录，保持存储根目录整洁
        parent = target.parent
        while parent != self.root:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class S3BlobStore(BlobStore):
    def __init__(
        self,
        *,
        bucket: str,
        region: str,
        access_key_id: str,
        secret_access_key: str,
        prefix: Optional[str] = None,
    ):
        try:
            import boto3  # type: ignore
        except ImportError as exc:
            raise AppException(
                "S3 功能不可用：缺少依赖 boto3，请安装 filehub[s3] 后重试",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            ) from exc

        self.bucket = bucket
        self.prefix = (prefix or "").strip("/")
        self._client = boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    # 拼接基于 prefix 的对象 key
    def _join_key(self, key: str) -> str:
        key_norm = key.lstrip("/")
        return f"{self.prefix}/{key_norm}" if self.prefix else key_norm

    def put(self, key: str, data: bytes) -> None:
        self._client.put_object(Bucket=self.bucket, Key=self._join_key(key), Body=data)

    def get(self, key: str) -> bytes:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=self._join_key(key))
        except self._client.exceptions.NoSuchKey as exc:
            raise NotFoundError("File content not found") from exc
        return obj["Body"].read()

    def delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=self._join_key(key))

    def exists(self, key: str) -> bool:
        response = self._client.list_objects_v2(Bucket=self.bucket, Prefix=self._join_key(key), MaxKeys=1)
        return bool(response.get("KeyCount"))


def build_blob_store(settings: Optional[Settings] = None) -> BlobStore:
    settings = settings or get_settings()
    storage_type = (settings.blob_storage_type or "").upper()
    if storage_type == "LOCAL":
        return LocalBlobStore(settings.blob_local_directory)
    if storage_type == "S3":
        if not (
            settings.s3_bucket
            and settings.s3_region
            and settings.s3_access_key_id
            and settings.s3_secret_access_key
        ):
            raise AppException("S3 配置不完整", HTTP_STATUS_BAD_REQUEST)
        return S3BlobStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            prefix=settings.s3_prefix,
        )
    raise AppException("不支持的存储类型", HTTP_STATUS_BAD_REQUEST)


_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = build_blob_store()
        logger.info("Blob store initialized: %s", type(_blob_store).__name__)
    return _blob_store


def set_blob_store(store: Optional[BlobStore]) -> None:
    """替换进程级 Blob 存储（测试或自定义部署时使用）。"""
    global _blob_store
    _blob_store = store


def purge_blobs(keys: list[str]) -> int:
    """提交后清理内容：逐个删除，失败只记录告警，返回成功删除的数量。"""
    if not keys:
        return 0
    store = get_blob_store()
    removed = 0
    for key in keys:
        try:
            store.delete(key)
            removed += 1
        except Exception:
            logger.warning("Failed to delete blob %s", key, exc_info=True)
    return removed
