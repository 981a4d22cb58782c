"""异常处理模块：定义统一的业务异常与响应格式。

命名空间核心只抛出下列几类异常，由 API 层统一转换为响应体：
- NotFoundError：引用的目录/文件/版本不存在；
- AccessDeniedError：操作者缺少所有权或角色；
- InvalidPlacementError：违反分区/祖先结构规则（与权限无关）；
- ConflictError：目标位置存在同名节点；
- ValidationError：输入格式非法（空名称、权限位格式错误等）。
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from filehub.packages.drive.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_UNPROCESSABLE_ENTITY,
)
from filehub.packages.drive.core.logger import logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    default_code = HTTP_STATUS_BAD_REQUEST

    def __init__(self, msg: str, code: int | None = None, data=None) -> None:
        super().__init__(status_code=code or self.default_code, detail=msg)
        self.msg = msg
        self.data = data

    def __str__(self) -> str:
        return self.msg


class NotFoundError(AppException):
    default_code = HTTP_STATUS_NOT_FOUND


class AccessDeniedError(AppException):
    default_code = HTTP_STATUS_FORBIDDEN


class InvalidPlacementError(AppException):
    default_code = HTTP_STATUS_BAD_REQUEST


class ConflictError(AppException):
    default_code = HTTP_STATUS_CONFLICT


class ValidationError(AppException):
    default_code = HTTP_STATUS_UNPROCESSABLE_ENTITY


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常（含存储层超时/断连）转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    payload = {
        "msg": "服务器内部错误",
        "data": None,
        "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
