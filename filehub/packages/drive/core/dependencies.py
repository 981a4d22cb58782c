"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from filehub.packages.drive.core.constants import ACTOR_HEADER
from filehub.packages.drive.core.logger import set_actor_id
from filehub.packages.drive.crud.users import user_crud
from filehub.packages.drive.db import session as db_session
from filehub.packages.drive.models.user import User
from filehub.packages.drive.services.role_service import role_service


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    actor_header: Optional[str] = Header(default=None, alias=ACTOR_HEADER),
    db: Session = Depends(get_db),
) -> User:
    """根据 ``X-User-Id`` 头部解析当前操作者，缺失、非法或不存在时抛出 401。

    身份签发不在本服务范围内，由上游网关负责认证后注入该头部。
    """
    set_actor_id(None)
    if not actor_header or not actor_header.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少操作者信息")
    try:
        user_id = int(actor_header.strip())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="操作者标识无效") from None

    user = user_crud.get(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="用户不存在")
    set_actor_id(user.id)
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """确保操作者仍处于激活状态，否则拒绝访问。"""
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="用户未激活")
    return current_user


def get_actor_roles(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> list[str]:
    """每次请求重新读取角色集合，放置策略不跨请求缓存角色。"""
    return role_service.get_user_roles(db, current_user.id)
