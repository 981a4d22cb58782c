"""放置策略判定：根据操作者角色与目标分区决定写操作是否允许。

纯函数实现，不做任何 I/O；调用方需在每次写操作时重新判定，
因为角色可能在两次请求之间发生变化。判定顺序：

1. My Folders（私有分区）：所属用户始终允许；
2. General：仅 admin 及以上角色允许，否则拒绝（"administrators only"）；
3. Shared With Me 及其它分区：一律拒绝（"unsupported placement"）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from filehub.packages.drive.core.constants import ADMIN_ROLE_LEVEL, ROLE_LEVELS
from filehub.packages.drive.core.enums import PartitionTypeEnum, PlacementOperationEnum
from filehub.packages.drive.core.exceptions import AccessDeniedError

REASON_ADMIN_ONLY = "administrators only"
REASON_UNSUPPORTED = "unsupported placement"


@dataclass(frozen=True)
class PlacementDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PlacementDecision(True)


def role_level(role: Optional[str]) -> int:
    """返回角色在层级中的数值，未知角色为 0。"""
    return ROLE_LEVELS.get((role or "").strip().lower(), 0)


def is_elevated(actor_roles: Iterable[str]) -> bool:
    """是否持有 admin 或更高层级的角色。"""
    return any(role_level(role) >= ADMIN_ROLE_LEVEL for role in actor_roles or ())


def can_place(
    actor_roles: Iterable[str],
    partition_type: Optional[PartitionTypeEnum | str],
    operation: PlacementOperationEnum | str = PlacementOperationEnum.CREATE,
) -> PlacementDecision:
    """判定操作者能否在指定分区内执行 ``operation``。

    私有分区的“所属用户”校验（父目录 owner 与操作者一致）属于结构性检查，
    由命名空间服务在加载目标目录后完成，这里只负责角色与分区维度。
    """
    try:
        partition = PartitionTypeEnum(partition_type) if partition_type is not None else None
    except ValueError:
        partition = None
    PlacementOperationEnum(operation)

    if partition is PartitionTypeEnum.MY_FOLDERS:
        return ALLOW
    if partition is PartitionTypeEnum.GENERAL:
        if is_elevated(actor_roles):
            return ALLOW
        return PlacementDecision(False, REASON_ADMIN_ONLY)
    return PlacementDecision(False, REASON_UNSUPPORTED)


def require_placement(
    actor_roles: Iterable[str],
    partition_type: Optional[PartitionTypeEnum | str],
    operation: PlacementOperationEnum | str = PlacementOperationEnum.CREATE,
) -> None:
    """判定失败时抛出 ``AccessDeniedError``，消息即拒绝原因。"""
    decision = can_place(actor_roles, partition_type, operation)
    if not decision.allowed:
        raise AccessDeniedError(decision.reason or REASON_UNSUPPORTED)
