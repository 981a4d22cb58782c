"""系统分区注册表：初始化三个固定分区并提供类型/主键解析。

分区记录只在启动时写入一次（幂等），其余时间只读。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from filehub.packages.drive.core.constants import (
    GENERAL_PARTITION_ID,
    GENERAL_PARTITION_NAME,
    MY_FOLDERS_PARTITION_ID,
    MY_FOLDERS_PARTITION_NAME,
    SHARED_WITH_ME_PARTITION_ID,
    SHARED_WITH_ME_PARTITION_NAME,
)
from filehub.packages.drive.core.enums import PartitionTypeEnum
from filehub.packages.drive.core.exceptions import NotFoundError, ValidationError
from filehub.packages.drive.core.logger import get_logger
from filehub.packages.drive.crud.folders import folder_crud
from filehub.packages.drive.crud.partitions import partition_crud
from filehub.packages.drive.models.partition import Partition

logger = get_logger("partitions")

# (稳定主键, 规范名称, 类型)
SYSTEM_PARTITIONS: tuple[tuple[int, str, PartitionTypeEnum], ...] = (
    (GENERAL_PARTITION_ID, GENERAL_PARTITION_NAME, PartitionTypeEnum.GENERAL),
    (MY_FOLDERS_PARTITION_ID, MY_FOLDERS_PARTITION_NAME, PartitionTypeEnum.MY_FOLDERS),
    (SHARED_WITH_ME_PARTITION_ID, SHARED_WITH_ME_PARTITION_NAME, PartitionTypeEnum.SHARED_WITH_ME),
)

_NAME_BY_TYPE = {ptype: name for _, name, ptype in SYSTEM_PARTITIONS}
_TYPE_BY_ID = {pid: ptype for pid, _, ptype in SYSTEM_PARTITIONS}


def parse_partition_type(raw: Optional[str | PartitionTypeEnum]) -> Optional[PartitionTypeEnum]:
    """解析分区类型，空值返回 ``None``，非法值抛出 ``ValidationError``。"""
    if raw is None or raw == "":
        return None
    if isinstance(raw, PartitionTypeEnum):
        return raw
    try:
        return PartitionTypeEnum(str(raw).strip().upper())
    except ValueError as exc:
        raise ValidationError(f"Unknown system folder type: {raw}") from exc


class PartitionService:
    """聚合系统分区的初始化与解析能力。"""

    def bootstrap(self, db: Session) -> int:
        """写入缺失的系统分区，返回本次新增的数量。"""
        created = 0
        for partition_id, name, ptype in SYSTEM_PARTITIONS:
            if partition_crud.get(db, partition_id) is not None:
                continue
            db.add(Partition(id=partition_id, name=name, partition_type=ptype.value))
            created += 1
        if created:
            db.flush()
            logger.info("Bootstrapped %s system partitions", created)
        return created

    def list_partitions(self, db: Session) -> list[Partition]:
        return partition_crud.list_ordered(db)

    def get(self, db: Session, partition_id: int) -> Partition:
        partition = partition_crud.get(db, partition_id)
        if partition is None:
            raise NotFoundError("System folder not found")
        return partition

    def resolve(self, db: Session, partition_type: PartitionTypeEnum | str) -> int:
        """分区类型 -> 稳定主键。"""
        ptype = parse_partition_type(partition_type)
        partition = partition_crud.get_by_type(db, ptype.value) if ptype else None
        if partition is None:
            raise NotFoundError("System folder not found")
        return partition.id

    def type_of(self, partition_id: Optional[int]) -> Optional[PartitionTypeEnum]:
        return _TYPE_BY_ID.get(partition_id)

    def is_partition_root(self, db: Session, folder_id: int) -> bool:
        """仅当目录无父级且名称等于其分区规范名称时视为分区根目录。"""
        folder = folder_crud.get(db, folder_id)
        if folder is None or folder.parent_id is not None:
            return False
        ptype = self.type_of(folder.partition_id)
        return ptype is not None and folder.name == _NAME_BY_TYPE[ptype]


partition_service = PartitionService()
