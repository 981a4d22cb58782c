"""目录命名空间服务：目录的创建、重命名、移动、删除与树形组装。

所有写操作遵循同一流程：加载 -> 放置策略/所有权/结构校验 -> 写入（含路径重建）
-> 单次提交 -> 发布变更事件。树形读取不加锁，遍历中途消失的目录直接跳过。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from filehub.packages.drive.core.config import get_settings
from filehub.packages.drive.core.constants import UNSET
from filehub.packages.drive.core.enums import ChangeEventEnum, PartitionTypeEnum, PlacementOperationEnum
from filehub.packages.drive.core.exceptions import (
    AccessDeniedError,
    ConflictError,
    InvalidPlacementError,
    NotFoundError,
)
from filehub.packages.drive.core.logger import get_logger
from filehub.packages.drive.core.policy import is_elevated, require_placement
from filehub.packages.drive.core.timezone import isoformat
from filehub.packages.drive.crud.files import file_crud, file_version_crud
from filehub.packages.drive.crud.folders import folder_crud
from filehub.packages.drive.db.session import transaction
from filehub.packages.drive.models.folder import Folder
from filehub.packages.drive.services.blob_store import purge_blobs
from filehub.packages.drive.services.notifier import folder_event_payload, get_notifier
from filehub.packages.drive.services.partition_service import parse_partition_type, partition_service
from filehub.packages.drive.utils.naming import join_path, normalize_name, validate_permissions

logger = get_logger("folders")

MSG_FOLDER_NOT_FOUND = "Folder not found"
MSG_PARENT_NOT_FOUND = "Parent folder not found"
MSG_ACCESS_DENIED = "Access denied"
MSG_DUPLICATE = "Folder with this name already exists in this location"
MSG_SYSTEM_FOLDER = "cannot modify system folder"
MSG_DESCENDANT = "cannot move folder into its own descendant"


# ------------------------------------------
# 树节点：虚拟分区根与真实目录两种形态，仅在组装响应时出现
# ------------------------------------------


@dataclass
class FolderNode:
    folder: Folder
    partition_type: Optional[PartitionTypeEnum]
    size: int
    children: list["FolderNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = FolderService.serialize(self.folder)
        payload["systemFolderType"] = self.partition_type.value if self.partition_type else None
        payload["size"] = self.size
        payload["children"] = [child.to_dict() for child in self.children]
        return payload


@dataclass
class VirtualPartitionRoot:
    partition_id: int
    name: str
    partition_type: PartitionTypeEnum
    children: list[FolderNode] = field(default_factory=list)

    @property
    def size(self) -> int:
        return sum(child.size for child in self.children)

    def to_dict(self) -> dict[str, Any]:
        return {
            "folderId": None,
            "systemFolderId": self.partition_id,
            "name": self.name,
            "path": self.name,
            "parentId": None,
            "permissions": "755",
            "systemFolderType": self.partition_type.value,
            "isSystemFolder": True,
            "size": self.size,
            "children": [child.to_dict() for child in self.children],
        }


class FolderService:
    """聚合目录树的增删改查与一致性维护能力。"""

    # ----------------------------
    # 创建
    # ----------------------------
    def create_folder(
        self,
        db: Session,
        *,
        name: str,
        owner_id: int,
        actor_roles: Iterable[str],
        parent_id: Optional[int] = None,
        partition_type: Optional[PartitionTypeEnum | str] = None,
        permissions: Optional[str] = None,
    ) -> Folder:
        folder_name = normalize_name(name)
        folder_permissions = validate_permissions(permissions, default=get_settings().default_folder_permissions)
        explicit_type = parse_partition_type(partition_type)

        with transaction(db):
            parent: Optional[Folder] = None
            if parent_id is not None:
                parent = folder_crud.get(db, parent_id)
                if parent is None:
                    raise NotFoundError(MSG_PARENT_NOT_FOUND)
                target_type = partition_service.type_of(parent.partition_id)
            else:
                target_type = explicit_type or PartitionTypeEnum.MY_FOLDERS

            require_placement(actor_roles, target_type, PlacementOperationEnum.CREATE)

            if parent is not None:
                if explicit_type is not None and explicit_type != target_type:
                    raise InvalidPlacementError("Parent folder must belong to the same system folder type")
                if target_type is PartitionTypeEnum.MY_FOLDERS and parent.owner_id != owner_id:
                    raise AccessDeniedError("Cannot create folder in another user's folder")

            partition_id = partition_service.resolve(db, target_type)
            self._ensure_unique(
                db, name=folder_name, parent_id=parent_id, partition_id=partition_id, owner_id=owner_id
            )
            try:
                folder = folder_crud.create(
                    db,
                    {
                        "name": folder_name,
                        "path": join_path(parent.path if parent else None, folder_name),
                        "parent_id": parent_id,
                        "owner_id": owner_id,
                        "partition_id": partition_id,
                        "permissions": folder_permissions,
                    },
                )
            except IntegrityError as exc:
                raise ConflictError(MSG_DUPLICATE) from exc

        logger.info("Folder created id=%s path=%s partition=%s", folder.id, folder.path, target_type.value)
        get_notifier().publish(ChangeEventEnum.FOLDER_CREATED, folder_event_payload(folder, owner_id))
        return folder

    # ----------------------------
    # 查询
    # ----------------------------
    def get_folder(self, db: Session, folder_id: int, *, actor_id: int) -> Folder:
        """读取单个目录：General 对所有人可见，其余仅所属用户可见。"""
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError(MSG_FOLDER_NOT_FOUND)
        if not folder.is_general and folder.owner_id != actor_id:
            raise AccessDeniedError(MSG_ACCESS_DENIED)
        return folder

    def get_folder_children(
        self,
        db: Session,
        node_id: int,
        *,
        actor_id: int,
        partition: bool = False,
    ) -> list[dict[str, Any]]:
        """返回分区根层级目录或真实目录的直接子目录（单层，附带聚合大小）。"""
        if partition:
            record = partition_service.get(db, node_id)
            ptype = partition_service.type_of(record.id)
            owner_filter = None if ptype is PartitionTypeEnum.GENERAL else actor_id
            rows = folder_crud.list_partition_roots(db, record.id, owner_id=owner_filter)
        else:
            folder = folder_crud.get(db, node_id)
            if folder is None:
                raise NotFoundError(MSG_FOLDER_NOT_FOUND)
            if folder.is_general:
                rows = folder_crud.list_children(db, folder.id)
            else:
                if folder.owner_id != actor_id:
                    raise AccessDeniedError(MSG_ACCESS_DENIED)
                rows = folder_crud.list_children(db, folder.id, owner_id=actor_id)

        items: list[dict[str, Any]] = []
        for row in rows:
            payload = self.serialize(row)
            payload["systemFolderType"] = self._type_value(row.partition_id)
            payload["size"] = self.calculate_folder_size(db, row.id)
            items.append(payload)
        return items

    def get_folder_tree(self, db: Session, owner_id: int) -> list[dict[str, Any]]:
        """组装三个虚拟分区根及其下的完整目录树。

        General 下展示所有用户的目录，其余分区只展示 ``owner_id`` 自己的目录。
        """
        roots: list[VirtualPartitionRoot] = []
        visited: set[int] = set()
        for partition in partition_service.list_partitions(db):
            ptype = partition_service.type_of(partition.id)
            if ptype is None:
                continue
            owner_filter = None if ptype is PartitionTypeEnum.GENERAL else owner_id
            root = VirtualPartitionRoot(partition_id=partition.id, name=partition.name, partition_type=ptype)
            for folder in folder_crud.list_partition_roots(db, partition.id, owner_id=owner_filter):
                node = self._build_node(db, folder, viewer_id=owner_id, visited=visited)
                if node is not None:
                    root.children.append(node)
            roots.append(root)
        return [root.to_dict() for root in roots]

    def _build_node(self, db: Session, folder: Folder, *, viewer_id: int, visited: set[int]) -> Optional[FolderNode]:
        if folder.id in visited:
            logger.warning("Cycle detected at folder id=%s while building tree", folder.id)
            return None
        visited.add(folder.id)
        if not folder_crud.exists(db, folder.id):
            logger.info("Folder id=%s vanished while building tree, skipped", folder.id)
            return None
        child_owner = None if folder.is_general else viewer_id
        node = FolderNode(
            folder=folder,
            partition_type=partition_service.type_of(folder.partition_id),
            size=self.calculate_folder_size(db, folder.id),
        )
        for child in folder_crud.list_children(db, folder.id, owner_id=child_owner):
            child_node = self._build_node(db, child, viewer_id=viewer_id, visited=visited)
            if child_node is not None:
                node.children.append(child_node)
        return node

    def calculate_folder_size(self, db: Session, folder_id: int, _visited: Optional[set[int]] = None) -> int:
        """目录大小 = 直接文件大小之和 + 各子目录大小（递归，不做缓存）。"""
        visited = _visited if _visited is not None else set()
        if folder_id in visited:
            return 0
        visited.add(folder_id)
        total = file_crud.sum_size_in_folder(db, folder_id)
        for child_id in folder_crud.list_child_ids(db, folder_id):
            total += self.calculate_folder_size(db, child_id, visited)
        return total

    def is_ancestor(self, db: Session, candidate_id: int, start_id: Optional[int]) -> bool:
        """从 ``start_id`` 沿 parent_id 向上遍历，判断 ``candidate_id`` 是否出现在链上（含自身）。"""
        current = start_id
        seen: set[int] = set()
        while current is not None:
            if current == candidate_id:
                return True
            if current in seen:
                logger.warning("Cycle detected in ancestor chain of folder id=%s", start_id)
                return False
            seen.add(current)
            row = db.query(Folder.parent_id).filter(Folder.id == current).first()
            if row is None:
                return False
            current = row[0]
        return False

    # ----------------------------
    # 更新（重命名/移动/权限）
    # ----------------------------
    def update_folder(
        self,
        db: Session,
        folder_id: int,
        *,
        actor_id: int,
        actor_roles: Iterable[str],
        name: Any = UNSET,
        parent_id: Any = UNSET,
        permissions: Any = UNSET,
    ) -> Folder:
        actor_roles = list(actor_roles or ())
        with transaction(db):
            folder = folder_crud.get(db, folder_id, for_update=True)
            if folder is None:
                raise NotFoundError(MSG_FOLDER_NOT_FOUND)
            if folder.owner_id != actor_id and not (folder.is_general and is_elevated(actor_roles)):
                raise AccessDeniedError(MSG_ACCESS_DENIED)

            new_name = normalize_name(name) if name is not UNSET and name is not None else folder.name
            renaming = new_name != folder.name
            moving = parent_id is not UNSET and parent_id != folder.parent_id

            if (renaming or moving) and partition_service.is_partition_root(db, folder.id):
                raise InvalidPlacementError(MSG_SYSTEM_FOLDER)

            new_parent: Optional[Folder] = None
            if moving:
                new_parent = self._validate_move(db, folder, parent_id, actor_id=actor_id, actor_roles=actor_roles)
            elif folder.parent_id is not None:
                new_parent = folder_crud.get(db, folder.parent_id)

            if permissions is not UNSET and permissions is not None:
                folder.permissions = validate_permissions(permissions, default=folder.permissions)

            if renaming or moving:
                target_parent_id = new_parent.id if new_parent else None
                self._ensure_unique(
                    db,
                    name=new_name,
                    parent_id=target_parent_id,
                    partition_id=folder.partition_id,
                    owner_id=folder.owner_id,
                    exclude_id=folder.id,
                )
                folder.name = new_name
                folder.parent_id = target_parent_id
                folder.path = join_path(new_parent.path if new_parent else None, new_name)

            try:
                folder_crud.save(db, folder)
                if renaming or moving:
                    self._rebuild_child_paths(db, folder, set())
            except IntegrityError as exc:
                raise ConflictError(MSG_DUPLICATE) from exc

        logger.info("Folder updated id=%s path=%s", folder.id, folder.path)
        get_notifier().publish(ChangeEventEnum.FOLDER_UPDATED, folder_event_payload(folder, actor_id))
        return folder

    def _validate_move(
        self,
        db: Session,
        folder: Folder,
        parent_id: Optional[int],
        *,
        actor_id: int,
        actor_roles: list[str],
    ) -> Optional[Folder]:
        """校验移动目标并返回新的父目录（移动到分区根层级时为 ``None``）。"""
        new_parent: Optional[Folder] = None
        if parent_id is not None:
            new_parent = folder_crud.get(db, parent_id)
            if new_parent is None:
                raise NotFoundError(MSG_PARENT_NOT_FOUND)
            if self.is_ancestor(db, folder.id, new_parent.id):
                raise InvalidPlacementError(MSG_DESCENDANT)
            if new_parent.partition_id != folder.partition_id:
                raise InvalidPlacementError("Folders cannot be moved to a different system folder")

        partition_type = partition_service.type_of(folder.partition_id)
        require_placement(actor_roles, partition_type, PlacementOperationEnum.MOVE)
        if (
            partition_type is PartitionTypeEnum.MY_FOLDERS
            and new_parent is not None
            and new_parent.owner_id != actor_id
        ):
            raise AccessDeniedError("Cannot move folder to another user's folder")
        return new_parent

    def _rebuild_child_paths(self, db: Session, parent: Folder, visited: set[int]) -> None:
        """深度优先重建后代路径：child.path = parent.path + "/" + child.name。"""
        if parent.id in visited:
            return
        visited.add(parent.id)
        for child in folder_crud.list_children(db, parent.id):
            child.path = join_path(parent.path, child.name)
            db.add(child)
            self._rebuild_child_paths(db, child, visited)
        db.flush()

    # ----------------------------
    # 删除
    # ----------------------------
    def delete_folder(self, db: Session, folder_id: int, *, actor_id: int) -> None:
        """级联删除目录、后代目录、其中文件及全部版本；版本内容在提交后从 Blob 存储清除。"""
        with transaction(db):
            folder = folder_crud.get(db, folder_id, for_update=True)
            if folder is None:
                raise NotFoundError(MSG_FOLDER_NOT_FOUND)
            if partition_service.is_partition_root(db, folder.id):
                raise InvalidPlacementError("cannot delete system folder")
            if folder.owner_id != actor_id:
                raise AccessDeniedError(MSG_ACCESS_DENIED)

            payload = folder_event_payload(folder, actor_id)
            subtree_ids = self._collect_subtree_ids(db, folder.id)
            files = file_crud.list_in_folders(db, subtree_ids)
            versions = file_version_crud.list_for_files(db, [f.id for f in files])
            storage_keys = [v.storage_key for v in versions]

            for version in versions:
                db.delete(version)
            for file in files:
                db.delete(file)
            db.flush()
            # 单条语句删除整棵子树，parent_id 成环时也不会重复删除
            folder_crud.delete_many(db, subtree_ids)

        purge_blobs(storage_keys)
        logger.info(
            "Folder deleted id=%s path=%s (folders=%s files=%s versions=%s)",
            payload["folder"]["folderId"],
            payload["folder"]["path"],
            len(subtree_ids),
            len(files),
            len(storage_keys),
        )
        get_notifier().publish(ChangeEventEnum.FOLDER_DELETED, payload)

    def _collect_subtree_ids(self, db: Session, root_id: int) -> list[int]:
        """广度优先收集子树目录 ID（含根），带访问集合防止数据损坏导致的环。"""
        ordered: list[int] = []
        visited: set[int] = set()
        frontier = [root_id]
        while frontier:
            current = frontier.pop(0)
            if current in visited:
                continue
            visited.add(current)
            ordered.append(current)
            frontier.extend(folder_crud.list_child_ids(db, current))
        return ordered

    # ----------------------------
    # 工具方法
    # ----------------------------
    def _ensure_unique(
        self,
        db: Session,
        *,
        name: str,
        parent_id: Optional[int],
        partition_id: int,
        owner_id: int,
        exclude_id: Optional[int] = None,
    ) -> None:
        existing = folder_crud.find_sibling(
            db,
            name=name,
            parent_id=parent_id,
            partition_id=partition_id,
            owner_id=owner_id,
            exclude_id=exclude_id,
        )
        if existing is not None:
            raise ConflictError(MSG_DUPLICATE)

    @staticmethod
    def _type_value(partition_id: Optional[int]) -> Optional[str]:
        ptype = partition_service.type_of(partition_id)
        return ptype.value if ptype else None

    @staticmethod
    def serialize(folder: Folder) -> dict[str, Any]:
        return {
            "folderId": folder.id,
            "name": folder.name,
            "path": folder.path,
            "parentId": folder.parent_id,
            "ownerId": folder.owner_id,
            "systemFolderId": folder.partition_id,
            "permissions": folder.permissions,
            "createdAt": isoformat(folder.create_time),
            "updatedAt": isoformat(folder.update_time),
        }


folder_service = FolderService()
