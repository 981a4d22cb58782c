"""枚举定义：约束分区类型、放置操作、角色与变更事件的可选值。"""

from enum import Enum


class PartitionTypeEnum(str, Enum):
    GENERAL = "GENERAL"
    MY_FOLDERS = "MY_FOLDERS"
    SHARED_WITH_ME = "SHARED_WITH_ME"


class PlacementOperationEnum(str, Enum):
    """需要经过放置策略校验的写操作。"""

    CREATE = "create"
    MOVE = "move"
    UPLOAD = "upload"


class RoleEnum(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class ChangeEventEnum(str, Enum):
    """提交成功后对外发布的变更事件类型。"""

    FOLDER_CREATED = "folder.created"
    FOLDER_UPDATED = "folder.updated"
    FOLDER_DELETED = "folder.deleted"
    FILE_CREATED = "file.created"
    FILE_UPDATED = "file.updated"
    FILE_DELETED = "file.deleted"


class NotificationTypeEnum(str, Enum):
    FOLDER_CREATED = "folder_created"
    FOLDER_UPDATED = "folder_updated"
    FOLDER_DELETED = "folder_deleted"
    FILE_UPLOADED = "file_uploaded"
    FILE_UPDATED = "file_updated"
    FILE_DELETED = "file_deleted"
