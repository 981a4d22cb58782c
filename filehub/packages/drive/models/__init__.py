"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from filehub.packages.drive.models.file import File
from filehub.packages.drive.models.file_version import FileVersion
from filehub.packages.drive.models.folder import Folder
from filehub.packages.drive.models.notification import Notification
from filehub.packages.drive.models.partition import Partition
from filehub.packages.drive.models.role import Role
from filehub.packages.drive.models.user import User

__all__ = [
    "File",
    "FileVersion",
    "Folder",
    "Notification",
    "Partition",
    "Role",
    "User",
]
