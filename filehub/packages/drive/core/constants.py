"""常量定义：集中维护系统分区、HTTP 状态码与命名规则等固定取值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_CREATED = 201
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422

# 系统分区的稳定主键，作为逻辑根锚点使用
GENERAL_PARTITION_ID = 1
MY_FOLDERS_PARTITION_ID = 2
SHARED_WITH_ME_PARTITION_ID = 3

GENERAL_PARTITION_NAME = "General"
MY_FOLDERS_PARTITION_NAME = "My Folders"
SHARED_WITH_ME_PARTITION_NAME = "Shared With Me"

# 角色层级：数值越大权限越高，admin 及以上视为“管理员”
ROLE_LEVELS = {
    "member": 1,
    "admin": 2,
    "super_admin": 3,
}
ADMIN_ROLE_LEVEL = ROLE_LEVELS["admin"]
DEFAULT_MEMBER_ROLE = "member"

PERMISSIONS_PATTERN = r"^[0-7]{3}$"
MAX_NAME_LENGTH = 255
PATH_SEPARATOR = "/"

# 并发上传同名文件时，版本号冲突的最大重试次数
VERSION_CONFLICT_RETRIES = 3

ACTOR_HEADER = "X-User-Id"


class _Unset:
    """部分更新时区分“未提供”与显式的 ``None``。"""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()
