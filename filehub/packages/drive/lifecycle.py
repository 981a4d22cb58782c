"""应用生命周期钩子：启动时挂载站内通知订阅，关闭时释放通知器资源。"""

from filehub.packages.drive.core.logger import get_logger
from filehub.packages.drive.services.notification_service import notification_service
from filehub.packages.drive.services.notifier import get_notifier, set_notifier

logger = get_logger("lifecycle")


def on_startup() -> None:
    notifier = get_notifier()
    notification_service.register(notifier)
    logger.info("Change notifier ready: %s", type(notifier).__name__)


def on_shutdown() -> None:
    notifier = get_notifier()
    try:
        notifier.close()
    except Exception:
        logger.warning("Failed to close change notifier", exc_info=True)
    set_notifier(None)
