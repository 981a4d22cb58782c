"""日志配置模块：提供彩色输出能力并统一全局日志格式。

除请求 ID 外，还会把当前操作者（actor）写入每条日志记录，
便于按用户追踪目录/文件的变更轨迹。
"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

from .config import get_settings

LOGGER_NAME = "filehub"

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_actor_id_ctx: ContextVar[Optional[int]] = ContextVar("actor_id", default=None)


class _TZFormatter(logging.Formatter):
    """按配置时区渲染时间戳，未提供 datefmt 时输出毫秒精度的 ISO-8601。"""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        dt = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_TZFormatter):
    """ANSI 彩色格式化器：根据不同日志级别渲染不同颜色，便于快速辨识。"""

    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(
        self,
        fmt: str,
        datefmt: Optional[str] = None,
        style: str = "%",
        use_colors: Optional[bool] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{message}{self.RESET}" if color else message


class JsonFormatter(_TZFormatter):
    """结构化 JSON 日志，便于采集端解析。"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            "actor_id": getattr(record, "actor_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """把上下文变量中的 request_id/actor_id 注入每条 LogRecord。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.actor_id = _actor_id_ctx.get()
        return True


_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [actor=%(actor_id)s] %(message)s"


def setup_logging() -> None:
    """初始化日志系统，确保项目所有模块使用统一的输出格式与级别。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)

    console_formatter = "json" if settings.log_json else "standard"
    file_formatter = "json" if settings.log_json else "plain"
    handlers = ["default", "file"]

    def _logger_section() -> dict:
        return {"handlers": handlers, "level": settings.log_level, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "()": "filehub.packages.drive.core.logger.ColorFormatter",
                    "fmt": _TEXT_FORMAT,
                },
                "plain": {"()": "filehub.packages.drive.core.logger._TZFormatter", "fmt": _TEXT_FORMAT},
                "json": {"()": "filehub.packages.drive.core.logger.JsonFormatter"},
            },
            "filters": {
                "context": {"()": "filehub.packages.drive.core.logger.ContextFilter"},
            },
            "handlers": {
                "default": {
                    "level": settings.log_level,
                    "class": "logging.StreamHandler",
                    "formatter": console_formatter,
                    "filters": ["context"],
                },
                "file": {
                    "level": settings.log_level,
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": file_formatter,
                    "filename": str(settings.log_file_path),
                    "when": "midnight",
                    "backupCount": 14,
                    "encoding": "utf-8",
                    "delay": True,
                    "filters": ["context"],
                },
            },
            "loggers": {
                "uvicorn": _logger_section(),
                "uvicorn.error": _logger_section(),
                "uvicorn.access": _logger_section(),
                LOGGER_NAME: _logger_section(),
            },
            "root": {"handlers": handlers, "level": settings.log_level},
        }
    )


logger = logging.getLogger(LOGGER_NAME)


def get_logger(component: str) -> logging.Logger:
    """返回 ``filehub.<component>`` 子日志器，继承全局配置。"""
    return logger.getChild(component)


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def set_actor_id(actor_id: Optional[int]) -> None:
    _actor_id_ctx.set(actor_id)
