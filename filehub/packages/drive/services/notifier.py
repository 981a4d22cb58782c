"""变更通知适配层：把已提交的目录/文件变更转换为对外事件。

- ``Notifier``：出站端口，``publish`` 永不抛出异常（通知为尽力而为）；
- ``InMemoryNotifier``：进程内记录事件并同步分发给订阅者，用于测试或缺少 Redis 时回退；
- ``RedisNotifier``：通过 Redis PUBLISH 推送 JSON 事件；
- ``QueuedNotifier``：有界队列 + 后台线程，调用方只负责入队。
"""

from __future__ import annotations

import json
import queue
import threading
from collections import deque
from typing import Any, Callable, Optional

import redis

from filehub.packages.drive.core.config import get_settings
from filehub.packages.drive.core.enums import ChangeEventEnum
from filehub.packages.drive.core.logger import get_logger

logger = get_logger("notifier")

Subscriber = Callable[[str, dict[str, Any]], None]


def folder_event_payload(folder: Any, user_id: int) -> dict[str, Any]:
    return {
        "userId": user_id,
        "folder": {
            "folderId": folder.id,
            "name": folder.name,
            "parentId": folder.parent_id,
            "systemFolderId": folder.partition_id,
            "path": folder.path,
        },
    }


def file_event_payload(file: Any, user_id: int) -> dict[str, Any]:
    folder = getattr(file, "folder", None)
    folder_path = getattr(folder, "path", None)
    return {
        "userId": user_id,
        "file": {
            "fileId": file.id,
            "name": file.name,
            "folderId": file.folder_id,
            "systemFolderId": getattr(folder, "partition_id", None),
            "path": f"{folder_path}/{file.name}" if folder_path else file.name,
            "size": int(file.size or 0),
            "mimeType": file.mime_type,
        },
    }


class Notifier:
    """通知端口基类：实现 ``_deliver``，本地订阅者由基类统一分发。"""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Subscriber) -> None:
        with self._lock:
            if handler not in self._subscribers:
                self._subscribers.append(handler)

    def unsubscribe(self, handler: Subscriber) -> None:
        with self._lock:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

    def publish(self, event_kind: ChangeEventEnum | str, payload: dict[str, Any]) -> None:
        kind = event_kind.value if isinstance(event_kind, ChangeEventEnum) else str(event_kind)
        try:
            self._deliver(kind, payload)
        except Exception:
            logger.warning("Failed to deliver event %s", kind, exc_info=True)
        self._dispatch_local(kind, payload)

    def _deliver(self, event_kind: str, payload: dict[str, Any]) -> None:  # pragma: no cover - interface definition
        raise NotImplementedError

    def _dispatch_local(self, event_kind: str, payload: dict[str, Any]) -> None:
        with self._lock:
            handlers = list(self._subscribers)
        for handler in handlers:
            try:
                handler(event_kind, payload)
            except Exception:
                logger.warning("Event handler %r failed for %s", handler, event_kind, exc_info=True)

    def close(self) -> None:
        """释放后台资源，默认无操作。"""


class InMemoryNotifier(Notifier):
    def __init__(self, max_events: int = 1000) -> None:
        super().__init__()
        self._events: deque[tuple[str, dict[str, Any]]] = deque(maxlen=max_events)

    def _deliver(self, event_kind: str, payload: dict[str, Any]) -> None:
        self._events.append((event_kind, payload))

    @property
    def events(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self._events)

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self._events]

    def clear(self) -> None:
        self._events.clear()


class RedisNotifier(Notifier):
    """每类事件发布到 ``{prefix}:{event_kind}`` 频道。"""

    def __init__(self, url: str, *, channel_prefix: str = "filehub") -> None:
        super().__init__()
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._client.ping()
        self.channel_prefix = channel_prefix

    def _deliver(self, event_kind: str, payload: dict[str, Any]) -> None:
        message = json.dumps({"event": event_kind, "payload": payload}, ensure_ascii=False, default=str)
        self._client.publish(f"{self.channel_prefix}:{event_kind}", message)


class QueuedNotifier(Notifier):
    """有界队列包装：``publish`` 只入队，后台线程调用内部通知器投递。

    队列已满时丢弃事件并记录告警，不阻塞调用方。
    """

    _STOP = object()

    def __init__(self, inner: Notifier, *, maxsize: int = 1000) -> None:
        super().__init__()
        self.inner = inner
        self._queue: queue.Queue = queue.Queue(maxsize=max(maxsize, 1))
        self._worker = threading.Thread(target=self._run, name="filehub-notifier", daemon=True)
        self._worker.start()

    def subscribe(self, handler: Subscriber) -> None:
        self.inner.subscribe(handler)

    def unsubscribe(self, handler: Subscriber) -> None:
        self.inner.unsubscribe(handler)

    def publish(self, event_kind: ChangeEventEnum | str, payload: dict[str, Any]) -> None:
        kind = event_kind.value if isinstance(event_kind, ChangeEventEnum) else str(event_kind)
        try:
            self._queue.put_nowait((kind, payload))
        except queue.Full:
            logger.warning("Notifier queue full, dropping event %s", kind)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                kind, payload = item
                self.inner.publish(kind, payload)
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """阻塞直到已入队事件全部投递完毕。"""
        self._queue.join()

    def close(self) -> None:
        self._queue.put(self._STOP)
        self._worker.join(timeout=5)
        self.inner.close()


_notifier: Optional[Notifier] = None


def _build_notifier() -> Notifier:
    settings = get_settings()
    backend = (settings.notifier_backend or "memory").strip().lower()
    if backend == "redis":
        try:
            inner = RedisNotifier(settings.redis_url, channel_prefix=settings.notifier_channel_prefix)
            logger.info("Change notifier publishing to Redis at %s", settings.redis_url)
            return QueuedNotifier(inner, maxsize=settings.notifier_queue_size)
        except Exception as exc:  # pragma: no cover - fallback path
            logger.warning("Redis unavailable (%s), falling back to in-memory notifier", exc)
    return InMemoryNotifier()


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = _build_notifier()
    return _notifier


def set_notifier(notifier: Optional[Notifier]) -> None:
    """替换进程级通知器（测试或自定义部署时使用）。"""
    global _notifier
    _notifier = notifier
