"""
Логирование проекта.

- логирование в stdout (JSON по умолчанию, text для локальной отладки)
- сообщения = имена событий, детали в extra={"payload": {...}}
- контекст прохода синхронизации (pass_id, source, task_id, task_type)
  попадает в каждую строку поля "sync", включая логи обработчиков
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from attendance_sync.common.config import get_settings

_SYNC_CONTEXT: ContextVar[dict[str, Any] | None] = ContextVar("attendance_sync_context", default=None)


@contextmanager
def sync_context(**fields: Any) -> Iterator[None]:
    """
    Вложенный контекст: поля внешнего уровня (проход) сохраняются,
    внутренний уровень (задача) добавляет свои.
    """
    current = dict(_SYNC_CONTEXT.get() or {})
    current.update({k: v for k, v in fields.items() if v is not None})
    token = _SYNC_CONTEXT.set(current)
    try:
        yield
    finally:
        _SYNC_CONTEXT.reset(token)


def current_sync_context() -> dict[str, Any]:
    return dict(_SYNC_CONTEXT.get() or {})


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        extra_payload = getattr(record, "payload", None)
        if isinstance(extra_payload, dict):
            payload["payload"] = extra_payload
        sync_ctx = current_sync_context()
        if sync_ctx:
            payload["sync"] = sync_ctx
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_formatter() -> logging.Formatter:
    s = get_settings()
    if (s.log_format or "").lower() == "text":
        return logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    return JsonFormatter()


def setup_logging() -> None:
    s = get_settings()
    root = logging.getLogger()
    level = getattr(logging, (s.log_level or "INFO").upper(), logging.INFO)
    root.setLevel(level)

    # Не плодим хэндлеры при повторном вызове
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter())
    root.addHandler(handler)

    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))


def get_project_logger(name: str = "attendance-sync") -> logging.Logger:
    return logging.getLogger(name)


def get_sync_logger() -> logging.Logger:
    """
    Отдельный логгер для прохода синхронизации (удобно фильтровать).
    """
    return logging.getLogger("attendance-sync.sync")
