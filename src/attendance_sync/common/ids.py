"""
Генерация идентификаторов.

Назначение:
- task_id для задач локальной очереди
- стабильный id для записей старого формата (без поля id)
"""

from __future__ import annotations

import json
import secrets
from datetime import UTC, datetime
from typing import Any

from .utils import sha256_hex


def new_task_id(prefix: str = "task") -> str:
    """
    Идентификатор задачи (уникален в пределах очереди устройства).
    Формат: <prefix>_<UTCYYYYMMDDHHMMSS>_<rand>
    """
    ts = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    rnd = secrets.token_hex(6)
    return f"{prefix}_{ts}_{rnd}"


def content_task_id(record: dict[str, Any], prefix: str = "legacy") -> str:
    """
    Детерминированный id по содержимому записи.
    Одна и та же запись после перезапуска получает тот же id.
    """
    raw = json.dumps(record, sort_keys=True, ensure_ascii=False, default=str)
    return f"{prefix}_{sha256_hex(raw.encode('utf-8'))[:24]}"
