"""
Общие типы обработчиков задач.

Обработчик: handler(payload, ctx) -> None, ошибка = исключение.
Обработчики обязаны быть идемпотентными: повторный запуск после частичного
выполнения сходится к тому же конечному состоянию.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from attendance_sync.remote.base import BackendApi, RemoteGateway


@dataclass
class HandlerContext:
    gateway: RemoteGateway
    backend: BackendApi


TaskHandler = Callable[[dict[str, Any], HandlerContext], Any]
