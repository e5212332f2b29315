"""
Источники триггеров синхронизации.

- восстановление сети (переход offline -> online)
- выход приложения на передний план
- ручной запуск / интервал воркера

Сами события платформы — забота хост-приложения; сюда оно только сообщает
о них.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from attendance_sync.common.logging import get_sync_logger
from attendance_sync.domain.enums import TriggerSource

log = get_sync_logger()

TriggerFn = Callable[[TriggerSource], object]


class ConnectivityMonitor:
    """
    Состояние сети устройства. Sync запускается только на переходе в online;
    повторные "online" без смены состояния ничего не делают.
    """

    def __init__(self, trigger: TriggerFn, *, initially_connected: bool = True) -> None:
        self._trigger = trigger
        self._connected = bool(initially_connected)
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def update(self, connected: bool) -> object | None:
        with self._lock:
            was_connected = self._connected
            self._connected = bool(connected)
        if not connected:
            if was_connected:
                log.info("network_offline")
            return None
        if was_connected:
            return None
        log.info("network_restored_starting_sync")
        return self._trigger(TriggerSource.network_restored)

    def app_foregrounded(self) -> object | None:
        if not self._connected:
            log.info("app_foreground_sync_skipped", extra={"payload": {"reason": "offline"}})
            return None
        return self._trigger(TriggerSource.app_foreground)
