"""
Sync job (интервальный триггер).

Назначение:
- периодически прогонять локальную очередь, даже если событие сети потерялось
- обновлять метрики глубины очереди / dead-letter
"""

from __future__ import annotations

from attendance_sync.common.config import get_settings
from attendance_sync.common.errors import StorageError
from attendance_sync.common.logging import get_project_logger
from attendance_sync.common.metrics import set_queue_depth
from attendance_sync.common.utils import short_err
from attendance_sync.domain.enums import TriggerSource
from attendance_sync.services.offline_sync import OfflineSync
from attendance_sync.sync.processor import SyncPassResult

log = get_project_logger()


def _refresh_depth(sync: OfflineSync) -> None:
    try:
        set_queue_depth(queue=sync.queue_length(), dlq=len(sync.dead_letters()))
    except StorageError as e:
        log.warning("sync_job_depth_refresh_failed", extra={"payload": {"err": short_err(e)}})


def run(sync: OfflineSync) -> SyncPassResult | None:
    settings = get_settings()
    if not settings.sync_enabled:
        log.info("sync_job_skipped", extra={"payload": {"reason": "disabled"}})
        return None
    if not sync.is_online:
        log.info("sync_job_skipped", extra={"payload": {"reason": "offline"}})
        return None

    result = sync.trigger_sync(TriggerSource.interval)
    _refresh_depth(sync)
    log.info("sync_job_finished", extra={"payload": result.to_dict()})
    return result
