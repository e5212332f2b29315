"""
Worker Sync.

Назначение:
- периодически запускать sync_job
- отдавать метрики Prometheus на METRICS_PORT
"""

from __future__ import annotations

import time

from attendance_sync.common.config import get_settings
from attendance_sync.common.logging import get_project_logger, setup_logging
from attendance_sync.common.metrics import start_metrics_server
from attendance_sync.jobs.sync_job import run as run_sync
from attendance_sync.services.offline_sync import OfflineSync, build_offline_sync

log = get_project_logger()


def tick(sync: OfflineSync) -> None:
    try:
        run_sync(sync)
    except Exception as e:
        log.error("worker_sync_error", extra={"payload": {"err": str(e)[:300]}})


def main() -> None:
    setup_logging()
    settings = get_settings()
    interval_sec = max(5, int(settings.sync_interval_sec))
    metrics_enabled = start_metrics_server(int(settings.metrics_port))
    sync = build_offline_sync(settings)

    log.info(
        "worker_sync_started",
        extra={
            "payload": {
                "enabled": bool(settings.sync_enabled),
                "interval_sec": interval_sec,
                "queue_storage": settings.queue_storage,
                "metrics": metrics_enabled,
            }
        },
    )

    while True:
        tick(sync)
        time.sleep(interval_sec)


if __name__ == "__main__":
    main()
