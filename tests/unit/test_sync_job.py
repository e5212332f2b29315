from __future__ import annotations

from apps.worker_sync import main as worker_main
from attendance_sync.common.config import get_settings
from attendance_sync.domain.enums import SyncPassStatus
from attendance_sync.jobs import sync_job
from attendance_sync.remote.memory import InMemoryBackend, InMemoryGateway
from attendance_sync.services.offline_sync import build_offline_sync
from attendance_sync.storage.kv import MemoryKeyValueStorage


def _sync(connected: bool = True):
    return build_offline_sync(
        storage=MemoryKeyValueStorage(),
        gateway=InMemoryGateway(),
        backend=InMemoryBackend(),
        initially_connected=connected,
    )


def test_sync_job_skips_when_disabled(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "sync_enabled", False)
    assert sync_job.run(_sync()) is None


def test_sync_job_skips_when_offline(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "sync_enabled", True)
    sync = _sync(connected=False)
    sync.enqueue("attendance", {"studentId": "ST-001", "scanId": "s1"})
    assert sync_job.run(sync) is None
    assert sync.queue_length() == 1


def test_sync_job_drains_queue(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "sync_enabled", True)
    sync = _sync()
    sync.enqueue("attendance", {"studentId": "ST-001", "scanId": "s1"})

    result = sync_job.run(sync)

    assert result is not None
    assert result.status == SyncPassStatus.completed
    assert sync.queue_length() == 0


def test_worker_tick_logs_and_survives_errors(monkeypatch) -> None:
    def _boom(sync):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(worker_main, "run_sync", _boom)
    worker_main.tick(_sync())
