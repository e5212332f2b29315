from attendance_sync.contracts.documents import PARENT_ALERTS, PARENT_STUDENT_LINKS, STUDENT_ALERTS, scans_collection
from attendance_sync.domain.enums import SyncPassStatus
from attendance_sync.remote.memory import InMemoryBackend, InMemoryGateway
from attendance_sync.services.offline_sync import build_offline_sync
from attendance_sync.storage.kv import SqlKeyValueStorage


def test_queued_undo_survives_process_restart(tmp_path):
    dsn = f"sqlite:///{tmp_path / 'device' / 'offline_sync.db'}"
    gw = InMemoryGateway()
    item = {"type": "attendance_scan", "scanId": "s1", "studentId": "ST-001"}
    gw.seed(scans_collection("ST-001"), "s1", {"entry": "OUT", "scannerDeviceId": "gate-2"})
    gw.seed(PARENT_STUDENT_LINKS, "l1", {"parentId": "P-1", "studentIdNumber": "ST-001", "status": "active"})
    gw.seed(PARENT_ALERTS, "P-1", {"items": [item]})
    gw.seed(STUDENT_ALERTS, "ST-001", {"items": [item]})

    # первый "запуск": офлайн, задача только ставится в очередь
    before = build_offline_sync(
        storage=SqlKeyValueStorage.from_dsn(dsn),
        gateway=gw,
        backend=InMemoryBackend(),
        initially_connected=False,
    )
    task = before.enqueue(
        {"type": "undo_attendance_scan", "payload": {"scanId": "s1", "studentId": "ST-001", "uid": "u1"}}
    )
    del before

    # второй "запуск": новый объект поверх того же файла
    after = build_offline_sync(
        storage=SqlKeyValueStorage.from_dsn(dsn),
        gateway=gw,
        backend=InMemoryBackend(),
    )
    assert [r["id"] for r in after.get_queue()] == [task.id]

    result = after.trigger_sync()

    assert result.status == SyncPassStatus.completed
    assert result.to_dict()["processedCount"] == 1
    assert result.to_dict()["failedCount"] == 0
    assert gw.get(scans_collection("ST-001"), "s1") is None
    assert gw.get(PARENT_ALERTS, "P-1")["items"] == []
    assert gw.get(STUDENT_ALERTS, "ST-001")["items"] == []
    assert after.queue_length() == 0
