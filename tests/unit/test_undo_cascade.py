from __future__ import annotations

import pytest

from attendance_sync.common.errors import PartialCascadeFailure, TransientNetworkError, ValidationError
from attendance_sync.contracts.documents import (
    PARENT_ALERTS,
    PARENT_STUDENT_LINKS,
    STUDENT_ALERTS,
    scans_collection,
)
from attendance_sync.contracts.tasks import UndoAttendanceScanPayload
from attendance_sync.handlers.base import HandlerContext
from attendance_sync.handlers.undo_scan import handle_undo_attendance_scan, undo_attendance_scan
from attendance_sync.remote.memory import InMemoryBackend, InMemoryGateway


def _alert(scan_id: str, student_id: str, type_: str = "attendance_scan") -> dict:
    return {"type": type_, "scanId": scan_id, "studentId": student_id}


def _seed(gw: InMemoryGateway) -> None:
    gw.seed(
        scans_collection("ST-001"),
        "s1",
        {"entry": "IN", "timeOfScanned": "2026-10-18T08:00:00+00:00", "scanLocation": "Gate A"},
    )
    gw.seed(
        PARENT_STUDENT_LINKS,
        "l1",
        {"parentId": "P-1", "studentId": "u1", "studentIdNumber": "ST-001", "status": "active"},
    )
    gw.seed(
        PARENT_STUDENT_LINKS,
        "l2",
        {"parentId": "P-2", "studentId": "u1", "studentIdNumber": "", "status": "active"},
    )
    gw.seed(
        PARENT_STUDENT_LINKS,
        "l3",
        {"parentId": "P-3", "studentId": "u9", "studentIdNumber": "ST-009", "status": "active"},
    )
    gw.seed(PARENT_ALERTS, "P-1", {"items": [_alert("s1", "ST-001"), _alert("s0", "ST-001")]})
    gw.seed(PARENT_ALERTS, "P-2", {"items": [_alert("s1", "ST-001")]})
    gw.seed(PARENT_ALERTS, "P-3", {"items": [_alert("s1", "ST-009")]})
    gw.seed(STUDENT_ALERTS, "ST-001", {"items": [_alert("s1", "ST-001")], "unread": 3})


def _undo(uid: str | None = "u1") -> UndoAttendanceScanPayload:
    return UndoAttendanceScanPayload(scan_id="s1", student_id="ST-001", uid=uid)


def test_fan_out_removes_item_from_every_linked_feed() -> None:
    gw = InMemoryGateway()
    _seed(gw)

    report = undo_attendance_scan(gw, _undo())

    assert report.scan_deleted is True
    assert gw.get(scans_collection("ST-001"), "s1") is None
    assert report.parents_discovered == ["P-1", "P-2"]
    assert gw.get(PARENT_ALERTS, "P-1")["items"] == [_alert("s0", "ST-001")]
    assert gw.get(PARENT_ALERTS, "P-2")["items"] == []
    assert gw.get(PARENT_ALERTS, "P-3")["items"] == [_alert("s1", "ST-009")]
    student_feed = gw.get(STUDENT_ALERTS, "ST-001")
    assert student_feed["items"] == []
    # merge-запись не трогает прочие поля документа
    assert student_feed["unread"] == 3


def test_uid_links_are_missed_without_uid() -> None:
    gw = InMemoryGateway()
    _seed(gw)

    report = undo_attendance_scan(gw, _undo(uid=None))

    assert report.parents_discovered == ["P-1"]
    assert gw.get(PARENT_ALERTS, "P-2")["items"] == [_alert("s1", "ST-001")]


def test_compound_key_keeps_other_students_items() -> None:
    gw = InMemoryGateway()
    _seed(gw)
    gw.seed(
        PARENT_ALERTS,
        "P-1",
        {
            "items": [
                _alert("s1", "ST-001"),
                _alert("s1", "ST-002"),
                _alert("s1", "ST-001", type_="announcement"),
            ]
        },
    )

    undo_attendance_scan(gw, _undo())

    assert gw.get(PARENT_ALERTS, "P-1")["items"] == [
        _alert("s1", "ST-002"),
        _alert("s1", "ST-001", type_="announcement"),
    ]


def test_second_run_is_a_noop() -> None:
    gw = InMemoryGateway()
    _seed(gw)

    undo_attendance_scan(gw, _undo())
    after_first = {c: dict(docs) for c, docs in gw.collections.items()}
    report = undo_attendance_scan(gw, _undo())

    assert gw.collections == after_first
    assert report.scan_deleted is True
    assert report.feeds_rewritten == []


def test_inactive_and_non_canonical_links_are_ignored() -> None:
    gw = InMemoryGateway()
    _seed(gw)
    gw.seed(
        PARENT_STUDENT_LINKS,
        "l4",
        {"parentId": "P-4", "studentIdNumber": "ST-001", "status": "pending"},
    )
    gw.seed(
        PARENT_STUDENT_LINKS,
        "l5",
        {"parentId": "rawuid42", "studentIdNumber": "ST-001", "status": "active"},
    )
    gw.seed(PARENT_ALERTS, "P-4", {"items": [_alert("s1", "ST-001")]})

    report = undo_attendance_scan(gw, _undo())

    assert "P-4" not in report.parents_discovered
    assert "rawuid42" not in report.parents_discovered
    assert gw.get(PARENT_ALERTS, "P-4")["items"] == [_alert("s1", "ST-001")]


def test_missing_feed_documents_are_not_created() -> None:
    gw = InMemoryGateway()
    gw.seed(
        PARENT_STUDENT_LINKS,
        "l1",
        {"parentId": "P-1", "studentIdNumber": "ST-001", "status": "active"},
    )

    undo_attendance_scan(gw, _undo())

    assert gw.get(PARENT_ALERTS, "P-1") is None
    assert gw.get(STUDENT_ALERTS, "ST-001") is None


class _FlakyGateway(InMemoryGateway):
    def __init__(self, fail_on: set[tuple[str, str, str]]) -> None:
        super().__init__()
        self.fail_on = fail_on

    def get(self, collection, key):
        if ("get", collection, key) in self.fail_on:
            raise TransientNetworkError("timeout")
        return super().get(collection, key)

    def delete(self, collection, key):
        if ("delete", collection, key) in self.fail_on:
            raise TransientNetworkError("timeout")
        return super().delete(collection, key)


def test_one_parent_failure_does_not_block_others() -> None:
    gw = _FlakyGateway({("get", PARENT_ALERTS, "P-1")})
    _seed(gw)

    with pytest.raises(PartialCascadeFailure) as exc:
        undo_attendance_scan(gw, _undo())

    assert [s["target"] for s in exc.value.failed_steps] == ["P-1"]
    assert exc.value.transient is True
    assert gw.get(scans_collection("ST-001"), "s1") is None
    assert gw.get(PARENT_ALERTS, "P-2")["items"] == []
    assert gw.get(STUDENT_ALERTS, "ST-001")["items"] == []

    # повтор после восстановления доводит откат до конца
    gw.fail_on.clear()
    undo_attendance_scan(gw, _undo())
    assert gw.get(PARENT_ALERTS, "P-1")["items"] == [_alert("s0", "ST-001")]


def test_scan_delete_failure_still_cleans_feeds() -> None:
    gw = _FlakyGateway({("delete", scans_collection("ST-001"), "s1")})
    _seed(gw)

    with pytest.raises(PartialCascadeFailure) as exc:
        undo_attendance_scan(gw, _undo())

    assert exc.value.failed_steps[0]["step"] == "delete_scan"
    assert gw.get(scans_collection("ST-001"), "s1") is not None
    assert gw.get(PARENT_ALERTS, "P-2")["items"] == []


def test_handler_rejects_payload_without_ids() -> None:
    ctx = HandlerContext(gateway=InMemoryGateway(), backend=InMemoryBackend())
    with pytest.raises(ValidationError):
        handle_undo_attendance_scan({"scanId": "s1"}, ctx)


def test_handler_accepts_actor_uid_alias() -> None:
    gw = InMemoryGateway()
    _seed(gw)
    ctx = HandlerContext(gateway=gw, backend=InMemoryBackend())

    report = handle_undo_attendance_scan(
        {"scanId": "s1", "studentId": "ST-001", "actorUid": "u1"}, ctx
    )

    assert report.parents_discovered == ["P-1", "P-2"]
