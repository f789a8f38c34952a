from __future__ import annotations

from chaos_rig.activity_log import MAX_LOG_ENTRIES, ActivityLog
from chaos_rig.models import ActivityLogEntry


def _entry(index: int) -> ActivityLogEntry:
    return ActivityLogEntry(timestamp=index, method="POST", path="/mcp", rpc_id=index)


def test_entries_are_oldest_first() -> None:
    log = ActivityLog()
    for index in range(3):
        log.append(_entry(index))
    assert [entry.rpc_id for entry in log.entries()] == [0, 1, 2]


def test_oldest_entries_are_evicted() -> None:
    log = ActivityLog(max_entries=5)
    for index in range(8):
        log.append(_entry(index))
    assert len(log) == 5
    assert [entry.rpc_id for entry in log.entries()] == [3, 4, 5, 6, 7]


def test_default_bound() -> None:
    assert ActivityLog().max_entries == MAX_LOG_ENTRIES == 200


def test_entries_returns_a_copy() -> None:
    log = ActivityLog()
    log.append(_entry(1))
    snapshot = log.entries()
    log.append(_entry(2))
    assert len(snapshot) == 1


def test_clear() -> None:
    log = ActivityLog()
    log.append(_entry(1))
    log.clear()
    assert log.entries() == []
