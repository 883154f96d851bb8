from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from worklog_tracker.storage import (
    ActivityLog,
    ActivityLogStore,
    LogEntry,
    StoreCorruptError,
    StoreWriteError,
)
from worklog_tracker.storage.activity_log import COLUMNS


def make_entry(entry_id: str, *, day: date = date(2024, 3, 4), task: str = "ABC-1", hours: float = 0.25) -> LogEntry:
    return LogEntry(id=entry_id, date=day, task_id=task, repository="api", hours=hours)


def test_missing_log_is_empty(tmp_path: Path) -> None:
    assert len(ActivityLogStore(tmp_path / "log.csv").load()) == 0


def test_log_roundtrip_preserves_order(tmp_path: Path) -> None:
    store = ActivityLogStore(tmp_path / "log.csv")
    log = ActivityLog([make_entry("b"), make_entry("a", task="ABC-2", hours=1.5)])
    log.mark_synced(["a"])

    store.save(log)
    loaded = store.load()

    assert [entry.id for entry in loaded] == ["b", "a"]
    assert loaded.get("a").synced is True
    assert loaded.get("a").hours == 1.5
    lines = store.path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(COLUMNS)
    assert lines[1] == "2024-03-04,ABC-1,api,0.25,b,false"


def test_legacy_rows_get_stable_ids(tmp_path: Path) -> None:
    path = tmp_path / "log.csv"
    path.write_text(
        "date,taskId,repository,hours\n"
        "2024-03-04,ABC-1,api,0.25\n"
        "2024-03-04,ABC-1,api,0.25\n"
        "2024-03-05,ABC-2,web,0.5\n",
        encoding="utf-8",
    )
    store = ActivityLogStore(path)

    first = [entry.id for entry in store.load()]
    second = [entry.id for entry in store.load()]

    assert first == second
    assert len(set(first)) == 3
    assert all(entry_id.startswith("legacy-") for entry_id in first)

    store.save(store.load())
    assert [entry.id for entry in store.load()] == first


def test_invalid_rows_report_line_numbers(tmp_path: Path) -> None:
    path = tmp_path / "log.csv"
    path.write_text(
        "date,taskId,repository,hours,id,sentToJira\n"
        "2024-03-04,ABC-1,api,0.25,one,false\n"
        "2024-13-04,ABC-1,api,0.25,two,false\n"
        "2024-03-04,ABC-1,api\n"
        "2024-03-04,ABC-1,api,0.25,one,false\n",
        encoding="utf-8",
    )

    with pytest.raises(StoreCorruptError) as excinfo:
        ActivityLogStore(path).load()

    message = str(excinfo.value)
    assert "line 3:" in message
    assert "line 4: expected 6 columns" in message
    assert "line 5: duplicate entry id 'one'" in message


def test_missing_header_columns(tmp_path: Path) -> None:
    path = tmp_path / "log.csv"
    path.write_text("date,task,hours\n2024-03-04,ABC-1,1\n", encoding="utf-8")
    with pytest.raises(StoreCorruptError, match="Missing columns: taskId, repository"):
        ActivityLogStore(path).load()


def test_negative_hours_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "log.csv"
    path.write_text(
        "date,taskId,repository,hours,id,sentToJira\n2024-03-04,ABC-1,api,-1,x,false\n",
        encoding="utf-8",
    )
    with pytest.raises(StoreCorruptError, match="line 2"):
        ActivityLogStore(path).load()


def test_interrupted_write_keeps_previous_log(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = ActivityLogStore(tmp_path / "log.csv")
    store.save(ActivityLog([make_entry("one")]))
    before = store.path.read_text(encoding="utf-8")

    def fail_replace(src, dst):
        raise OSError("no space left on device")

    monkeypatch.setattr("worklog_tracker.storage.files.os.replace", fail_replace)

    with pytest.raises(StoreWriteError):
        store.save(ActivityLog([make_entry("one"), make_entry("two")]))

    assert store.path.read_text(encoding="utf-8") == before
    assert [p.name for p in tmp_path.iterdir()] == ["log.csv"]


def test_activity_log_rejects_duplicates() -> None:
    log = ActivityLog([make_entry("one")])
    assert log.add(make_entry("one", task="OTHER-1")) is False
    assert log.get("one").task_id == "ABC-1"
    with pytest.raises(ValueError):
        ActivityLog([make_entry("x"), make_entry("x")])


def test_mark_synced_counts_changes() -> None:
    log = ActivityLog([make_entry("one"), make_entry("two")])
    assert log.mark_synced(["one", "missing"]) == 1
    assert log.mark_synced(["one"]) == 0
    assert [entry.synced for entry in log] == [True, False]


def test_undecodable_log_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "log.csv"
    path.write_bytes(b"date,taskId,repository,hours\n2024-03-04,AB\xff-1,api,0.25\n")

    with pytest.raises(StoreCorruptError, match="not valid UTF-8"):
        ActivityLogStore(path).load()


def test_oversized_csv_field_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "log.csv"
    path.write_text(
        "date,taskId,repository,hours\n" + '2024-03-04,"' + "A" * 200_000 + '",api,0.25\n',
        encoding="utf-8",
    )

    with pytest.raises(StoreCorruptError, match="field larger than field limit"):
        ActivityLogStore(path).load()
