"""test_store.py — Tests for timetrack_shared.store against the in-memory table."""

from __future__ import annotations

import pytest

from timetrack_shared.records import build_record, validate_time_record_payload
from timetrack_shared.store import StoreError, latest_copy

OWNER = "store-owner"


def _item(date="2024-03-01", project="P", record_id=None, now=None):
    result = validate_time_record_payload(
        {
            "project": project,
            "startTime": f"{date}T09:00:00Z",
            "endTime": f"{date}T10:00:00Z",
            "date": date,
        }
    )
    return build_record(OWNER, result.record, record_id=record_id, now=now)


def test_put_refuses_existing_key(store):
    item = _item(record_id="r1")
    store.put_record(item)
    with pytest.raises(StoreError):
        store.put_record(item)


def test_query_records_is_newest_first_and_pages(store):
    for day in range(1, 6):
        store.put_record(_item(date=f"2024-03-{day:02d}"))

    first = store.query_records(OWNER, limit=3)
    assert [r["date"] for r in first.items] == ["2024-03-05", "2024-03-04", "2024-03-03"]
    assert first.has_more

    rest = store.query_records(OWNER, limit=3, start_key=first.last_evaluated_key)
    assert [r["date"] for r in rest.items] == ["2024-03-02", "2024-03-01"]
    assert not rest.has_more


def test_date_range_is_inclusive(store):
    for day in (1, 2, 3, 4):
        store.put_record(_item(date=f"2024-03-{day:02d}"))

    page = store.query_records(OWNER, start_date="2024-03-02", end_date="2024-03-03")
    assert sorted(r["date"] for r in page.items) == ["2024-03-02", "2024-03-03"]


def test_iter_records_follows_every_page(store):
    for day in range(1, 8):
        store.put_record(_item(date=f"2024-03-{day:02d}"))

    pages = list(store.iter_record_pages(OWNER, page_size=3))
    assert [len(p.items) for p in pages] == [3, 3, 1]
    assert sum(1 for _ in store.iter_records(OWNER)) == 7


def test_iter_record_pages_can_resume(store):
    for day in range(1, 6):
        store.put_record(_item(date=f"2024-03-{day:02d}"))

    first = next(iter(store.iter_record_pages(OWNER, page_size=2)))
    resumed = list(store.iter_record_pages(OWNER, page_size=2, start_key=first.last_evaluated_key))
    assert [r["date"] for p in resumed for r in p.items] == ["2024-03-03", "2024-03-04", "2024-03-05"]


def test_find_copies_filters_by_record_id(store):
    for day in range(1, 4):
        store.put_record(_item(date=f"2024-03-{day:02d}"))
    target = store.put_record(_item(date="2024-03-09", record_id="target"))

    copies = store.find_copies(OWNER, "target")
    assert [c["SK"] for c in copies] == [target["SK"]]
    assert store.find_copies(OWNER, "missing") == []


def test_update_in_place_keeps_key(store):
    original = store.put_record(_item(record_id="r1", project="Old", now="2024-03-01T00:00:00.000Z"))
    changed = _item(record_id="r1", project="New", now="2024-03-02T00:00:00.000Z")

    saved = store.save_update([original], changed)

    assert saved["project"] == "New"
    assert saved["GSI1PK"] == "PROJECT#New"
    assert saved["SK"] == original["SK"]


def test_move_then_repeat_converges(store, fake_ddb):
    original = store.put_record(_item(date="2024-03-01", record_id="r1", now="2024-03-01T00:00:00.000Z"))
    moved = _item(date="2024-03-10", record_id="r1", now="2024-03-02T00:00:00.000Z")

    fake_ddb.fail_after["delete_item"] = 0
    with pytest.raises(StoreError):
        store.save_update([original], moved)
    copies = store.find_copies(OWNER, "r1")
    assert len(copies) == 2
    assert latest_copy(copies)["date"] == "2024-03-10"

    del fake_ddb.fail_after["delete_item"]
    store.save_update(copies, moved)
    assert [c["date"] for c in store.find_copies(OWNER, "r1")] == ["2024-03-10"]


def test_move_never_overwrites_another_record(store, fake_ddb):
    original = store.put_record(_item(date="2024-03-01", record_id="r1"))
    moved = _item(date="2024-03-10", record_id="r1")
    # a different record already occupies the target key
    fake_ddb.put({
        "PK": {"S": moved["PK"]},
        "SK": {"S": moved["SK"]},
        "recordId": {"S": "someone-else"},
    })

    with pytest.raises(StoreError):
        store.move_record(original, moved)


def test_query_failure_is_wrapped(store, fake_ddb):
    fake_ddb.fail_after["query"] = 0
    with pytest.raises(StoreError) as exc_info:
        store.query_records(OWNER)
    assert "Failed querying time records" in str(exc_info.value)
