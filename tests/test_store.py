"""Tests for the in-memory datastore."""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from tillwatch.errors import DuplicateRecordError, NotFoundError

from test_review import make_transaction


def test_duplicate_transaction_id_rejected(store):
    make_transaction(store, "T1")
    with pytest.raises(DuplicateRecordError):
        make_transaction(store, "T1")


def test_list_filters_and_pagination(store):
    for i in range(5):
        store.create_transaction({
            "transaction_id": f"T{i}",
            "date": datetime(2024, 1, 1) + timedelta(hours=i),
            "register_id": "R1" if i % 2 else "R2",
            "employee_name": "Alice" if i < 3 else "Bob",
            "transaction_type": "Refund" if i % 2 else "sale",
            "amount": Decimal("10.00"),
            "status": "pending" if i % 2 else "approved",
            "is_flagged": bool(i % 2),
        })

    rows, total = store.list_transactions()
    assert total == 5
    assert [r["transaction_id"] for r in rows] == ["T4", "T3", "T2", "T1", "T0"]

    rows, total = store.list_transactions(search="bob")
    assert total == 2

    rows, total = store.list_transactions(transaction_type="refund")
    assert {r["transaction_id"] for r in rows} == {"T1", "T3"}

    rows, total = store.list_transactions(status="approved", search="r2")
    assert total == 3

    rows, total = store.list_transactions(limit=2, offset=2)
    assert total == 5
    assert [r["transaction_id"] for r in rows] == ["T2", "T1"]


def test_returned_records_are_copies(store):
    tx = make_transaction(store)
    tx["status"] = "escalate"
    assert store.get_transaction(tx["id"])["status"] == "pending"


def test_delete_cascades(store):
    tx = make_transaction(store)
    store.create_note({"transaction_id": tx["id"], "content": "checked", "author_name": "Dana"})
    store.create_video_clip({"transaction_id": tx["id"], "filename": "v.mp4", "file_path": "/tmp/v.mp4"})
    store.transition_status(tx["id"], "pending", "approved", {
        "transaction_id": tx["id"], "action": "approved", "new_status": "approved",
    })

    store.delete_transaction(tx["id"])

    assert store.get_transaction(tx["id"]) is None
    assert store.get_notes(tx["id"]) == []
    assert store.get_audit_log(tx["id"]) == []
    assert store.get_video_clip(tx["id"]) is None
    with pytest.raises(NotFoundError):
        store.delete_transaction(tx["id"])
    # transaction_id is free again
    make_transaction(store)


def test_notes_newest_first(store):
    tx = make_transaction(store)
    store.create_note({"transaction_id": tx["id"], "content": "first", "author_name": "Dana"})
    store.create_note({"transaction_id": tx["id"], "content": "second", "author_name": "Dana"})
    assert [n["content"] for n in store.get_notes(tx["id"])] == ["second", "first"]


def test_latest_video_clip_wins(store):
    tx = make_transaction(store)
    store.create_video_clip({"transaction_id": tx["id"], "filename": "a.mp4"})
    store.create_video_clip({"transaction_id": tx["id"], "filename": "b.mp4"})
    store.create_video_clip({"transaction_id": None, "filename": "c.mp4"})
    assert store.get_video_clip(tx["id"])["filename"] == "b.mp4"


def test_stats(store):
    make_transaction(store, "T1", status="pending", is_flagged=True)
    make_transaction(store, "T2", status="approved", is_flagged=False)
    old = make_transaction(store, "T3", status="pending", is_flagged=True)
    store._transactions[old["id"]]["created_at"] = datetime.now() - timedelta(days=2)
    store.create_video_clip({"transaction_id": None, "filename": "c.mp4"})

    assert store.get_stats() == {
        "pending_review": 2,
        "flagged_today": 1,
        "approved": 1,
        "video_clips": 1,
    }
