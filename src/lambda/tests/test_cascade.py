"""Unit tests for cascading threat and user deletes."""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from api.cascade import (
    CascadeResult,
    DeletableRecord,
    batch_delete,
    delete_threat,
    delete_user,
    group_by_table,
    like_record,
)
from common.batching import BestEffort
from common.errors import NotFound
from fakes import FakeBlobs

CREATED = "2024-05-01T10:00:00Z"


def _seed_user_graph(store, user_id="victim"):
    store.seed("users", {"userId": user_id, "email": "v@example.com", "picture": "me.png"})
    store.seed(
        "digital-threats",
        {"threatId": "vt-1", "createdAt": CREATED, "submittedBy": user_id, "likes": 2},
        {"threatId": "vt-2", "createdAt": CREATED, "submittedBy": user_id, "likes": 0},
        {"threatId": "other", "createdAt": CREATED, "submittedBy": "someone", "likes": 1},
    )
    store.seed(
        "threat-likes",
        # the user's like on their own threat is reachable two ways
        {"userId": user_id, "threatId": "vt-1", "createdAt": CREATED},
        {"userId": "fan", "threatId": "vt-1", "createdAt": CREATED},
        {"userId": user_id, "threatId": "other", "createdAt": CREATED},
        {"userId": "fan", "threatId": "other", "createdAt": CREATED},
    )
    store.seed("articles", {"articleId": "a-1", "userId": user_id, "coverImage": "cover.jpg"})
    store.seed("articles", {"articleId": "a-2", "userId": "someone"})
    store.seed(
        "scam-reports",
        {"reportId": "r-1", "createdAt": CREATED, "userId": user_id, "image": "scam-reports/shot.png"},
    )


def test_deletable_record_dedupes_on_table_and_key():
    a = DeletableRecord("threat-likes", {"userId": "u", "threatId": "t"})
    b = DeletableRecord("threat-likes", {"threatId": "t", "userId": "u"})
    c = DeletableRecord("digital-threats", {"userId": "u", "threatId": "t"})
    assert a == b
    assert len({a, b, c}) == 2
    assert a.delete_request() == {"DeleteRequest": {"Key": {"userId": "u", "threatId": "t"}}}


def test_group_by_table_spans_tables():
    records = [
        like_record({"userId": "u", "threatId": "t"}),
        DeletableRecord("articles", {"articleId": "a"}),
        like_record({"userId": "v", "threatId": "t"}),
    ]
    grouped = group_by_table(records)
    assert set(grouped) == {"threat-likes", "articles"}
    assert len(grouped["threat-likes"]) == 2


def test_batch_delete_chunks_at_25(store):
    for i in range(60):
        store.seed("threat-likes", {"userId": f"u{i}", "threatId": "t"})
    records = [like_record({"userId": f"u{i}", "threatId": "t"}) for i in range(60)]
    best_effort = BestEffort()
    deleted = batch_delete(store, records + records[:5], best_effort)
    assert deleted == {"threat-likes": 60}
    assert [sum(len(v) for v in call.values()) for call in store.batch_calls] == [25, 25, 10]
    assert store.items("threat-likes") == []
    assert not best_effort


def test_batch_delete_reports_unprocessed(store):
    for i in range(3):
        store.seed("threat-likes", {"userId": f"u{i}", "threatId": "t"})
    store.unprocessed = lambda items: {"threat-likes": items["threat-likes"][:1]}
    best_effort = BestEffort()
    deleted = batch_delete(store, [like_record({"userId": f"u{i}", "threatId": "t"}) for i in range(3)], best_effort)
    assert deleted == {"threat-likes": 2}
    assert best_effort.warnings == ["Unprocessed deletes: threat-likes=1"]


def test_batch_delete_failed_call_is_warning(store):
    store.errors["batchWrite"] = RuntimeError("throttled")
    best_effort = BestEffort()
    deleted = batch_delete(store, [like_record({"userId": "u", "threatId": "t"})], best_effort)
    assert deleted == {}
    assert best_effort.warnings == ["batch delete: throttled"]


def test_delete_threat_removes_likes(store, threat):
    store.seed(
        "threat-likes",
        {"userId": "a", "threatId": "t-1"},
        {"userId": "b", "threatId": "t-1"},
        {"userId": "a", "threatId": "t-9"},
    )
    result = delete_threat(store, "t-1", threat["createdAt"])
    assert result.message == "Threat deleted successfully"
    assert result.deleted == {"threat-likes": 2, "digital-threats": 1}
    assert "warning" not in result.to_dict()
    assert store.items("digital-threats") == []
    assert store.items("threat-likes") == [{"userId": "a", "threatId": "t-9"}]


def test_delete_threat_missing_raises(store):
    with pytest.raises(NotFound):
        delete_threat(store, "nope", CREATED)


def test_delete_threat_with_like_lookup_failure_still_deletes(store, threat):
    store.errors[("query", "threat-likes")] = RuntimeError("index unavailable")
    result = delete_threat(store, "t-1", threat["createdAt"])
    assert result.message == "Threat deleted, but some threat-likes may remain."
    assert "index unavailable" in result.to_dict()["warning"]
    assert store.items("digital-threats") == []


def test_delete_user_removes_everything(store, blobs):
    _seed_user_graph(store)
    result = delete_user(store, blobs, "victim")

    assert result.message == "User and all associated data deleted successfully"
    assert result.warnings == []
    assert store.get("users", {"userId": "victim"}) is None
    assert [t["threatId"] for t in store.items("digital-threats")] == ["other"]
    assert store.items("threat-likes") == [{"userId": "fan", "threatId": "other", "createdAt": CREATED}]
    assert [a["articleId"] for a in store.items("articles")] == ["a-2"]
    assert store.items("scam-reports") == []
    assert result.deleted == {
        "digital-threats": 2,
        "threat-likes": 3,
        "articles": 1,
        "scam-reports": 1,
        "users": 1,
    }
    assert sorted(blobs.deleted) == [
        "article-images/cover.jpg",
        "profile-pictures/me.png",
        "scam-reports/shot.png",
    ]


def test_delete_user_spreads_over_batches(store, blobs):
    store.seed("users", {"userId": "prolific"})
    for i in range(30):
        store.seed("digital-threats", {"threatId": f"p-{i}", "createdAt": CREATED, "submittedBy": "prolific"})
        store.seed("threat-likes", {"userId": "prolific", "threatId": f"x-{i}"})
    result = delete_user(store, blobs, "prolific")
    assert result.deleted["digital-threats"] == 30
    assert result.deleted["threat-likes"] == 30
    assert all(sum(len(v) for v in call.values()) <= 25 for call in store.batch_calls)
    assert len(store.batch_calls) == 3


def test_delete_user_unprocessed_items_still_deletes_user(store, blobs):
    _seed_user_graph(store)
    store.unprocessed = lambda items: {"threat-likes": items.get("threat-likes", [])[:1]}
    result = delete_user(store, blobs, "victim")
    assert result.message == "User deleted, but some associated data may remain."
    assert result.to_dict()["warning"] == "Unprocessed deletes: threat-likes=1"
    assert store.get("users", {"userId": "victim"}) is None


def test_delete_user_image_failures_are_warnings(store):
    _seed_user_graph(store)
    blobs = FakeBlobs(failing={"me.png", "cover.jpg"})
    result = delete_user(store, blobs, "victim")
    assert len(result.warnings) == 2
    assert store.get("users", {"userId": "victim"}) is None
    assert store.items("articles") == [{"articleId": "a-2", "userId": "someone"}]


def test_delete_user_lookup_failure_is_warning(store, blobs):
    _seed_user_graph(store)
    store.errors[("scan", "scam-reports")] = RuntimeError("scan denied")
    result = delete_user(store, blobs, "victim")
    assert result.warning == "scam-reports lookup: scan denied"
    assert store.get("users", {"userId": "victim"}) is None
    assert len(store.items("scam-reports")) == 1


def test_delete_user_missing_raises(store, blobs):
    with pytest.raises(NotFound):
        delete_user(store, blobs, "ghost")
    assert store.batch_calls == []


def test_cascade_result_to_dict():
    assert CascadeResult("ok", {"users": 1}).to_dict() == {"message": "ok", "deleted": {"users": 1}}
    partial = CascadeResult("partial", {}, ["a", "b"])
    assert partial.to_dict()["warning"] == "a; b"
