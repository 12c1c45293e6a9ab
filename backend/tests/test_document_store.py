"""
Document store tests.

Verifies:
- CRUD and equality queries on named collections
- Snapshots are detached copies
- Batches apply all mutations or none
- Compare-and-set preconditions
- Create-only writes conflict when the key already exists
- Subscriptions deliver full snapshots until cancelled
"""

import logging

import pytest
from sqlalchemy.exc import OperationalError

from stockpos.extensions import db
from stockpos.services import document_store
from stockpos.services.document_store import (
    BatchConflictError,
    NotFoundError,
    StoreUnavailableError,
    store,
)


class TestCrud:

    def test_add_and_get(self, db_session):
        snap = store.add("widgets", {"name": "bolt", "size": 3})
        assert snap.id
        assert snap.version_id == 1

        fetched = store.get("widgets", snap.id)
        assert fetched.data == {"name": "bolt", "size": 3}
        assert store.get("other", snap.id) is None

    def test_list_keeps_insertion_order(self, db_session):
        ids = [store.add("widgets", {"n": i}).id for i in range(5)]
        assert [d.id for d in store.list("widgets")] == ids

    def test_set_creates_then_replaces(self, db_session):
        store.set("widgets", "w1", {"a": 1, "b": 2})
        store.set("widgets", "w1", {"a": 5})
        assert store.get("widgets", "w1").data == {"a": 5}

    def test_update_merges_and_bumps_version(self, db_session):
        snap = store.add("widgets", {"a": 1, "b": 2})
        updated = store.update("widgets", snap.id, {"b": 3})
        assert updated.data == {"a": 1, "b": 3}
        assert updated.version_id == snap.version_id + 1

    def test_update_missing_raises(self, db_session):
        with pytest.raises(NotFoundError):
            store.update("widgets", "nope", {"a": 1})

    def test_delete(self, db_session):
        snap = store.add("widgets", {"a": 1})
        assert store.delete("widgets", snap.id) is True
        assert store.delete("widgets", snap.id) is False
        assert store.get("widgets", snap.id) is None

    def test_query_by_equality(self, db_session):
        store.add("widgets", {"color": "red", "size": 1})
        store.add("widgets", {"color": "blue", "size": 1})
        store.add("widgets", {"size": 2})

        assert len(store.query("widgets", size=1)) == 2
        assert [d.get("color") for d in store.query("widgets", color="blue")] == ["blue"]
        assert store.query("widgets", color=None) == []

    def test_snapshots_are_detached(self, db_session):
        snap = store.add("widgets", {"tags": ["a"]})
        snap.data["tags"].append("b")
        assert store.get("widgets", snap.id).data == {"tags": ["a"]}

    def test_database_failure_surfaces_as_unavailable(self, db_session, monkeypatch):
        def _boom(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(db.session, "query", _boom)
        with pytest.raises(StoreUnavailableError):
            store.list("widgets")


class TestBatch:

    def test_commit_applies_all(self, db_session):
        keep = store.add("widgets", {"n": 1})
        drop = store.add("widgets", {"n": 2})

        batch = store.batch()
        new_id = batch.add("gadgets", {"n": 3})
        batch.update("widgets", keep.id, {"n": 10})
        batch.delete("widgets", drop.id)
        batch.commit()

        assert store.get("gadgets", new_id).data == {"n": 3}
        assert store.get("widgets", keep.id).data == {"n": 10}
        assert store.get("widgets", drop.id) is None

    def test_conflict_rolls_back_everything(self, db_session):
        first = store.add("widgets", {"n": 1})
        second = store.add("widgets", {"n": 2})
        stale_version = second.version_id
        store.update("widgets", second.id, {"n": 20})

        batch = store.batch()
        new_id = batch.add("gadgets", {"n": 3})
        batch.update_if_version("widgets", first.id, first.version_id, {"n": 100})
        batch.update_if_version("widgets", second.id, stale_version, {"n": 200})

        with pytest.raises(BatchConflictError) as exc_info:
            batch.commit()

        assert exc_info.value.details["id"] == second.id
        assert store.get("gadgets", new_id) is None
        assert store.get("widgets", first.id).data == {"n": 1}
        assert store.get("widgets", second.id).data == {"n": 20}

    def test_conditional_delete_of_missing_document_conflicts(self, db_session):
        snap = store.add("widgets", {"n": 1})
        store.delete("widgets", snap.id)

        batch = store.batch()
        batch.delete_if_version("widgets", snap.id, snap.version_id)
        with pytest.raises(BatchConflictError):
            batch.commit()

    def test_update_of_missing_document_rolls_back(self, db_session):
        batch = store.batch()
        new_id = batch.add("gadgets", {"n": 1})
        batch.update("widgets", "missing", {"n": 2})
        with pytest.raises(NotFoundError):
            batch.commit()
        assert store.get("gadgets", new_id) is None

    def test_create_of_existing_key_conflicts(self, db_session):
        store.set("widgets", "w1", {"n": 1})

        batch = store.batch()
        new_id = batch.add("gadgets", {"n": 2})
        batch.create("widgets", "w1", {"n": 3})
        with pytest.raises(BatchConflictError) as exc_info:
            batch.commit()

        assert exc_info.value.details == {"collection": "widgets", "id": "w1"}
        assert store.get("gadgets", new_id) is None
        assert store.get("widgets", "w1").data == {"n": 1}

    def test_concurrent_create_surfaces_as_conflict(self, db_session, monkeypatch):
        store.set("widgets", "w1", {"n": 1})
        # Both writers saw no document; the other one inserted first
        monkeypatch.setattr(document_store, "_load", lambda *args, **kwargs: None)

        with pytest.raises(BatchConflictError):
            store.batch().set("widgets", "w1", {"n": 2}).commit()
        with pytest.raises(BatchConflictError):
            store.set("widgets", "w1", {"n": 3})

        monkeypatch.undo()
        assert store.get("widgets", "w1").data == {"n": 1}

    def test_batch_commits_once(self, db_session):
        batch = store.batch()
        batch.add("widgets", {"n": 1})
        batch.commit()
        with pytest.raises(RuntimeError):
            batch.commit()


class TestSubscriptions:

    def test_initial_and_change_snapshots(self, db_session):
        received = []
        sub = store.subscribe("widgets", lambda docs: received.append([d.get("n") for d in docs]))

        store.add("widgets", {"n": 1})
        store.add("widgets", {"n": 2})
        store.add("gadgets", {"n": 99})

        assert received == [[], [1], [1, 2]]
        sub.cancel()

    def test_batch_delivers_one_snapshot_per_collection(self, db_session):
        received = []
        sub = store.subscribe("widgets", received.append, deliver_initial=False)

        batch = store.batch()
        batch.add("widgets", {"n": 1})
        batch.add("widgets", {"n": 2})
        batch.commit()

        assert len(received) == 1
        assert len(received[0]) == 2
        sub.cancel()

    def test_cancel_stops_delivery(self, db_session):
        received = []
        sub = store.subscribe("widgets", received.append, deliver_initial=False)
        sub.cancel()
        sub.cancel()

        store.add("widgets", {"n": 1})
        assert received == []
        assert not sub.active

    def test_failed_batch_is_not_published(self, db_session):
        snap = store.add("widgets", {"n": 1})
        received = []
        sub = store.subscribe("widgets", received.append, deliver_initial=False)

        batch = store.batch()
        batch.update_if_version("widgets", snap.id, snap.version_id + 1, {"n": 2})
        with pytest.raises(BatchConflictError):
            batch.commit()

        assert received == []
        sub.cancel()

    def test_listener_failure_does_not_fail_write(self, db_session, caplog):
        def _broken(docs):
            raise RuntimeError("listener bug")

        sub = store.subscribe("widgets", _broken, deliver_initial=False)
        with caplog.at_level(logging.ERROR):
            snap = store.add("widgets", {"n": 1})

        assert store.get("widgets", snap.id) is not None
        assert "Snapshot listener failed" in caplog.text
        sub.cancel()
