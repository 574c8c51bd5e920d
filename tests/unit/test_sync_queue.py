"""Unit tests for the offline sync queue."""

import json
from unittest.mock import patch

import pytest

from adk_sync.models import QueuedOperation
from adk_sync.sync_queue import QUEUE_VERSION, SyncQueue


def _op(feature="login", type="create", **kwargs):
    return QueuedOperation(type=type, feature=feature, data=kwargs.pop("data", {}), **kwargs)


class TestSyncQueue:
    """Test cases for SyncQueue."""

    def test_for_project_path(self, project_root):
        queue = SyncQueue.for_project(project_root)

        assert queue.path == project_root / ".adk" / "sync-queue.json"

    def test_missing_file_is_empty(self, queue):
        assert queue.get_all() == []
        assert queue.peek() is None
        assert queue.dequeue() is None
        assert queue.get_pending_count() == 0

    def test_enqueue_assigns_id_and_persists(self, queue):
        stored = queue.enqueue(_op())

        assert stored.id
        data = json.loads(queue.path.read_text())
        assert data["version"] == QUEUE_VERSION
        assert data["operations"][0]["id"] == stored.id
        assert data["operations"][0]["feature"] == "login"

    def test_enqueue_does_not_mutate_argument(self, queue):
        operation = _op()

        queue.enqueue(operation)

        assert operation.id == ""

    def test_fifo_order(self, queue):
        first = queue.enqueue(_op("a"))
        second = queue.enqueue(_op("b"))
        queue.enqueue(_op("c"))

        assert queue.peek().id == first.id
        assert queue.dequeue().id == first.id
        assert queue.dequeue().id == second.id
        assert [op.feature for op in queue.get_all()] == ["c"]

    def test_remove(self, queue):
        kept = queue.enqueue(_op("a"))
        dropped = queue.enqueue(_op("b"))

        assert queue.remove(dropped.id) is True
        assert queue.remove("missing") is False
        assert [op.id for op in queue.get_all()] == [kept.id]

    def test_update_retries(self, queue):
        stored = queue.enqueue(_op())

        assert queue.update_retries(stored.id, 2, "timeout") is True

        updated = queue.peek()
        assert updated.retries == 2
        assert updated.last_error == "timeout"
        assert updated.created_at == stored.created_at

    def test_update_retries_never_decreases(self, queue):
        stored = queue.enqueue(_op(retries=2))

        queue.update_retries(stored.id, 1)

        assert queue.peek().retries == 2

    def test_update_retries_unknown_id(self, queue):
        assert queue.update_retries("missing", 1) is False

    def test_feature_queries(self, queue):
        queue.enqueue(_op("login"))
        queue.enqueue(_op("search"))
        queue.enqueue(_op("login", type="update", data={"remoteId": "ABC-1"}))

        assert len(queue.get_by_feature("login")) == 2
        assert queue.has_feature_pending("search")
        assert not queue.has_feature_pending("billing")
        assert queue.get_pending_count() == 3

    def test_clear(self, queue):
        queue.enqueue(_op())

        queue.clear()

        assert queue.get_all() == []
        assert json.loads(queue.path.read_text())["operations"] == []

    def test_ids_unique_within_queue(self, queue):
        ids = [queue.enqueue(_op(str(i))).id for i in range(20)]

        assert len(set(ids)) == 20

    def test_reload_sees_other_writers(self, project_root):
        writer = SyncQueue.for_project(project_root)
        reader = SyncQueue.for_project(project_root)

        writer.enqueue(_op())

        assert reader.get_pending_count() == 1


class TestSyncQueuePersistence:
    """Test cases for durability of the queue document."""

    def test_corrupt_document_is_empty(self, queue):
        queue.path.parent.mkdir(parents=True)
        queue.path.write_text("{not json")

        assert queue.get_all() == []

        queue.enqueue(_op())
        assert queue.get_pending_count() == 1

    def test_non_object_document_is_empty(self, queue):
        queue.path.parent.mkdir(parents=True)
        queue.path.write_text("[1, 2, 3]")

        assert queue.get_all() == []

    def test_failed_write_keeps_previous_state(self, queue):
        first = queue.enqueue(_op("a"))
        before = queue.path.read_text()

        with patch("adk_sync.sync_queue.write_json_atomic", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                queue.enqueue(_op("b"))

        assert queue.path.read_text() == before
        assert [op.id for op in queue.get_all()] == [first.id]

    def test_no_temp_files_left_behind(self, queue):
        queue.enqueue(_op())
        queue.clear()

        leftovers = [p.name for p in queue.path.parent.iterdir() if p.name != "sync-queue.json"]
        assert leftovers == []


def test_fresh_queue_sees_fifo_order(project_root):
    first = SyncQueue.for_project(project_root).enqueue(_op("a"))
    second = SyncQueue.for_project(project_root).enqueue(_op("b"))

    assert [op.id for op in SyncQueue.for_project(project_root).get_all()] == [first.id, second.id]
