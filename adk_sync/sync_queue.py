"""Durable FIFO of sync operations awaiting replay.

The queue lives in a single JSON document (``.adk/sync-queue.json``). Every
call re-reads the document, and every mutation writes the complete new list
before it is adopted in memory: if the write fails the call raises and the
previous state stays in place.

There is no locking. One process is expected to drive the queue at a time.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, List, Optional

from .models import QueuedOperation, generate_operation_id
from .state_store import write_json_atomic

logger = logging.getLogger("adk_sync.sync_queue")

QUEUE_VERSION = "1.0.0"
QUEUE_FILE_NAME = "sync-queue.json"


class SyncQueue:
    """Offline retry queue backed by one JSON document."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._operations: List[QueuedOperation] = []

    @classmethod
    def for_project(cls, root: Path | str) -> "SyncQueue":
        return cls(Path(root) / ".adk" / QUEUE_FILE_NAME)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> List[QueuedOperation]:
        """Read the persisted queue; a missing or corrupt document is an empty queue."""
        operations: List[QueuedOperation] = []
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if not isinstance(data, dict):
                    raise ValueError("queue document must be an object")
                raw_operations = data.get("operations") or []
                operations = [QueuedOperation.from_dict(item) for item in raw_operations]
            except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Sync queue at {self.path} is unreadable, treating it as empty: {e}")
                operations = []
        self._operations = operations
        return list(operations)

    def _commit(self, operations: List[QueuedOperation]) -> None:
        write_json_atomic(self.path, {
            "version": QUEUE_VERSION,
            "operations": [operation.to_dict() for operation in operations],
        })
        self._operations = operations

    def _mutate(self, change: Callable[[List[QueuedOperation]], List[QueuedOperation]]) -> None:
        current = self.load()
        self._commit(change(current))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def enqueue(self, operation: QueuedOperation) -> QueuedOperation:
        """Append an operation, assigning an id when it has none."""
        stored = QueuedOperation.from_dict(operation.to_dict())
        if not stored.id:
            stored.id = generate_operation_id()
        self._mutate(lambda ops: ops + [stored])
        logger.debug(f"Queued {stored.type} for '{stored.feature}' as {stored.id}")
        return stored

    def dequeue(self) -> Optional[QueuedOperation]:
        """Remove and return the head of the queue, or None when empty."""
        current = self.load()
        if not current:
            return None
        head = current[0]
        self._commit(current[1:])
        return head

    def remove(self, operation_id: str) -> bool:
        """Remove an operation by id. Returns whether it was present."""
        current = self.load()
        remaining = [op for op in current if op.id != operation_id]
        if len(remaining) == len(current):
            return False
        self._commit(remaining)
        return True

    def update_retries(self, operation_id: str, retries: int, last_error: Optional[str] = None) -> bool:
        """Update an operation's retry count and last error in place.

        Returns False when the id is unknown. Retry counts never go down.
        """
        current = self.load()
        target = next((op for op in current if op.id == operation_id), None)
        if target is None:
            return False
        updated = QueuedOperation.from_dict(target.to_dict())
        updated.retries = max(target.retries, retries)
        if last_error is not None:
            updated.last_error = last_error
        self._commit([updated if op.id == operation_id else op for op in current])
        return True

    def clear(self) -> None:
        self._mutate(lambda ops: [])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def peek(self) -> Optional[QueuedOperation]:
        current = self.load()
        return current[0] if current else None

    def get_all(self) -> List[QueuedOperation]:
        return self.load()

    def get_by_feature(self, feature: str) -> List[QueuedOperation]:
        return [op for op in self.load() if op.feature == feature]

    def get_pending_count(self) -> int:
        return len(self.load())

    def has_feature_pending(self, feature: str) -> bool:
        return any(op.feature == feature for op in self.load())
