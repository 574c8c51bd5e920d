"""Feature state store for adk-sync.

Reads and writes the per-feature ``progress.json`` documents that hold each
feature's phase, progress and sync bookkeeping, and places conflict reports
next to the feature's other artifacts.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from .models import SyncableProgress, clamp_progress, normalize_phase, utc_now
from .sync_logging import log_error_with_context, log_operation

logger = logging.getLogger("adk_sync.state_store")

PROGRESS_FILE_NAME = "progress.json"
CONFLICT_REPORT_FILE_NAME = "conflict-report.md"


def write_json_atomic(path: Path, data: object) -> None:
    """Write JSON to ``path`` through a temp file and rename.

    Readers see either the old document or the new one, never a partial write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2)
            handle.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class FeatureStateStore:
    """Manage persisted sync state for the features of one project."""

    FEATURES_DIR_ENV = "ADK_FEATURES_DIR"

    def __init__(self, root: Path | str):
        """Initialize the store for the given project root."""
        self.root = Path(root).resolve()
        override = os.getenv(self.FEATURES_DIR_ENV)
        if override:
            self.features_dir = (self.root / override).resolve()
        else:
            self.features_dir = self.root / ".claude" / "plans" / "features"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def feature_dir(self, name: str) -> Path:
        """Get the directory for a feature."""
        return self.features_dir / name

    def progress_path(self, name: str) -> Path:
        return self.feature_dir(name) / PROGRESS_FILE_NAME

    def conflict_report_path(self, name: str) -> Path:
        return self.feature_dir(name) / CONFLICT_REPORT_FILE_NAME

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def feature_exists(self, name: str) -> bool:
        return self.feature_dir(name).is_dir()

    def list_features(self) -> List[str]:
        """List tracked feature names in a stable order."""
        if not self.features_dir.exists():
            return []
        return sorted(path.name for path in self.features_dir.iterdir() if path.is_dir())

    def load(self, name: str) -> Optional[SyncableProgress]:
        """Load a feature's sync state.

        Returns None when the document is missing or unreadable; a corrupt
        document is treated the same as an absent one.
        """
        path = self.progress_path(name)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            progress = SyncableProgress.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable sync state for '{name}' at {path}: {e}")
            return None

        # The directory name is the feature's identity.
        if progress.feature != name:
            logger.warning(
                f"Sync state at {path} names feature '{progress.feature}', using directory name '{name}'"
            )
            progress.feature = name
        return progress

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def save(self, progress: SyncableProgress) -> Path:
        """Persist a feature's sync state as a whole document."""
        path = self.progress_path(progress.feature)
        try:
            with log_operation("save_feature_state", feature=progress.feature):
                write_json_atomic(path, progress.to_dict())
        except OSError as e:
            log_error_with_context(e, {"operation": "save_feature_state", "feature": progress.feature})
            raise
        return path

    def track_feature(self, name: str, phase: str = "prd", progress: int = 0) -> SyncableProgress:
        """Start tracking a feature with ``pending`` sync status.

        An existing document is returned untouched.
        """
        if not name or not name.strip():
            raise ValueError("Feature name cannot be empty")
        existing = self.load(name)
        if existing is not None:
            return existing
        state = SyncableProgress(
            feature=name,
            current_phase=phase,
            progress=progress,
            last_updated=utc_now(),
        )
        self.save(state)
        logger.info(f"Tracking feature '{name}' in phase {state.current_phase}")
        return state

    def record_local_change(
        self,
        name: str,
        phase: Optional[str] = None,
        progress: Optional[int] = None,
    ) -> Optional[SyncableProgress]:
        """Apply a local phase/progress edit without touching sync fields."""
        state = self.load(name)
        if state is None:
            return None
        if phase is not None:
            state.current_phase = normalize_phase(phase)
        if progress is not None:
            state.progress = clamp_progress(progress)
        state.last_updated = utc_now()
        self.save(state)
        return state

    def write_conflict_report(self, name: str, report: str) -> Path:
        """Write a manual-resolution report next to the feature's artifacts."""
        path = self.conflict_report_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report if report.endswith("\n") else report + "\n", encoding="utf-8")
        logger.info(f"Conflict report for '{name}' written to {path}")
        return path
