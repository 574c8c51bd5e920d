"""Data models for adk-sync.

This module contains the core data structures shared by the sync engine:
local and remote views of a feature, the persisted per-feature sync state,
conflict and resolution records, queued retry operations and the result
objects returned by providers and by the orchestrator.

Persisted documents keep camelCase keys so that files written by the rest of
the workflow tooling stay readable.
"""

from __future__ import annotations

import uuid
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# Ordered workflow phases
PHASES = (
    "not_started",
    "prd",
    "research",
    "tasks",
    "plan",
    "implement",
    "qa",
    "docs",
    "completed",
)

PHASE_ALIASES = {
    "implementation": "implement",
    "implementacao": "implement",
    "documentation": "docs",
    "documentacao": "docs",
    "review": "qa",
    "revisao": "qa",
    "planning": "plan",
    "arquitetura": "plan",
    "breakdown": "tasks",
    "entendimento": "research",
    "done": "completed",
}

SYNC_STATUSES = ("pending", "synced", "error")
STEP_STATUSES = ("pending", "in_progress", "completed", "failed")
CONFLICT_FIELDS = ("phase", "progress", "name")
CONFLICT_STRATEGIES = ("local-wins", "remote-wins", "newest-wins", "manual")
OPERATION_TYPES = ("create", "update", "delete")
MAX_RETRIES = 3


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def normalize_phase(value: str) -> str:
    """Map a phase name or alias onto one of :data:`PHASES`."""
    if value is None:
        raise ValueError("Phase is required")
    key = str(value).strip().lower().replace("-", "_")
    key = PHASE_ALIASES.get(key, key)
    if key not in PHASES:
        raise ValueError(f"Unknown phase: {value!r}. Expected one of: {', '.join(PHASES)}")
    return key


def clamp_progress(value: Any) -> int:
    """Round and clamp a progress value into the 0-100 range."""
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, number))


def generate_operation_id() -> str:
    """Generate a unique queued operation id."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


@dataclass(slots=True)
class LocalFeature:
    """The local view of a feature's sync-relevant state."""

    name: str
    phase: str
    progress: int
    last_updated: str
    prd_path: Optional[str] = None
    research_path: Optional[str] = None
    tasks_path: Optional[str] = None
    plan_path: Optional[str] = None

    def __post_init__(self) -> None:
        self.phase = normalize_phase(self.phase)
        self.progress = clamp_progress(self.progress)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "name": self.name,
            "phase": self.phase,
            "progress": self.progress,
            "lastUpdated": self.last_updated,
        }
        for key, value in (
            ("prdPath", self.prd_path),
            ("researchPath", self.research_path),
            ("tasksPath", self.tasks_path),
            ("planPath", self.plan_path),
        ):
            if value is not None:
                data[key] = value
        return data


@dataclass(slots=True)
class RemoteFeature:
    """The remote system of record's view of a feature."""

    id: str
    name: str
    status: str
    url: str
    created_at: str
    updated_at: str
    phase: Optional[str] = None
    progress: Optional[int] = None
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "phase": self.phase,
            "progress": self.progress,
            "url": self.url,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "description": self.description,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RemoteFeature":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            name=data["name"],
            status=data.get("status", ""),
            url=data.get("url", ""),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
            phase=data.get("phase"),
            progress=data.get("progress"),
            description=data.get("description"),
            metadata=data.get("metadata") or {},
        )


@dataclass(slots=True)
class StepProgress:
    """One workflow step recorded in a feature's progress document."""

    name: str
    status: str = "pending"
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {"name": self.name, "status": self.status}
        if self.started_at:
            data["startedAt"] = self.started_at
        if self.completed_at:
            data["completedAt"] = self.completed_at
        if self.notes:
            data["notes"] = self.notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepProgress":
        """Create from dictionary representation."""
        status = data.get("status", "pending")
        if status not in STEP_STATUSES:
            raise ValueError(f"Invalid step status: {status}")
        return cls(
            name=data["name"],
            status=status,
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
            notes=data.get("notes"),
        )


@dataclass(slots=True)
class SyncableProgress:
    """Persisted per-feature sync state.

    Phase execution owns ``current_phase``, ``progress`` and ``steps``; the
    sync orchestrator is the only writer of ``sync_status``, ``remote_id``
    and ``last_synced``.
    """

    feature: str
    current_phase: str
    last_updated: str
    progress: int = 0
    steps: List[StepProgress] = field(default_factory=list)
    next_step: Optional[str] = None
    sync_status: str = "pending"
    remote_id: Optional[str] = None
    last_synced: Optional[str] = None

    def __post_init__(self) -> None:
        self.current_phase = normalize_phase(self.current_phase)
        self.progress = clamp_progress(self.progress)
        if self.sync_status not in SYNC_STATUSES:
            raise ValueError(f"Invalid sync status: {self.sync_status}")

    def computed_progress(self) -> int:
        """Progress derived from completed steps, or the stored value when there are none."""
        if not self.steps:
            return self.progress
        completed = sum(1 for step in self.steps if step.status == "completed")
        return clamp_progress(completed / len(self.steps) * 100)

    def to_local_feature(self) -> LocalFeature:
        """Build the local view used for conflict detection and syncing."""
        return LocalFeature(
            name=self.feature,
            phase=self.current_phase,
            progress=self.computed_progress(),
            last_updated=self.last_updated,
        )

    def mark_synced(self, remote_id: Optional[str], last_synced: Optional[str]) -> None:
        """Record a successful sync."""
        self.sync_status = "synced"
        if remote_id:
            self.remote_id = remote_id
        self.last_synced = last_synced or utc_now()

    def mark_error(self) -> None:
        """Record a failed sync attempt."""
        self.sync_status = "error"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "feature": self.feature,
            "currentPhase": self.current_phase,
            "progress": self.progress,
            "steps": [step.to_dict() for step in self.steps],
            "lastUpdated": self.last_updated,
            "syncStatus": self.sync_status,
        }
        if self.next_step:
            data["nextStep"] = self.next_step
        if self.remote_id:
            data["remoteId"] = self.remote_id
        if self.last_synced:
            data["lastSynced"] = self.last_synced
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncableProgress":
        """Create from dictionary representation."""
        return cls(
            feature=data["feature"],
            current_phase=data["currentPhase"],
            last_updated=data.get("lastUpdated") or utc_now(),
            progress=data.get("progress", 0),
            steps=[StepProgress.from_dict(step) for step in data.get("steps", [])],
            next_step=data.get("nextStep"),
            sync_status=data.get("syncStatus", "pending"),
            remote_id=data.get("remoteId"),
            last_synced=data.get("lastSynced"),
        )


@dataclass(slots=True)
class SyncConflict:
    """A single field on which local and remote snapshots disagree."""

    field: str
    local_value: Any
    remote_value: Any
    local_timestamp: str
    remote_timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field": self.field,
            "localValue": self.local_value,
            "remoteValue": self.remote_value,
            "localTimestamp": self.local_timestamp,
            "remoteTimestamp": self.remote_timestamp,
        }


@dataclass(slots=True)
class ResolvedConflict:
    field: str
    winner: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "winner": self.winner, "value": self.value}


@dataclass(slots=True)
class ConflictResolution:
    """Outcome of applying a strategy to a list of conflicts."""

    strategy: str
    resolved_data: Dict[str, Any] = field(default_factory=dict)
    resolved_conflicts: List[ResolvedConflict] = field(default_factory=list)
    requires_manual_resolution: bool = False
    unresolved_conflicts: List[SyncConflict] = field(default_factory=list)

    def winner_for(self, field_name: str) -> Optional[ResolvedConflict]:
        """Return the resolved entry for a field, if any."""
        for resolved in self.resolved_conflicts:
            if resolved.field == field_name:
                return resolved
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "strategy": self.strategy,
            "resolvedData": dict(self.resolved_data),
            "resolvedConflicts": [item.to_dict() for item in self.resolved_conflicts],
            "requiresManualResolution": self.requires_manual_resolution,
            "unresolvedConflicts": [item.to_dict() for item in self.unresolved_conflicts],
        }


@dataclass(slots=True)
class QueuedOperation:
    """A sync operation waiting to be replayed after a transient failure."""

    type: str
    feature: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = ""
    created_at: str = field(default_factory=utc_now)
    retries: int = 0
    last_error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in OPERATION_TYPES:
            raise ValueError(f"Invalid operation type: {self.type}")

    @property
    def remote_id(self) -> Optional[str]:
        return self.data.get("remoteId")

    def exhausted(self) -> bool:
        """True once the retry budget is spent."""
        return self.retries >= MAX_RETRIES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "feature": self.feature,
            "data": dict(self.data),
            "createdAt": self.created_at,
            "retries": self.retries,
        }
        if self.last_error is not None:
            data["lastError"] = self.last_error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedOperation":
        """Create from dictionary representation."""
        return cls(
            id=data.get("id") or "",
            type=data["type"],
            feature=data["feature"],
            data=data.get("data") or {},
            created_at=data.get("createdAt") or utc_now(),
            retries=int(data.get("retries", 0)),
            last_error=data.get("lastError"),
        )


# ---------------------------------------------------------------------------
# Provider contract payloads
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ProviderCredentials:
    token: str
    workspace_id: Optional[str] = None
    space_id: Optional[str] = None
    list_id: Optional[str] = None


@dataclass(slots=True)
class ConnectionResult:
    success: bool
    message: str
    workspaces: List[Dict[str, str]] = field(default_factory=list)


@dataclass(slots=True)
class SyncResult:
    """What a provider reports back from ``sync_feature``."""

    status: str
    message: str = ""
    remote_id: Optional[str] = None
    remote_url: Optional[str] = None
    last_synced: Optional[str] = None
    conflicts: List[SyncConflict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "synced"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "status": self.status,
            "remoteId": self.remote_id,
            "remoteUrl": self.remote_url,
            "lastSynced": self.last_synced,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Orchestrator results
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class FeatureSyncOutcome:
    """Status line for one feature in one invocation."""

    feature: str
    status: str  # 'synced', 'failed', 'queued', 'skipped', 'not_found', 'manual_pending', 'not_connected'
    message: str = ""
    remote_id: Optional[str] = None
    remote_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature": self.feature,
            "status": self.status,
            "message": self.message,
            "remote_id": self.remote_id,
            "remote_url": self.remote_url,
        }

    def status_line(self) -> str:
        """Human-readable one-line summary."""
        if self.message:
            return f"{self.feature}: {self.status} - {self.message}"
        return f"{self.feature}: {self.status}"


@dataclass(slots=True)
class SyncSummary:
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: List[FeatureSyncOutcome] = field(default_factory=list)

    def record(self, outcome: FeatureSyncOutcome) -> None:
        """Count an outcome into the summary."""
        self.outcomes.append(outcome)
        if outcome.status == "synced":
            self.synced += 1
        elif outcome.status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "skipped": self.skipped,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


@dataclass(slots=True)
class ProcessQueueResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    remaining: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "remaining": self.remaining,
        }


@dataclass(slots=True)
class SyncWithConflictResult:
    success: bool = False
    conflicts: List[SyncConflict] = field(default_factory=list)
    resolution: Optional[ConflictResolution] = None
    requires_manual_resolution: bool = False
    sync_result: Optional[SyncResult] = None
    report_path: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "requires_manual_resolution": self.requires_manual_resolution,
            "sync_result": self.sync_result.to_dict() if self.sync_result else None,
            "report_path": self.report_path,
            "message": self.message,
        }


@dataclass(slots=True)
class SyncRunReport:
    """Result of one ``sync`` invocation, including why it stopped early."""

    status: str  # 'completed', 'not_configured', 'disabled', 'unknown_provider', 'missing_token', 'connection_failed'
    message: str = ""
    outcomes: List[FeatureSyncOutcome] = field(default_factory=list)
    summary: Optional[SyncSummary] = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "summary": self.summary.to_dict() if self.summary else None,
        }
