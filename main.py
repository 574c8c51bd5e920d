"""MCP server exposing adk-sync feature synchronization tools."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from adk_sync.config import PROJECT_ROOT_ENV, get_integration_config, is_integration_enabled
from adk_sync.orchestrator import SyncOrchestrator
from adk_sync.state_store import FeatureStateStore
from adk_sync.sync_queue import SyncQueue

mcp = FastMCP("adk-sync")


PROJECT_MARKER_DIRECTORIES = (".adk", ".claude")


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    seen: set[Path] = set()
    ordered: List[Path] = []
    for base in bases:
        if base not in seen:
            seen.add(base)
            ordered.append(base)
    return ordered


def _locate_project_root() -> Optional[Path]:
    for base in _candidate_bases():
        for marker in PROJECT_MARKER_DIRECTORIES:
            if (base / marker).is_dir():
                return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_project_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        f"or set the {PROJECT_ROOT_ENV} environment variable."
    )


def _orchestrator(root: Optional[str]) -> SyncOrchestrator:
    return SyncOrchestrator(_resolve_root(root))


@mcp.tool()
async def sync_features(
    feature: Optional[str] = None,
    force: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Push local feature state to the configured project-management provider.

    Without a feature name every tracked feature is synced; features already
    marked synced are skipped unless force is set."""

    orchestrator = _orchestrator(root)
    report = await orchestrator.run(feature, force=force)
    result = report.to_dict()
    result["pending_operations"] = orchestrator.queue.get_pending_count()
    return result


@mcp.tool()
async def sync_feature_with_conflict_check(feature: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Sync one feature after comparing it with the remote record.

    Conflicts are resolved with the configured strategy. With the manual
    strategy a conflict report is written and nothing is pushed."""

    orchestrator = _orchestrator(root)
    attempt = await orchestrator.connect()
    if not attempt.connected:
        return {"success": False, "status": attempt.status, "message": attempt.message}

    result = await orchestrator.sync_with_conflict_check(feature, provider=attempt.provider)
    return result.to_dict()


@mcp.tool()
async def process_sync_queue(root: Optional[str] = None) -> Dict[str, int]:
    """Replay operations queued after earlier sync failures."""

    orchestrator = _orchestrator(root)
    result = await orchestrator.process_queue()
    return result.to_dict()


@mcp.tool()
def sync_queue_status(root: Optional[str] = None) -> Dict[str, Any]:
    """Report queued operations awaiting replay."""

    queue = SyncQueue.for_project(_resolve_root(root))
    operations = queue.get_all()
    return {
        "pending": len(operations),
        "operations": [operation.to_dict() for operation in operations],
    }


@mcp.tool()
def clear_sync_queue(root: Optional[str] = None) -> Dict[str, Any]:
    """Drop every queued operation."""

    queue = SyncQueue.for_project(_resolve_root(root))
    dropped = queue.get_pending_count()
    queue.clear()
    return {"cleared": dropped, "message": f"Cleared {dropped} queued operations."}


@mcp.tool()
def track_feature(
    feature: str,
    phase: str = "prd",
    progress: int = 0,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Start tracking a feature so it takes part in sync."""

    store = FeatureStateStore(_resolve_root(root))
    state = store.track_feature(feature, phase=phase, progress=progress)
    return {
        "feature": state.feature,
        "progress_path": str(store.progress_path(feature)),
        "state": state.to_dict(),
    }


@mcp.tool()
def list_tracked_features(root: Optional[str] = None) -> Dict[str, Any]:
    """Enumerate tracked features with their sync status."""

    resolved = _resolve_root(root)
    store = FeatureStateStore(resolved)
    features: List[Dict[str, Any]] = []
    for name in store.list_features():
        state = store.load(name)
        if state is None:
            features.append({"feature": name, "sync_status": None, "readable": False})
            continue
        features.append({
            "feature": name,
            "phase": state.current_phase,
            "progress": state.computed_progress(),
            "sync_status": state.sync_status,
            "remote_id": state.remote_id,
            "last_synced": state.last_synced,
            "readable": True,
        })

    integration = get_integration_config(resolved)
    return {
        "features": features,
        "provider": integration.provider,
        "integration_enabled": is_integration_enabled(resolved),
    }


@mcp.resource("adk-sync://queue")
def resource_queue() -> str:
    """Resource view of the offline sync queue."""

    try:
        root = _resolve_root(None)
    except ValueError:
        return f"No project root detected. Launch tools with a 'root' argument or set {PROJECT_ROOT_ENV}."

    operations = SyncQueue.for_project(root).get_all()
    if not operations:
        return "Sync queue is empty."

    lines = [f"adk-sync Queue ({len(operations)} pending)"]
    for operation in operations:
        lines.append("")
        lines.append(f"- {operation.id}: {operation.type} {operation.feature}")
        lines.append(f"  Created: {operation.created_at}")
        lines.append(f"  Retries: {operation.retries}")
        if operation.last_error:
            lines.append(f"  Last error: {operation.last_error}")

    return "\n".join(lines)


if __name__ == "__main__":
    mcp.run(transport="stdio")
