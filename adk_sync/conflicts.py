"""Conflict detection and resolution between local and remote feature state.

Only the structured fields ``phase``, ``progress`` and ``name`` are compared.
Detection and resolution are pure functions; persisting a report for manual
resolution is left to the caller.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List, Optional

from .models import (
    CONFLICT_STRATEGIES,
    ConflictResolution,
    LocalFeature,
    RemoteFeature,
    ResolvedConflict,
    SyncConflict,
    utc_now,
)


def detect_conflicts(local: LocalFeature, remote: RemoteFeature) -> List[SyncConflict]:
    """Compare a local snapshot with a remote one.

    Every field is checked independently. A field the remote leaves unset is
    never reported as a conflict.
    """
    conflicts: List[SyncConflict] = []
    local_timestamp = local.last_updated
    remote_timestamp = remote.updated_at

    if remote.phase is not None and remote.phase != local.phase:
        conflicts.append(SyncConflict(
            field="phase",
            local_value=local.phase,
            remote_value=remote.phase,
            local_timestamp=local_timestamp,
            remote_timestamp=remote_timestamp,
        ))

    if remote.progress is not None and remote.progress != local.progress:
        conflicts.append(SyncConflict(
            field="progress",
            local_value=local.progress,
            remote_value=remote.progress,
            local_timestamp=local_timestamp,
            remote_timestamp=remote_timestamp,
        ))

    if remote.name != local.name:
        conflicts.append(SyncConflict(
            field="name",
            local_value=local.name,
            remote_value=remote.name,
            local_timestamp=local_timestamp,
            remote_timestamp=remote_timestamp,
        ))

    return conflicts


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; None when missing or malformed.

    Naive values are taken as UTC so they compare with aware ones.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _newest_winner(conflict: SyncConflict) -> str:
    local_time = parse_timestamp(conflict.local_timestamp)
    remote_time = parse_timestamp(conflict.remote_timestamp)
    if local_time is None or remote_time is None:
        return "local"
    return "remote" if remote_time > local_time else "local"


def resolve_conflicts(conflicts: List[SyncConflict], strategy: str) -> ConflictResolution:
    """Apply a resolution strategy to a list of conflicts.

    ``manual`` resolves nothing and flags the result for a human; the other
    strategies pick a winner for every conflict.
    """
    if strategy not in CONFLICT_STRATEGIES:
        raise ValueError(
            f"Unknown conflict strategy '{strategy}'. Expected one of: {', '.join(CONFLICT_STRATEGIES)}"
        )

    if not conflicts:
        return ConflictResolution(strategy=strategy)

    if strategy == "manual":
        return ConflictResolution(
            strategy=strategy,
            requires_manual_resolution=True,
            unresolved_conflicts=list(conflicts),
        )

    resolution = ConflictResolution(strategy=strategy)
    for conflict in conflicts:
        if strategy == "local-wins":
            winner = "local"
        elif strategy == "remote-wins":
            winner = "remote"
        else:
            winner = _newest_winner(conflict)

        value = conflict.local_value if winner == "local" else conflict.remote_value
        resolution.resolved_data[conflict.field] = value
        resolution.resolved_conflicts.append(ResolvedConflict(field=conflict.field, winner=winner, value=value))

    return resolution


def create_conflict_report(
    conflicts: List[SyncConflict],
    resolution: ConflictResolution,
    generated_at: Optional[str] = None,
) -> str:
    """Render a markdown report of conflicts and how they were (or must be) resolved."""
    lines: List[str] = [
        "# Conflict Resolution Report",
        "",
        f"Generated: {generated_at or utc_now()}",
        f"Strategy: {resolution.strategy}",
        f"Total Conflicts: {len(conflicts)}",
        "",
    ]

    if not conflicts:
        lines.append("No conflicts detected.")
        return "\n".join(lines)

    if resolution.requires_manual_resolution:
        lines.extend([
            "## Manual Resolution Required",
            "",
            "The following conflicts require manual resolution:",
            "",
        ])
        for conflict in conflicts:
            lines.extend([
                f"### {conflict.field}",
                f"- Local Value: {conflict.local_value}",
                f"- Remote Value: {conflict.remote_value}",
                f"- Local Updated: {conflict.local_timestamp}",
                f"- Remote Updated: {conflict.remote_timestamp}",
                "",
            ])
        return "\n".join(lines)

    lines.extend(["## Conflicts Detected", ""])
    for conflict in conflicts:
        lines.extend([
            f"### {conflict.field}",
            f"- Local: {conflict.local_value} ({conflict.local_timestamp})",
            f"- Remote: {conflict.remote_value} ({conflict.remote_timestamp})",
            "",
        ])

    lines.extend(["## Resolution Applied", ""])
    for resolved in resolution.resolved_conflicts:
        lines.append(f"- **{resolved.field}**: Using {resolved.winner} value -> {resolved.value}")

    lines.extend([
        "",
        "## Resolved Data",
        "",
        "```json",
        json.dumps(resolution.resolved_data, indent=2, default=str),
        "```",
    ])
    return "\n".join(lines)
