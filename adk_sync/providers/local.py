"""Local file-system provider.

Mirrors features onto the project's own feature directories. It is always
reachable, which makes it the reference backend for the sync contract.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import (
    ConnectionResult,
    LocalFeature,
    ProviderCredentials,
    RemoteFeature,
    SyncResult,
    utc_now,
)
from ..state_store import FeatureStateStore

logger = logging.getLogger("adk_sync.providers.local")

ID_PREFIX = "local:"


class LocalProvider:
    name = "local"
    display_name = "Local Files"

    def __init__(self, root: Path | str):
        self.store = FeatureStateStore(root)

    def _feature_name(self, remote_id: str) -> str:
        return remote_id[len(ID_PREFIX):] if remote_id.startswith(ID_PREFIX) else remote_id

    def _url(self, name: str) -> str:
        return self.store.feature_dir(name).as_uri()

    async def connect(self, credentials: ProviderCredentials) -> ConnectionResult:
        return ConnectionResult(
            success=True,
            message="Connected to local file system",
            workspaces=[{"id": "local", "name": "Local"}],
        )

    async def sync_feature(self, feature: LocalFeature, remote_id: Optional[str] = None) -> SyncResult:
        return SyncResult(
            status="synced",
            remote_id=f"{ID_PREFIX}{feature.name}",
            remote_url=self._url(feature.name),
            last_synced=utc_now(),
            message="Local provider - no sync required",
        )

    async def get_feature(self, remote_id: str) -> Optional[RemoteFeature]:
        name = self._feature_name(remote_id)
        state = self.store.load(name)
        if state is None:
            return None
        local = state.to_local_feature()
        return RemoteFeature(
            id=remote_id,
            name=name,
            status=local.phase,
            phase=local.phase,
            progress=local.progress,
            url=self._url(name),
            created_at=state.last_updated,
            updated_at=state.last_updated,
        )

    async def get_tasks(self) -> List[RemoteFeature]:
        features: List[RemoteFeature] = []
        for name in self.store.list_features():
            remote = await self.get_feature(f"{ID_PREFIX}{name}")
            if remote is not None:
                features.append(remote)
        return features

    async def create_feature(self, feature: LocalFeature) -> RemoteFeature:
        now = utc_now()
        return RemoteFeature(
            id=f"{ID_PREFIX}{feature.name}",
            name=feature.name,
            status=feature.phase,
            phase=feature.phase,
            progress=feature.progress,
            url=self._url(feature.name),
            created_at=now,
            updated_at=now,
        )

    async def update_feature(self, remote_id: str, updates: Dict[str, Any]) -> RemoteFeature:
        name = self._feature_name(remote_id)
        state = self.store.load(name)
        phase = updates.get("phase") or (state.current_phase if state else None)
        now = utc_now()
        return RemoteFeature(
            id=remote_id,
            name=name,
            status=phase or "unknown",
            phase=phase,
            progress=updates.get("progress"),
            url=self._url(name),
            created_at=now,
            updated_at=now,
        )

    async def delete_feature(self, remote_id: str) -> None:
        logger.debug(f"Local provider ignores delete of {remote_id}")
