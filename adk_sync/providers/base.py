"""Remote provider contract.

Any backend the sync engine talks to implements this set of coroutines. The
engine never imports concrete providers; it looks them up by name in the
registry (see :mod:`adk_sync.providers`).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from ..models import (
    ConnectionResult,
    LocalFeature,
    ProviderCredentials,
    RemoteFeature,
    SyncResult,
)


@runtime_checkable
class ProjectProvider(Protocol):
    """Capabilities a remote project-management backend must offer."""

    name: str
    display_name: str

    async def connect(self, credentials: ProviderCredentials) -> ConnectionResult:
        """Authenticate and select the workspace/space/list to sync into."""
        ...

    async def sync_feature(self, feature: LocalFeature, remote_id: Optional[str] = None) -> SyncResult:
        """Create or update the remote record for ``feature``.

        Expected failures come back as ``SyncResult(status="error")``; network
        level failures are raised.
        """
        ...

    async def get_feature(self, remote_id: str) -> Optional[RemoteFeature]:
        """Fetch one record; None when it no longer exists."""
        ...

    async def get_tasks(self) -> List[RemoteFeature]:
        ...

    async def create_feature(self, feature: LocalFeature) -> RemoteFeature:
        ...

    async def update_feature(self, remote_id: str, updates: Dict[str, Any]) -> RemoteFeature:
        ...

    async def delete_feature(self, remote_id: str) -> None:
        ...


# A factory receives the project root and returns a ready-to-connect provider.
ProviderFactory = Callable[[Path], ProjectProvider]
