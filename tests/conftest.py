"""Shared fixtures for adk-sync tests."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from adk_sync.models import (
    ConnectionResult,
    LocalFeature,
    RemoteFeature,
    SyncResult,
    SyncableProgress,
    utc_now,
)
from adk_sync.providers import register_provider, unregister_provider
from adk_sync.state_store import FeatureStateStore
from adk_sync.sync_queue import SyncQueue


class FakeProvider:
    """In-memory provider that records calls and replays scripted replies."""

    name = "fake"
    display_name = "Fake Tracker"

    def __init__(self, root: Optional[Path] = None):
        self.root = root
        self.connect_result = ConnectionResult(success=True, message="Connected to Fake Tracker")
        self.connect_error: Optional[Exception] = None
        self.sync_replies: List[Any] = []
        self.sync_calls: List[Dict[str, Any]] = []
        self.remote: Dict[str, RemoteFeature] = {}
        self.deleted: List[str] = []
        self.credentials = None

    async def connect(self, credentials):
        self.credentials = credentials
        if self.connect_error is not None:
            raise self.connect_error
        return self.connect_result

    async def sync_feature(self, feature: LocalFeature, remote_id: Optional[str] = None) -> SyncResult:
        self.sync_calls.append({"feature": feature, "remote_id": remote_id})
        reply = self.sync_replies.pop(0) if self.sync_replies else None
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, SyncResult):
            return reply
        new_id = remote_id or f"FAKE-{feature.name}"
        return SyncResult(
            status="synced",
            remote_id=new_id,
            remote_url=f"https://tracker.example/{new_id}",
            last_synced="2026-01-02T00:00:00Z",
        )

    async def get_feature(self, remote_id: str) -> Optional[RemoteFeature]:
        return self.remote.get(remote_id)

    async def get_tasks(self) -> List[RemoteFeature]:
        return list(self.remote.values())

    async def create_feature(self, feature: LocalFeature) -> RemoteFeature:
        remote = RemoteFeature(
            id=f"FAKE-{feature.name}",
            name=feature.name,
            status="open",
            url=f"https://tracker.example/FAKE-{feature.name}",
            created_at=utc_now(),
            updated_at=utc_now(),
            phase=feature.phase,
            progress=feature.progress,
        )
        self.remote[remote.id] = remote
        return remote

    async def update_feature(self, remote_id: str, updates: Dict[str, Any]) -> RemoteFeature:
        remote = self.remote[remote_id]
        if "phase" in updates:
            remote.phase = updates["phase"]
        if "progress" in updates:
            remote.progress = updates["progress"]
        return remote

    async def delete_feature(self, remote_id: str) -> None:
        self.deleted.append(remote_id)
        self.remote.pop(remote_id, None)


def write_config(root: Path, provider: Optional[str] = "fake", enabled: bool = True,
                 strategy: str = "local-wins", providers: Optional[Dict[str, Any]] = None) -> None:
    adk_dir = root / ".adk"
    adk_dir.mkdir(parents=True, exist_ok=True)
    (adk_dir / "config.json").write_text(json.dumps({
        "version": "1.0.0",
        "integration": {
            "provider": provider,
            "enabled": enabled,
            "autoSync": False,
            "syncOnPhaseChange": True,
            "conflictStrategy": strategy,
        },
        "providers": providers or {},
    }))


def write_token(root: Path, provider: str = "fake", token: str = "secret-token") -> None:
    (root / ".env").write_text(f"{provider.upper()}_API_TOKEN={token}\n")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    monkeypatch.delenv("ADK_PROJECT_ROOT", raising=False)
    monkeypatch.delenv("ADK_FEATURES_DIR", raising=False)


@pytest.fixture
def project_root(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def store(project_root):
    return FeatureStateStore(project_root)


@pytest.fixture
def queue(project_root):
    return SyncQueue.for_project(project_root)


@pytest.fixture
def fake_provider():
    provider = FakeProvider()
    register_provider("fake", lambda root: provider)
    yield provider
    unregister_provider("fake")


@pytest.fixture
def configured_project(project_root, fake_provider):
    """A project wired to the fake provider with a token in .env."""
    write_config(project_root)
    write_token(project_root)
    return project_root


def make_state(name: str, phase: str = "implement", progress: int = 40, **kwargs) -> SyncableProgress:
    return SyncableProgress(
        feature=name,
        current_phase=phase,
        progress=progress,
        last_updated=kwargs.pop("last_updated", "2026-01-01T00:00:00Z"),
        **kwargs,
    )
