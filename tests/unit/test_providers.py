"""Unit tests for the provider registry and the local provider."""

import asyncio

import pytest

from adk_sync.models import LocalFeature, ProviderCredentials
from adk_sync.providers import (
    LocalProvider,
    ProjectProvider,
    available_providers,
    create_provider,
    get_provider,
    register_provider,
    unregister_provider,
)

from conftest import FakeProvider, make_state


def _feature(name="login"):
    return LocalFeature(name=name, phase="implement", progress=40, last_updated="2026-01-01T00:00:00Z")


class TestRegistry:
    """Test cases for provider lookup."""

    def test_local_is_registered(self, project_root):
        assert "local" in available_providers()
        assert isinstance(create_provider("local", project_root), LocalProvider)

    def test_lookup_is_case_insensitive(self, project_root):
        assert isinstance(create_provider("Local", project_root), LocalProvider)

    def test_unknown_provider(self, project_root):
        assert create_provider("jira", project_root) is None
        with pytest.raises(KeyError, match="Available providers"):
            get_provider("jira", project_root)

    def test_register_and_unregister(self, project_root):
        register_provider("fake", FakeProvider)
        try:
            provider = get_provider("fake", project_root)
            assert isinstance(provider, FakeProvider)
            assert provider.root == project_root
        finally:
            unregister_provider("fake")

        assert "fake" not in available_providers()

    def test_providers_satisfy_protocol(self, project_root):
        assert isinstance(LocalProvider(project_root), ProjectProvider)
        assert isinstance(FakeProvider(), ProjectProvider)


class TestLocalProvider:
    """Test cases for LocalProvider."""

    def test_connect(self, project_root):
        result = asyncio.run(LocalProvider(project_root).connect(ProviderCredentials(token="t")))

        assert result.success
        assert result.workspaces[0]["id"] == "local"

    def test_sync_feature(self, project_root):
        provider = LocalProvider(project_root)

        result = asyncio.run(provider.sync_feature(_feature()))

        assert result.ok
        assert result.remote_id == "local:login"
        assert result.remote_url.startswith("file://")
        assert result.last_synced

    def test_get_feature_reads_store(self, project_root, store):
        store.save(make_state("login", phase="qa", progress=80))
        provider = LocalProvider(project_root)

        remote = asyncio.run(provider.get_feature("local:login"))

        assert remote.name == "login"
        assert remote.phase == "qa"
        assert remote.progress == 80
        assert remote.updated_at == "2026-01-01T00:00:00Z"

    def test_get_feature_missing(self, project_root):
        assert asyncio.run(LocalProvider(project_root).get_feature("local:nothing")) is None

    def test_get_tasks(self, project_root, store):
        store.save(make_state("login"))
        store.save(make_state("search"))

        tasks = asyncio.run(LocalProvider(project_root).get_tasks())

        assert [task.id for task in tasks] == ["local:login", "local:search"]

    def test_create_update_delete(self, project_root):
        provider = LocalProvider(project_root)

        created = asyncio.run(provider.create_feature(_feature()))
        updated = asyncio.run(provider.update_feature(created.id, {"phase": "qa", "progress": 90}))
        asyncio.run(provider.delete_feature(created.id))

        assert created.id == "local:login"
        assert updated.phase == "qa"
        assert updated.progress == 90
