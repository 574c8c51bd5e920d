"""Unit tests for adk-sync configuration."""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch, MagicMock

import pytest

from adk_sync.config import (
    AdkConfig,
    ConfigError,
    IntegrationConfig,
    get_config_path,
    get_integration_config,
    get_main_repo_path,
    get_provider_config,
    is_integration_enabled,
    load_config,
    read_provider_token,
    save_config,
    set_provider_config,
    token_key,
    update_integration_config,
)

from conftest import write_config, write_token


class TestLoadConfig:
    """Test cases for reading .adk/config.json."""

    def test_missing_config_gives_defaults(self, project_root):
        config = load_config(project_root)

        assert config.integration.provider is None
        assert config.integration.enabled is False
        assert config.integration.conflict_strategy == "local-wins"
        assert config.providers == {}

    def test_corrupt_config_gives_defaults(self, project_root):
        path = get_config_path(project_root)
        path.parent.mkdir(parents=True)
        path.write_text("not json")

        assert load_config(project_root).integration.provider is None

    def test_reads_integration(self, project_root):
        write_config(project_root, provider="clickup", strategy="newest-wins",
                     providers={"clickup": {"listId": "L1"}})

        integration = get_integration_config(project_root)

        assert integration.provider == "clickup"
        assert integration.enabled is True
        assert integration.conflict_strategy == "newest-wins"
        assert get_provider_config(project_root, "clickup") == {"listId": "L1"}
        assert get_provider_config(project_root, "jira") is None

    def test_unknown_strategy_falls_back(self, project_root):
        write_config(project_root, strategy="coin-flip")

        assert get_integration_config(project_root).conflict_strategy == "local-wins"

    def test_is_integration_enabled(self, project_root):
        write_config(project_root, provider=None, enabled=True)
        assert not is_integration_enabled(project_root)

        write_config(project_root, provider="local", enabled=True)
        assert is_integration_enabled(project_root)


class TestSaveConfig:
    """Test cases for writing .adk/config.json."""

    def test_save_strips_secrets(self, project_root):
        config = AdkConfig(providers={"clickup": {"listId": "L1", "apiToken": "t", "clientSecret": "s"}})

        save_config(project_root, config)

        data = json.loads(get_config_path(project_root).read_text())
        assert data["providers"]["clickup"] == {"listId": "L1"}

    def test_update_integration_config(self, project_root):
        integration = update_integration_config(project_root, provider="local", enabled=True,
                                                conflict_strategy="manual")

        assert integration.conflict_strategy == "manual"
        assert get_integration_config(project_root).provider == "local"

    def test_update_rejects_unknown_setting(self, project_root):
        with pytest.raises(ConfigError, match="Unknown integration setting"):
            update_integration_config(project_root, colour="blue")

    def test_update_rejects_bad_strategy(self, project_root):
        with pytest.raises(ConfigError):
            update_integration_config(project_root, conflict_strategy="coin-flip")

    def test_set_provider_config(self, project_root):
        set_provider_config(project_root, "clickup", {"workspaceId": "W1"})

        assert get_provider_config(project_root, "clickup") == {"workspaceId": "W1"}

    def test_integration_round_trip_keys(self):
        data = IntegrationConfig(provider="local", enabled=True, auto_sync=True).to_dict()

        assert data["autoSync"] is True
        assert data["syncOnPhaseChange"] is True
        assert IntegrationConfig.from_dict(data).auto_sync is True


class TestProviderToken:
    """Test cases for .env token lookup."""

    def test_token_key(self):
        assert token_key("clickup") == "CLICKUP_API_TOKEN"

    def test_reads_token(self, project_root):
        write_token(project_root, "clickup", "abc123")

        assert read_provider_token(project_root, "clickup") == "abc123"

    def test_missing_env_file(self, project_root):
        assert read_provider_token(project_root, "clickup") is None

    def test_empty_token(self, project_root):
        (project_root / ".env").write_text("CLICKUP_API_TOKEN=\nOTHER=1\n")

        assert read_provider_token(project_root, "clickup") is None

    def test_quoted_token(self, project_root):
        (project_root / ".env").write_text('CLICKUP_API_TOKEN="quoted value"\n')

        assert read_provider_token(project_root, "clickup") == "quoted value"


class TestMainRepoPath:
    """Test cases for project root resolution."""

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ADK_PROJECT_ROOT", str(tmp_path))

        assert get_main_repo_path() == tmp_path.resolve()

    def test_outside_git_uses_cwd(self, tmp_path):
        with patch("adk_sync.config.subprocess.run", side_effect=subprocess.CalledProcessError(128, "git")):
            assert get_main_repo_path(tmp_path) == tmp_path.resolve()

    def test_git_missing_uses_cwd(self, tmp_path):
        with patch("adk_sync.config.subprocess.run", side_effect=FileNotFoundError("git")):
            assert get_main_repo_path(tmp_path) == tmp_path.resolve()

    def test_worktree_resolves_to_main_repo(self, tmp_path):
        main_repo = tmp_path / "main"
        worktree = tmp_path / "wt"
        (main_repo / ".git").mkdir(parents=True)
        worktree.mkdir()
        completed = MagicMock(stdout=f"{main_repo.resolve() / '.git'}\n")

        with patch("adk_sync.config.subprocess.run", return_value=completed):
            assert get_main_repo_path(worktree) == main_repo.resolve()

    def test_relative_common_dir(self, tmp_path):
        completed = MagicMock(stdout=".git\n")

        with patch("adk_sync.config.subprocess.run", return_value=completed):
            assert get_main_repo_path(tmp_path) == tmp_path.resolve()


class TestBooleanSettings:
    """Non-boolean values in boolean settings."""

    def test_string_false_does_not_enable(self, project_root):
        path = get_config_path(project_root)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"integration": {"provider": "fake", "enabled": "false"}}))

        integration = get_integration_config(project_root)

        assert integration.enabled is False
        assert not is_integration_enabled(project_root)

    def test_non_boolean_falls_back_to_defaults(self):
        integration = IntegrationConfig.from_dict({"autoSync": 1, "syncOnPhaseChange": "no"})

        assert integration.auto_sync is False
        assert integration.sync_on_phase_change is True
