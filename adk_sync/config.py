"""Configuration for adk-sync.

Resolves the project root, reads and writes the integration settings stored
in ``.adk/config.json`` and looks up provider API tokens in the project's
``.env`` file.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

from .models import CONFLICT_STRATEGIES

logger = logging.getLogger("adk_sync.config")

PROJECT_ROOT_ENV = "ADK_PROJECT_ROOT"
ADK_DIR_NAME = ".adk"
CONFIG_FILE_NAME = "config.json"
ENV_FILE_NAME = ".env"
CONFIG_VERSION = "1.0.0"
_SENSITIVE_MARKERS = ("token", "secret")


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""


def get_main_repo_path(cwd: Optional[Path | str] = None) -> Path:
    """Return the project root.

    ``ADK_PROJECT_ROOT`` wins; otherwise the main repository root (so that git
    worktrees share one queue and config), falling back to the working
    directory outside of git.
    """
    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()

    base = Path(cwd).resolve() if cwd else Path.cwd().resolve()
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "--git-common-dir"],
            cwd=base,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return base

    common_dir = completed.stdout.strip()
    if not common_dir:
        return base
    common_path = Path(common_dir)
    if not common_path.is_absolute():
        common_path = (base / common_path).resolve()
    if common_path.name == ".git":
        return common_path.parent
    # bare repository
    return base


def get_adk_dir(root: Path) -> Path:
    return Path(root) / ADK_DIR_NAME


def get_config_path(root: Path) -> Path:
    return get_adk_dir(root) / CONFIG_FILE_NAME


@dataclass(slots=True)
class IntegrationConfig:
    """Which remote provider to sync with and how."""

    provider: Optional[str] = None
    enabled: bool = False
    auto_sync: bool = False
    sync_on_phase_change: bool = True
    conflict_strategy: str = "local-wins"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "enabled": self.enabled,
            "autoSync": self.auto_sync,
            "syncOnPhaseChange": self.sync_on_phase_change,
            "conflictStrategy": self.conflict_strategy,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IntegrationConfig":
        defaults = cls()
        strategy = data.get("conflictStrategy", defaults.conflict_strategy)
        if strategy not in CONFLICT_STRATEGIES:
            logger.warning(f"Unknown conflict strategy '{strategy}', using {defaults.conflict_strategy}")
            strategy = defaults.conflict_strategy
        return cls(
            provider=data.get("provider", defaults.provider),
            enabled=_flag(data, "enabled", defaults.enabled),
            auto_sync=_flag(data, "autoSync", defaults.auto_sync),
            sync_on_phase_change=_flag(data, "syncOnPhaseChange", defaults.sync_on_phase_change),
            conflict_strategy=strategy,
        )


def _flag(data: Dict[str, Any], key: str, default: bool) -> bool:
    """Read a boolean setting; anything but a JSON boolean falls back to the default."""
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    logger.warning(f"Integration setting '{key}' must be true or false, got {value!r}; using {default}")
    return default


@dataclass(slots=True)
class AdkConfig:
    version: str = CONFIG_VERSION
    integration: IntegrationConfig = field(default_factory=IntegrationConfig)
    providers: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "integration": self.integration.to_dict(),
            "providers": {name: dict(values) for name, values in self.providers.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdkConfig":
        providers = data.get("providers") or {}
        return cls(
            version=data.get("version", CONFIG_VERSION),
            integration=IntegrationConfig.from_dict(data.get("integration") or {}),
            providers={name: dict(values or {}) for name, values in providers.items()},
        )


def load_config(root: Path) -> AdkConfig:
    """Load ``.adk/config.json`` merged with defaults; missing or corrupt files yield defaults."""
    path = get_config_path(root)
    if not path.exists():
        return AdkConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
        return AdkConfig.from_dict(data)
    except (OSError, ValueError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable config at {path}: {e}")
        return AdkConfig()


def _strip_secrets(values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value
        for key, value in values.items()
        if not any(marker in key.lower() for marker in _SENSITIVE_MARKERS)
    }


def save_config(root: Path, config: AdkConfig) -> Path:
    """Write the config, never persisting token or secret values."""
    path = get_config_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.to_dict()
    data["providers"] = {name: _strip_secrets(values) for name, values in data["providers"].items()}
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def get_integration_config(root: Path) -> IntegrationConfig:
    return load_config(root).integration


def update_integration_config(root: Path, **updates: Any) -> IntegrationConfig:
    """Apply keyword updates (snake_case field names) to the integration section."""
    config = load_config(root)
    for key, value in updates.items():
        if not hasattr(config.integration, key):
            raise ConfigError(f"Unknown integration setting: {key}")
        if key == "conflict_strategy" and value not in CONFLICT_STRATEGIES:
            raise ConfigError(
                f"Invalid conflict strategy '{value}'. Expected one of: {', '.join(CONFLICT_STRATEGIES)}"
            )
        setattr(config.integration, key, value)
    save_config(root, config)
    return config.integration


def get_provider_config(root: Path, provider: str) -> Optional[Dict[str, Any]]:
    return load_config(root).providers.get(provider)


def set_provider_config(root: Path, provider: str, values: Dict[str, Any]) -> None:
    config = load_config(root)
    config.providers[provider] = dict(values)
    save_config(root, config)


def is_integration_enabled(root: Path) -> bool:
    integration = get_integration_config(root)
    return integration.enabled and integration.provider is not None


def token_key(provider: str) -> str:
    return f"{provider.upper()}_API_TOKEN"


def read_provider_token(root: Path, provider: str) -> Optional[str]:
    """Read ``{PROVIDER}_API_TOKEN`` from the project's ``.env`` file."""
    env_path = Path(root) / ENV_FILE_NAME
    if not env_path.exists():
        return None
    value = dotenv_values(env_path).get(token_key(provider))
    if value is None:
        return None
    value = value.strip()
    return value or None
