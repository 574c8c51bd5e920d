"""Remote provider registry.

Providers are selected by the name stored in the integration config. New
backends register a factory under their name; the sync engine only ever sees
the :class:`~adk_sync.providers.base.ProjectProvider` contract.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

from .base import ProjectProvider, ProviderFactory
from .local import LocalProvider

PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {
    "local": LocalProvider,
}


def register_provider(name: str, factory: ProviderFactory) -> None:
    """Make a provider available under ``name``."""
    PROVIDER_FACTORIES[name.lower()] = factory


def unregister_provider(name: str) -> None:
    PROVIDER_FACTORIES.pop(name.lower(), None)


def available_providers() -> List[str]:
    return sorted(PROVIDER_FACTORIES)


def create_provider(name: str, root: Path) -> Optional[ProjectProvider]:
    """Instantiate the provider registered as ``name``; None when unknown."""
    factory = PROVIDER_FACTORIES.get(name.lower())
    if factory is None:
        return None
    return factory(Path(root))


def get_provider(name: str, root: Path) -> ProjectProvider:
    """Like :func:`create_provider` but raise for unknown names."""
    provider = create_provider(name, root)
    if provider is None:
        raise KeyError(
            f"Provider '{name}' not found. Available providers: {', '.join(available_providers())}"
        )
    return provider


__all__ = [
    "PROVIDER_FACTORIES",
    "LocalProvider",
    "ProjectProvider",
    "ProviderFactory",
    "available_providers",
    "create_provider",
    "get_provider",
    "register_provider",
    "unregister_provider",
]
