"""Secret stores and credential resolution."""

from __future__ import annotations

import os
from typing import Optional

from ..config import NexusflowConfig, load_config
from .resolver import SecretResolver
from .store import EnvSecretStore, InMemorySecretStore, SecretStore


def get_secret_store(
    backend: Optional[str] = None, config: Optional[NexusflowConfig] = None
) -> SecretStore:
    """Factory function to get the configured secret store."""

    config = config or load_config()
    backend = (
        backend or os.getenv("NEXUSFLOW_SECRETS_BACKEND") or config.secrets.backend
    ).lower()

    if backend == "inmemory":
        return InMemorySecretStore()
    elif backend == "env":
        return EnvSecretStore(prefix=config.secrets.env_prefix)
    else:
        raise ValueError(f"Unsupported secrets backend: {backend}")


__all__ = [
    "EnvSecretStore",
    "InMemorySecretStore",
    "SecretResolver",
    "SecretStore",
    "get_secret_store",
]
