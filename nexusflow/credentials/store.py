"""Secret store backends."""

from __future__ import annotations

import os
from typing import Dict, Mapping, Optional, Protocol


class SecretStore(Protocol):
    """Protocol for process-scoped secret backends."""

    def get(self, credential_id: str) -> Optional[str]:
        """Return the secret for ``credential_id`` or ``None`` when absent."""


class InMemorySecretStore(SecretStore):
    """Keep secrets in a local mapping.

    Useful for tests or when secrets are collected interactively. Values
    live only as long as the process does.
    """

    def __init__(self, secrets: Optional[Mapping[str, str]] = None) -> None:
        self._secrets: Dict[str, str] = dict(secrets or {})

    def get(self, credential_id: str) -> Optional[str]:
        value = self._secrets.get(credential_id)
        return value if value else None

    def set(self, credential_id: str, value: str) -> None:
        self._secrets[credential_id] = value

    def remove(self, credential_id: str) -> None:
        self._secrets.pop(credential_id, None)


class EnvSecretStore(SecretStore):
    """Read secrets from environment variables, optionally prefixed."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def get(self, credential_id: str) -> Optional[str]:
        value = os.getenv(f"{self.prefix}{credential_id}")
        return value if value else None
