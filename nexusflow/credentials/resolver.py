"""Credential resolution against a secret store."""

from __future__ import annotations

import logging
from typing import Iterable, List

from ..errors import SecretNotFound
from .store import SecretStore

logger = logging.getLogger(__name__)


class SecretResolver:
    """Map credential ids to secret values.

    Every lookup goes to the store; nothing is cached between calls, so a
    run always sees the store's current contents.
    """

    def __init__(self, store: SecretStore) -> None:
        self._store = store

    def resolve(self, credential_id: str) -> str:
        """Return the secret for ``credential_id``.

        Raises:
            SecretNotFound: If the store has no value for the id.
        """
        value = self._store.get(credential_id)
        if value is None:
            logger.warning(f"Secret not found for credential {credential_id}")
            raise SecretNotFound(credential_id)
        return value

    def missing(self, credential_ids: Iterable[str]) -> List[str]:
        """Return the ids in ``credential_ids`` the store cannot resolve."""
        return [cid for cid in credential_ids if self._store.get(cid) is None]
