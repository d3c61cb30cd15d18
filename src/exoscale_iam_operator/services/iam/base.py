"""Base IAM key adapter interface."""

from __future__ import annotations

from typing import Protocol

from ...models import KeyRecord


class KeyAdapter(Protocol):
    """Protocol defining the IAM key operations the reconciler relies on.

    Every operation raises a classified error from ``utils.errors``:
    NotFoundError, TransientError or PermanentError.
    """

    def fetch_by_id(self, zone: str, key_id: str) -> KeyRecord:
        """Fetch a key and its bucket scope.

        Raises:
            NotFoundError: The key does not exist
            TransientError: Retry later
        """
        ...

    def create(self, zone: str, name: str, buckets: list[str]) -> KeyRecord:
        """Create a key scoped to ``buckets``; the record carries the secret.

        Raises:
            PermanentError: The parameters are rejected
            TransientError: Retry later
        """
        ...

    def revoke(self, zone: str, key_id: str) -> None:
        """Revoke a key.

        Raises:
            NotFoundError: The key does not exist
            TransientError: Retry later
        """
        ...

    def list_by_name(self, zone: str, name: str) -> list[KeyRecord]:
        """List keys carrying ``name``. Used for diagnostics only.

        Raises:
            TransientError: Retry later
        """
        ...
