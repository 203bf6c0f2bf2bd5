from __future__ import annotations

from typing import Mapping, Optional, Protocol, Tuple


class TokenStorage(Protocol):
    """
    Port for persisting tokens under named keys with an expiry.

    Implementations live in the adapters layer (in-memory, file, ...).
    """

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent or expired."""
        ...

    def set_many(self, values: Mapping[str, Tuple[str, float]]) -> None:
        """
        Store every `key -> (value, max_age_seconds)` pair in one write.

        Readers must never observe only part of the batch.
        """
        ...

    def delete(self, *keys: str) -> None:
        """Remove the given keys. Missing keys are ignored."""
        ...
