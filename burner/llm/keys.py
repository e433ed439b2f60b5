"""
Round-robin rotation over the shared API credential pool.

The pool is process-wide state shared by every outbound call. Rotation is
an increment-and-wrap of a single index guarded by a lock; no credential is
pinned to an exam, question, or user.
"""

import threading
from collections.abc import Sequence

from burner.errors import ConfigurationError


def next_index(pool_size: int, last_index: int) -> int:
    """Index following ``last_index`` in a pool of ``pool_size`` keys."""
    if pool_size <= 0:
        raise ValueError("pool_size must be positive")
    return (last_index + 1) % pool_size


class KeyRotator:
    """Thread-safe round-robin over API keys."""

    def __init__(self, keys: Sequence[str]):
        if not keys:
            raise ConfigurationError(
                "No LLM API keys configured. Set LLM_API_KEYS to a comma-separated list."
            )
        self._keys = tuple(keys)
        self._last_index = -1
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def next(self) -> tuple[int, str]:
        """Return the next ``(index, key)`` pair."""
        with self._lock:
            self._last_index = next_index(len(self._keys), self._last_index)
            index = self._last_index
        return index, self._keys[index]
