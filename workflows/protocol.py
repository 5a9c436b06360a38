"""Shared protocols for the engine's collaborators.

Defines the minimal interfaces the layout store, the workflow and the
session loop rely on: a key-value memory, an observation source and a
tap actuator.

This lives in its own module so that type-checking imports do not pull in
heavyweight dependencies (Redis, capture backends, input injection).
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from core.board_memory import CardObservation


class SupportsMemory(Protocol):
    """Structural subtype for the key-value store behind the layout cache.

    Implementations:
    * :class:`memory.redis_memory.RedisMemory` (production)
    * ``dict``-wrappers in tests
    """

    def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        """Persist *value* under *key* with optional TTL in seconds."""
        ...

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve the value stored at *key*, or *default* if missing."""
        ...

    def delete(self, key: str) -> bool:
        """Remove *key*; ``True`` if it existed."""
        ...


class SupportsRecognizer(Protocol):
    """Black-box card detector.

    Returns the observations of one capture plus the screen resolution they
    were computed for.
    """

    def detect(self) -> tuple[Sequence[CardObservation], int, int]: ...


class SupportsTapper(Protocol):
    """Gesture injector: one simulated tap at screen coordinates."""

    def tap(self, x: int, y: int) -> None: ...
