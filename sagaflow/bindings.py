"""Handles to the external collaborators used by the built-in handlers.

The engine treats ``WorkflowContext.bindings`` as opaque. Built-in handlers
look up ``ai`` and ``kv`` on it and fall back to simulated behaviour when a
binding is missing.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Protocol, Tuple

from pydantic import BaseModel


class AIBinding(Protocol):
    """Inference backend used by the ``ai_query`` handler."""

    async def run(self, model: str, payload: dict) -> dict:
        """Run ``model`` on ``payload`` and return the raw response."""


class KeyValueStore(Protocol):
    """Key-value backend used by the ``persist_data`` handler."""

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store ``value`` under ``key`` with an optional TTL in seconds."""

    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key`` or ``None``."""

    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""


class InMemoryKeyValueStore:
    """Process-local ``KeyValueStore`` for tests and the CLI."""

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._data[key]
            return None
        return value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class Bindings(BaseModel):
    """Default container for collaborator handles."""

    ai: Any = None
    kv: Any = None
    blobs: Any = None


__all__ = ["AIBinding", "KeyValueStore", "InMemoryKeyValueStore", "Bindings"]
