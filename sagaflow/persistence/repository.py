"""Store abstraction for the live-execution table."""

from __future__ import annotations

from typing import Protocol

from ..contracts import Execution


class ExecutionStore(Protocol):
    """Protocol for live-execution table backends, keyed by idempotency key."""

    async def get(self, key: str) -> Execution | None:
        """Return the execution tracked under ``key``, if any."""

    async def put(self, key: str, execution: Execution) -> None:
        """Track ``execution`` under ``key``."""

    async def expire(self, key: str, after: float) -> None:
        """Forget ``key`` once ``after`` seconds have elapsed."""

    async def delete(self, key: str) -> None:
        """Forget ``key`` immediately."""

    async def list_executions(self) -> list[Execution]:
        """Return all tracked executions."""
