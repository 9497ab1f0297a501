"""In-memory implementation of the execution store."""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional

from ..contracts import Execution
from .repository import ExecutionStore


class InMemoryExecutionStore(ExecutionStore):
    """Keep live executions in local memory.

    Entries scheduled with ``expire`` are purged lazily on the next access
    after their deadline. Data is not persisted across process restarts.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._executions: Dict[str, Execution] = {}
        self._expiry: Dict[str, float] = {}
        self._clock = clock

    # ------------------------------------------------------------------
    def _purge(self) -> None:
        now = self._clock()
        for key, deadline in list(self._expiry.items()):
            if deadline <= now:
                self._expiry.pop(key, None)
                self._executions.pop(key, None)

    async def get(self, key: str) -> Optional[Execution]:
        self._purge()
        return self._executions.get(key)

    async def put(self, key: str, execution: Execution) -> None:
        self._executions[key] = execution
        self._expiry.pop(key, None)

    async def expire(self, key: str, after: float) -> None:
        if key not in self._executions:
            return
        if after <= 0:
            await self.delete(key)
            return
        self._expiry[key] = self._clock() + after

    async def delete(self, key: str) -> None:
        self._executions.pop(key, None)
        self._expiry.pop(key, None)

    async def list_executions(self) -> list[Execution]:
        self._purge()
        return list(self._executions.values())

    def __len__(self) -> int:
        self._purge()
        return len(self._executions)
