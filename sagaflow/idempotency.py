"""De-duplication of executions that share an idempotency key.

The guarantee is local to one process: two ``run`` calls with the same key
on the same event loop never both start work. Executions tracked by a
different process, or evicted after their retention window, are invisible
here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Tuple

from .constants import DEFAULT_POLL_INTERVAL, DEFAULT_WAIT_TIMEOUT
from .contracts import Execution, WorkflowResult
from .errors import IdempotencyTimeoutError
from .persistence import ExecutionStore

logger = logging.getLogger(__name__)


class IdempotencyResolver:
    """Tracks in-flight and recently finished executions by key."""

    def __init__(
        self,
        store: ExecutionStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
    ) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self.poll_interval = poll_interval
        self.wait_timeout = wait_timeout

    async def find(self, key: str) -> Optional[Execution]:
        return await self._store.get(key)

    async def register(self, key: str, execution: Execution) -> None:
        await self._store.put(key, execution)

    async def claim(
        self, key: str, factory: Callable[[], Execution]
    ) -> Tuple[Execution, bool]:
        """Return the execution for ``key``, creating it if none exists.

        The boolean is ``True`` when this call created and registered the
        execution and therefore owns running it.
        """
        async with self._lock:
            existing = await self._store.get(key)
            if existing is not None:
                return existing, False
            execution = factory()
            await self._store.put(key, execution)
            return execution, True

    async def release(self, key: str, after: float) -> None:
        """Stop tracking ``key`` once the retention window has passed."""
        await self._store.expire(key, after)

    async def wait_for(self, execution: Execution) -> WorkflowResult:
        """Poll ``execution`` until it is terminal and return its result.

        A failed run counts as terminal before its compensation finishes, so
        a waiter may report ``compensated=False`` for an execution that later
        callers with the same key see as compensated.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while execution.is_active():
            waited = loop.time() - start_time
            if waited > self.wait_timeout:
                logger.error(
                    f"Gave up waiting for execution {execution.id} "
                    f"(key={execution.idempotency_key}) after {waited:.1f}s"
                )
                raise IdempotencyTimeoutError(execution.idempotency_key, waited)
            await asyncio.sleep(self.poll_interval)

        return WorkflowResult.from_execution(execution)
