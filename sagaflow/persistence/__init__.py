"""Live-execution store for sagaflow."""

from __future__ import annotations

import os
from typing import Optional

from ..config import SagaflowConfig, load_config
from .inmemory import InMemoryExecutionStore
from .models import ExecutionSummary, StepSummary
from .repository import ExecutionStore


def get_store(
    backend: Optional[str] = None, config: Optional[SagaflowConfig] = None
) -> ExecutionStore:
    """Factory function to obtain the configured execution store.

    The backend is selected from ``backend``, the ``SAGAFLOW_STORE``
    environment variable, or the loaded configuration, in that order.
    """

    config = config or load_config()
    backend = (backend or os.getenv("SAGAFLOW_STORE") or config.store.backend).lower()

    if backend == "inmemory":
        return InMemoryExecutionStore()
    raise ValueError(f"Unsupported execution store backend: {backend}")


__all__ = [
    "ExecutionStore",
    "ExecutionSummary",
    "InMemoryExecutionStore",
    "StepSummary",
    "get_store",
]
