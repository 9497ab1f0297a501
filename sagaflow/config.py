from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETENTION_SECONDS,
    DEFAULT_WAIT_TIMEOUT,
)
from .contracts import RetryPolicy


class EngineConfig(BaseModel):
    """Runtime settings for ``WorkflowEngine``."""

    retention_seconds: float = Field(default=DEFAULT_RETENTION_SECONDS, ge=0)
    idempotency_poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    idempotency_wait_timeout: float = Field(default=DEFAULT_WAIT_TIMEOUT, gt=0)
    enforce_timeouts: bool = False
    register_builtin_handlers: bool = True
    default_retry: RetryPolicy = RetryPolicy()


class StoreConfig(BaseModel):
    """Execution store configuration settings."""

    backend: Literal["inmemory"] = "inmemory"


class SagaflowConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    store: StoreConfig = StoreConfig()


def load_config(path: Optional[str] = None) -> SagaflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to SAGAFLOW_CONFIG env
            variable or 'sagaflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("SAGAFLOW_CONFIG", "sagaflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = SagaflowConfig(**data)
    else:
        config = SagaflowConfig()

    if os.getenv("SAGAFLOW_ENFORCE_TIMEOUTS"):
        config.engine.enforce_timeouts = os.getenv(
            "SAGAFLOW_ENFORCE_TIMEOUTS", ""
        ).lower() in ("1", "true", "yes")
    return config
