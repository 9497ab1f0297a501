"""Step handler interface, registry and built-in handlers."""

from __future__ import annotations

from .base import FunctionStepHandler, StepHandler
from .builtin import (
    AIQueryHandler,
    ExecuteToolHandler,
    PersistDataHandler,
    ToolCall,
    ToolDispatcher,
    ToolResult,
    register_builtin_handlers,
)
from .registry import StepHandlerRegistry

__all__ = [
    "StepHandler",
    "FunctionStepHandler",
    "StepHandlerRegistry",
    "AIQueryHandler",
    "ExecuteToolHandler",
    "PersistDataHandler",
    "ToolCall",
    "ToolDispatcher",
    "ToolResult",
    "register_builtin_handlers",
]
