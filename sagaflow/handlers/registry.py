"""Name-to-handler registry consulted by the engine."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional

from ..errors import HandlerNotFoundError
from .base import CompensateFn, ExecuteFn, FunctionStepHandler, StepHandler, ValidateFn

logger = logging.getLogger(__name__)


class StepHandlerRegistry:
    """Maps step names to registered ``StepHandler`` implementations."""

    def __init__(self) -> None:
        self._handlers: Dict[str, StepHandler] = {}

    def register(self, handler: StepHandler) -> StepHandler:
        """Add ``handler``, replacing any handler already bound to its name."""
        if not isinstance(handler, StepHandler):
            raise TypeError(
                f"Expected a StepHandler instance, got {type(handler).__name__}"
            )
        if not handler.name:
            raise ValueError("Step handler name must be a non-empty string")
        if handler.name in self._handlers:
            logger.info(f"Replacing step handler {handler.name}")
        self._handlers[handler.name] = handler
        return handler

    def register_function(
        self,
        name: str,
        execute: ExecuteFn,
        compensate: Optional[CompensateFn] = None,
        validate: Optional[ValidateFn] = None,
    ) -> StepHandler:
        """Register plain callables under ``name``."""
        return self.register(
            FunctionStepHandler(name, execute, compensate=compensate, validate=validate)
        )

    def get(self, name: str) -> Optional[StepHandler]:
        return self._handlers.get(name)

    def require(self, name: str) -> StepHandler:
        handler = self._handlers.get(name)
        if handler is None:
            raise HandlerNotFoundError(name)
        return handler

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[StepHandler]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)
