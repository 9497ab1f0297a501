"""Base step handler interface for sagaflow workflows."""

from __future__ import annotations

import abc
import inspect
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

if TYPE_CHECKING:
    from ..contracts import WorkflowContext

ExecuteFn = Callable[[Any, "WorkflowContext"], Union[Any, Awaitable[Any]]]
CompensateFn = Callable[[Any, "WorkflowContext"], Union[None, Awaitable[None]]]
ValidateFn = Callable[[Any], bool]


class StepHandler(metaclass=abc.ABCMeta):
    """Executable unit bound to a step name.

    Subclasses must set ``name`` and implement ``execute``. Handlers that can
    undo their work define an async ``compensate(output, context)`` method;
    handlers without one leave it ``None``. ``validate`` may be overridden.
    """

    name: str = ""
    compensate: Optional[CompensateFn] = None

    @abc.abstractmethod
    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        """Run the step and return its output."""
        raise NotImplementedError

    def validate(self, input: Any) -> bool:
        """Synchronous precondition check on the step input."""
        return True

    @property
    def can_compensate(self) -> bool:
        return self.compensate is not None

    def __repr__(self) -> str:  # pragma: no cover - simple formatting
        return f"<{type(self).__name__} name={self.name!r}>"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class FunctionStepHandler(StepHandler):
    """Adapt plain (sync or async) callables to the ``StepHandler`` interface."""

    def __init__(
        self,
        name: str,
        execute: ExecuteFn,
        compensate: Optional[CompensateFn] = None,
        validate: Optional[ValidateFn] = None,
    ) -> None:
        if not name:
            raise ValueError("Step handler name must be a non-empty string")
        self.name = name
        self._execute = execute
        self._compensate = compensate
        self._validate = validate
        if compensate is not None:
            self.compensate = self._run_compensate

    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        return await _maybe_await(self._execute(input, context))

    async def _run_compensate(self, input: Any, context: "WorkflowContext") -> None:
        await _maybe_await(self._compensate(input, context))

    def validate(self, input: Any) -> bool:
        if self._validate is None:
            return True
        return bool(self._validate(input))
