"""Exception types raised by the sagaflow engine and its step handlers."""

from __future__ import annotations

from typing import Optional


class SagaflowError(Exception):
    """Base class for all engine errors."""

    retryable: Optional[bool] = None
    code: Optional[str] = None


class StepError(SagaflowError):
    """Failure raised by a step handler.

    ``retryable`` and ``code`` let a handler classify the failure explicitly
    instead of relying on message matching against the retry policy.
    """

    def __init__(
        self,
        message: str,
        retryable: Optional[bool] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.code = code


class HandlerNotFoundError(SagaflowError):
    """No handler is registered under the step's name."""

    retryable = False
    code = "handler_not_found"

    def __init__(self, step_name: str) -> None:
        super().__init__(f"No handler registered for step: {step_name}")
        self.step_name = step_name


class StepValidationError(SagaflowError):
    """A handler's validator rejected the step input."""

    retryable = False
    code = "invalid_input"

    def __init__(self, step_name: str) -> None:
        super().__init__(f"Invalid input for step {step_name}")
        self.step_name = step_name


class WorkflowTimeoutError(SagaflowError):
    """The workflow deadline expired while a step was running."""

    retryable = False
    code = "workflow_deadline"

    def __init__(self, workflow_id: str, timeout_ms: int) -> None:
        super().__init__(
            f"Workflow {workflow_id} exceeded its deadline of {timeout_ms}ms"
        )
        self.workflow_id = workflow_id
        self.timeout_ms = timeout_ms


class WorkflowNotFoundError(SagaflowError):
    """No predefined workflow exists under the requested id."""

    retryable = False
    code = "workflow_not_found"

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class IdempotencyTimeoutError(SagaflowError):
    """An in-flight execution sharing the key did not finish in time."""

    retryable = False
    code = "idempotency_wait"

    def __init__(self, idempotency_key: str, waited: float) -> None:
        super().__init__(
            "Timeout waiting for existing workflow execution "
            f"(key={idempotency_key}, waited={waited:.1f}s)"
        )
        self.idempotency_key = idempotency_key
        self.waited = waited


__all__ = [
    "SagaflowError",
    "StepError",
    "HandlerNotFoundError",
    "StepValidationError",
    "WorkflowTimeoutError",
    "WorkflowNotFoundError",
    "IdempotencyTimeoutError",
]
