"""sagaflow: step orchestration with retries, compensation and idempotency."""

from .compensation import CompensationReport, CompensationRunner
from .config import EngineConfig, SagaflowConfig, load_config
from .contracts import (
    DEFAULT_RETRY_POLICY,
    ConversationContext,
    Execution,
    RetryPolicy,
    Step,
    StepTemplate,
    UserProfile,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowResult,
)
from .engine import WorkflowEngine
from .errors import (
    HandlerNotFoundError,
    IdempotencyTimeoutError,
    SagaflowError,
    StepError,
    StepValidationError,
    WorkflowNotFoundError,
    WorkflowTimeoutError,
)
from .handlers import FunctionStepHandler, StepHandler, StepHandlerRegistry
from .idempotency import IdempotencyResolver
from .persistence import ExecutionStore, InMemoryExecutionStore, get_store
from .service import WorkflowService

__version__ = "0.1.0"
__all__ = [
    "CompensationReport",
    "CompensationRunner",
    "ConversationContext",
    "DEFAULT_RETRY_POLICY",
    "EngineConfig",
    "Execution",
    "ExecutionStore",
    "FunctionStepHandler",
    "HandlerNotFoundError",
    "IdempotencyResolver",
    "IdempotencyTimeoutError",
    "InMemoryExecutionStore",
    "RetryPolicy",
    "SagaflowConfig",
    "SagaflowError",
    "Step",
    "StepError",
    "StepHandler",
    "StepHandlerRegistry",
    "StepTemplate",
    "StepValidationError",
    "UserProfile",
    "WorkflowContext",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowNotFoundError",
    "WorkflowResult",
    "WorkflowService",
    "WorkflowTimeoutError",
    "get_store",
    "load_config",
]
