"""Core data contracts for the sagaflow orchestration engine."""

from __future__ import annotations

import copy
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import DEFAULT_RETRYABLE_ERRORS

BackoffStrategy = Literal["fixed", "linear", "exponential"]
StepStatus = Literal["pending", "running", "completed", "failed", "compensating"]
ExecutionStatus = Literal["pending", "running", "completed", "failed", "compensated"]

ACTIVE_STATUSES = frozenset({"pending", "running"})

_ID_ALPHABET = string.digits + string.ascii_lowercase


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_execution_id() -> str:
    """Return a fresh ``wf_exec_<epoch-ms>_<suffix>`` identifier."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"wf_exec_{int(time.time() * 1000)}_{suffix}"


class RetryPolicy(BaseModel):
    """How failed step attempts are delayed and which errors are retried.

    Delays are expressed in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff_strategy: BackoffStrategy = "exponential"
    base_delay: float = Field(default=1000, ge=0)
    max_delay: float = Field(default=30000, ge=0)
    jitter_factor: float = Field(default=0.1, ge=0.0, le=1.0)
    retryable_errors: List[str] = Field(
        default_factory=lambda: list(DEFAULT_RETRYABLE_ERRORS)
    )

    @model_validator(mode="after")
    def _check_delay_bounds(self) -> "RetryPolicy":
        if self.base_delay > self.max_delay:
            raise ValueError("base_delay must not exceed max_delay")
        return self


DEFAULT_RETRY_POLICY = RetryPolicy()


class StepTemplate(BaseModel):
    """Declared step of a workflow definition. Carries no execution state."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(..., description="Name of the registered step handler")
    input: Any = None
    max_retries: Optional[int] = Field(default=None, ge=0)


class WorkflowDefinition(BaseModel):
    """Immutable template from which executions are created."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    steps: List[StepTemplate] = Field(default_factory=list)
    compensation_steps: List[StepTemplate] = Field(default_factory=list)
    timeout: int = Field(default=120000, ge=0, description="Milliseconds")
    retry_config: RetryPolicy = Field(default_factory=RetryPolicy)

    @model_validator(mode="after")
    def _check_unique_step_ids(self) -> "WorkflowDefinition":
        seen = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id in workflow {self.id}: {step.id}")
            seen.add(step.id)
        return self

    @property
    def has_compensation(self) -> bool:
        return bool(self.compensation_steps)


class Step(BaseModel):
    """Runtime copy of a step template owned by one execution."""

    id: str
    name: str
    input: Any = None
    max_retries: Optional[int] = None
    status: StepStatus = "pending"
    retry_count: int = 0
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_template(cls, template: StepTemplate) -> "Step":
        return cls(
            id=template.id,
            name=template.name,
            input=copy.deepcopy(template.input),
            max_retries=template.max_retries,
        )

    @property
    def output_key(self) -> str:
        """Key under which this step's output is published to the context."""
        return f"step_{self.id}_output"


class UserProfile(BaseModel):
    id: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    previous_issues: List[str] = Field(default_factory=list)


class ConversationContext(BaseModel):
    """Chat state of the session a workflow is started from."""

    session_id: str
    summary: str = ""
    recent_messages: List[Dict[str, Any]] = Field(default_factory=list)
    user_profile: Optional[UserProfile] = None
    active_topics: List[str] = Field(default_factory=list)
    resolved_issues: List[str] = Field(default_factory=list)


class WorkflowContext(BaseModel):
    """State shared by every step of a single execution."""

    session_id: str
    user_id: Optional[str] = None
    conversation_context: Any = None
    bindings: Any = None
    variables: Dict[str, Any] = Field(default_factory=dict)


class Execution(BaseModel):
    """One run of a workflow definition."""

    id: str = Field(default_factory=generate_execution_id)
    workflow_id: str
    session_id: str
    status: ExecutionStatus = "pending"
    current_step_index: int = 0
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    context: WorkflowContext
    idempotency_key: str
    steps: List[Step] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def start(
        cls,
        definition: WorkflowDefinition,
        context: WorkflowContext,
        idempotency_key: str,
        execution_id: Optional[str] = None,
    ) -> "Execution":
        """Create a pending execution with its own copies of the steps."""
        fields: Dict[str, Any] = {}
        if execution_id is not None:
            fields["id"] = execution_id
        return cls(
            workflow_id=definition.id,
            session_id=context.session_id,
            context=context,
            idempotency_key=idempotency_key,
            steps=[Step.from_template(t) for t in definition.steps],
            **fields,
        )

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def completed_steps(self) -> List[Step]:
        return [s for s in self.steps if s.status == "completed"]


class ResultMetadata(BaseModel):
    duration_ms: int = 0
    steps_completed: int = 0
    retries_used: int = 0


class WorkflowResult(BaseModel):
    """Outcome of ``WorkflowEngine.run``."""

    success: bool
    execution_id: str
    result: Any = None
    error: Optional[str] = None
    compensated: bool = False
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)

    @classmethod
    def from_execution(cls, execution: Execution) -> "WorkflowResult":
        """Summarise ``execution`` in whatever state it is currently in."""
        finished = execution.completed_at or utc_now()
        duration = finished - execution.started_at
        return cls(
            success=execution.status == "completed",
            execution_id=execution.id,
            result=execution.steps[-1].output if execution.steps else None,
            error=execution.error,
            compensated=execution.status == "compensated",
            metadata=ResultMetadata(
                duration_ms=int(duration.total_seconds() * 1000),
                steps_completed=len(execution.completed_steps()),
                retries_used=sum(s.retry_count for s in execution.steps),
            ),
        )


__all__ = [
    "ACTIVE_STATUSES",
    "BackoffStrategy",
    "ConversationContext",
    "DEFAULT_RETRY_POLICY",
    "Execution",
    "ExecutionStatus",
    "ResultMetadata",
    "RetryPolicy",
    "Step",
    "StepStatus",
    "StepTemplate",
    "UserProfile",
    "WorkflowContext",
    "WorkflowDefinition",
    "WorkflowResult",
    "generate_execution_id",
    "utc_now",
]
