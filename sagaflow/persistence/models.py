"""Summary records for executions held in an execution store."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..contracts import Execution, ExecutionStatus


class StepSummary(BaseModel):
    """Snapshot of one runtime step."""

    id: str
    name: str
    status: str
    retry_count: int = 0
    error: Optional[str] = None


class ExecutionSummary(BaseModel):
    """Read-only view of an execution for listings."""

    execution_id: str
    workflow_id: str
    session_id: str
    idempotency_key: str
    status: ExecutionStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    steps: list[StepSummary] = Field(default_factory=list)

    @classmethod
    def from_execution(cls, execution: Execution) -> "ExecutionSummary":
        return cls(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            session_id=execution.session_id,
            idempotency_key=execution.idempotency_key,
            status=execution.status,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            error=execution.error,
            steps=[
                StepSummary(
                    id=s.id,
                    name=s.name,
                    status=s.status,
                    retry_count=s.retry_count,
                    error=s.error,
                )
                for s in execution.steps
            ],
        )
