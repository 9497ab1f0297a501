"""Best-effort rollback of completed steps."""

from __future__ import annotations

import logging
from typing import Dict, List

from pydantic import BaseModel, Field

from .contracts import Execution, WorkflowDefinition
from .handlers import StepHandlerRegistry

logger = logging.getLogger(__name__)


class CompensationReport(BaseModel):
    """Outcome of a compensation pass, by step id."""

    compensated: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)
    skipped: List[str] = Field(default_factory=list)

    @property
    def attempted(self) -> bool:
        return bool(self.compensated or self.failed or self.skipped)


class CompensationRunner:
    """Invokes compensating actions in reverse completion order.

    A failing compensation is logged and the pass moves on to the next step.
    """

    def __init__(self, registry: StepHandlerRegistry) -> None:
        self._registry = registry

    async def compensate(
        self, execution: Execution, definition: WorkflowDefinition
    ) -> CompensationReport:
        report = CompensationReport()
        if not definition.has_compensation:
            return report

        completed = sorted(
            execution.completed_steps(),
            key=lambda s: s.completed_at or execution.started_at,
        )
        logger.info(
            f"Starting compensation for execution {execution.id} "
            f"({len(completed)} completed steps)"
        )

        for step in reversed(completed):
            handler = self._registry.get(step.name)
            if handler is None or not handler.can_compensate:
                report.skipped.append(step.id)
                continue

            step.status = "compensating"
            try:
                await handler.compensate(step.output, execution.context)
            except Exception as e:
                logger.error(
                    f"Failed to compensate step {step.id} ({step.name}) "
                    f"for execution {execution.id}: {e}"
                )
                report.failed[step.id] = str(e)
                continue

            report.compensated.append(step.id)
            logger.info(f"Compensated step {step.id} ({step.name})")

        return report
