"""Workflow execution engine for sagaflow."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from .compensation import CompensationRunner
from .config import SagaflowConfig, load_config
from .contracts import (
    Execution,
    RetryPolicy,
    Step,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowResult,
    generate_execution_id,
    utc_now,
)
from .errors import StepValidationError, WorkflowTimeoutError
from .handlers import StepHandler, StepHandlerRegistry, register_builtin_handlers
from .handlers.builtin import ToolDispatcher
from .idempotency import IdempotencyResolver
from .persistence import ExecutionStore, get_store
from .utils.retry import is_retryable, schedule_retry

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Runs workflow definitions step by step with retry and rollback."""

    def __init__(
        self,
        registry: StepHandlerRegistry | None = None,
        store: ExecutionStore | None = None,
        config: Optional[SagaflowConfig] = None,
        tool_dispatcher: Optional[ToolDispatcher] = None,
    ) -> None:
        config = config or load_config()
        self._config = config.engine
        self._registry = registry or StepHandlerRegistry()
        if self._config.register_builtin_handlers:
            self._register_builtins(tool_dispatcher)
        self._store = store or get_store(config=config)
        self._resolver = IdempotencyResolver(
            self._store,
            poll_interval=self._config.idempotency_poll_interval,
            wait_timeout=self._config.idempotency_wait_timeout,
        )
        self._compensator = CompensationRunner(self._registry)

    def _register_builtins(self, dispatcher: Optional[ToolDispatcher]) -> None:
        # Handlers already present in a caller-supplied registry win.
        builtins = StepHandlerRegistry()
        register_builtin_handlers(builtins, dispatcher)
        for handler in builtins:
            if handler.name not in self._registry:
                self._registry.register(handler)

    @property
    def registry(self) -> StepHandlerRegistry:
        return self._registry

    @property
    def resolver(self) -> IdempotencyResolver:
        return self._resolver

    def register_step_handler(self, handler: StepHandler) -> None:
        """Make ``handler`` available to steps that reference its name."""
        self._registry.register(handler)

    async def get_execution(self, idempotency_key: str) -> Optional[Execution]:
        """Return the execution tracked under ``idempotency_key``, if any."""
        return await self._resolver.find(idempotency_key)

    async def list_executions(self) -> List[Execution]:
        return await self._store.list_executions()

    async def run(
        self,
        definition: WorkflowDefinition,
        context: WorkflowContext,
        idempotency_key: Optional[str] = None,
    ) -> WorkflowResult:
        """Execute ``definition`` against ``context``.

        Args:
            definition: Workflow template to run.
            context: Shared state handed to every step of this run.
            idempotency_key: Optional de-duplication key. A call whose key is
                already tracked returns that execution's result instead of
                starting new work.

        Returns:
            Result of the successful run, or of the execution already
            tracked under ``idempotency_key``.

        Raises:
            Exception: The error of the step that failed the run, after any
                compensation has been attempted.
        """
        execution_id = generate_execution_id()
        key = idempotency_key or execution_id

        execution, created = await self._resolver.claim(
            key, lambda: Execution.start(definition, context, key, execution_id)
        )
        if not created:
            if execution.is_active():
                logger.info(
                    f"Waiting on in-flight execution {execution.id} for key={key}"
                )
                return await self._resolver.wait_for(execution)
            logger.info(f"Returning stored result of execution {execution.id} for key={key}")
            return WorkflowResult.from_execution(execution)

        try:
            execution.status = "running"
            logger.info(
                f"Starting workflow {definition.id} as execution {execution.id} "
                f"({len(execution.steps)} steps, key={key})"
            )
            await self._execute_steps(execution, definition)
            execution.status = "completed"
            execution.completed_at = utc_now()
            result = WorkflowResult.from_execution(execution)
            logger.info(
                f"Workflow {definition.id} completed for execution {execution.id} "
                f"in {result.metadata.duration_ms}ms "
                f"(retries={result.metadata.retries_used})"
            )
            return result
        except asyncio.CancelledError:
            execution.status = "failed"
            execution.error = "Execution cancelled"
            execution.completed_at = utc_now()
            logger.warning(f"Execution {execution.id} was cancelled")
            raise
        except Exception as e:
            execution.status = "failed"
            execution.error = str(e)
            execution.completed_at = utc_now()
            logger.error(f"Workflow {definition.id} failed for execution {execution.id}: {e}")

            if definition.has_compensation:
                try:
                    report = await self._compensator.compensate(execution, definition)
                    execution.status = "compensated"
                    logger.info(
                        f"Compensation finished for execution {execution.id}: "
                        f"{len(report.compensated)} compensated, "
                        f"{len(report.failed)} failed, {len(report.skipped)} skipped"
                    )
                except Exception as compensation_error:
                    logger.error(
                        f"Compensation failed for execution {execution.id}: "
                        f"{compensation_error}"
                    )
            raise
        finally:
            await self._resolver.release(key, self._config.retention_seconds)

    async def _execute_steps(
        self, execution: Execution, definition: WorkflowDefinition
    ) -> None:
        """Run steps in declaration order, publishing outputs to the context."""
        loop = asyncio.get_running_loop()
        deadline: Optional[float] = None
        if self._config.enforce_timeouts and definition.timeout > 0:
            deadline = loop.time() + definition.timeout / 1000

        for index, step in enumerate(execution.steps):
            execution.current_step_index = index
            handler = self._registry.require(step.name)

            if not handler.validate(step.input):
                raise StepValidationError(step.name)

            step.status = "running"
            step.started_at = utc_now()

            try:
                output = await self._execute_step_with_retry(
                    handler, step, execution, definition, deadline
                )
            except Exception as e:
                step.status = "failed"
                step.error = str(e)
                step.completed_at = utc_now()
                raise

            step.output = output
            step.status = "completed"
            step.completed_at = utc_now()
            if output is not None:
                execution.context.variables[step.output_key] = output

    async def _execute_step_with_retry(
        self,
        handler: StepHandler,
        step: Step,
        execution: Execution,
        definition: WorkflowDefinition,
        deadline: Optional[float],
    ) -> Any:
        policy = self._retry_policy(definition)
        max_retries = (
            step.max_retries if step.max_retries is not None else policy.max_attempts - 1
        )

        attempt = 0
        while True:
            if attempt > 0:
                await schedule_retry(attempt, policy, limit_ms=self._remaining_ms(deadline))
            if deadline is not None and self._remaining_ms(deadline) <= 0:
                raise WorkflowTimeoutError(definition.id, definition.timeout)

            step.retry_count = attempt
            try:
                return await self._invoke(handler, step, execution.context, definition, deadline)
            except Exception as e:
                if not is_retryable(e, policy) or attempt >= max_retries:
                    raise
                logger.warning(
                    f"Step {step.id} ({step.name}) failed "
                    f"(attempt {attempt + 1}/{max_retries + 1}): {e}"
                )
            attempt += 1

    async def _invoke(
        self,
        handler: StepHandler,
        step: Step,
        context: WorkflowContext,
        definition: WorkflowDefinition,
        deadline: Optional[float],
    ) -> Any:
        if deadline is None:
            return await handler.execute(step.input, context)

        # A handler raising its own TimeoutError must stay distinguishable
        # from the workflow deadline expiring.
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(handler.execute(step.input, context))
        try:
            done, _ = await asyncio.wait({task}, timeout=max(0.0, deadline - loop.time()))
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.error(
                f"Step {step.id} ({step.name}) cancelled at the workflow deadline "
                f"of {definition.timeout}ms"
            )
            raise WorkflowTimeoutError(definition.id, definition.timeout)
        return task.result()

    def _retry_policy(self, definition: WorkflowDefinition) -> RetryPolicy:
        # Definitions that never set retry_config inherit the configured default.
        if "retry_config" in definition.model_fields_set:
            return definition.retry_config
        return self._config.default_retry

    @staticmethod
    def _remaining_ms(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return (deadline - asyncio.get_running_loop().time()) * 1000
