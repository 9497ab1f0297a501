"""Idempotency key de-duplication tests."""

import asyncio

import pytest

from sagaflow import (
    EngineConfig,
    Execution,
    IdempotencyResolver,
    IdempotencyTimeoutError,
    InMemoryExecutionStore,
    RetryPolicy,
    SagaflowConfig,
    StepTemplate,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowEngine,
)

NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0, max_delay=0)


def make_engine(**overrides) -> WorkflowEngine:
    config = SagaflowConfig(
        engine=EngineConfig(
            register_builtin_handlers=False, idempotency_poll_interval=0.01, **overrides
        )
    )
    return WorkflowEngine(store=InMemoryExecutionStore(), config=config)


def single_step(name: str = "work") -> WorkflowDefinition:
    return WorkflowDefinition(
        id="single",
        name="Single step",
        steps=[StepTemplate(id="only", name=name)],
        retry_config=NO_RETRY,
    )


class SlowCounter:
    def __init__(self, delay: float = 0.05):
        self.delay = delay
        self.calls = 0

    async def __call__(self, input, context):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return {"call": self.calls}


@pytest.mark.asyncio
async def test_concurrent_runs_share_one_execution():
    engine = make_engine()
    handler = SlowCounter()
    engine.registry.register_function("work", handler)
    definition = single_step()

    first, second = await asyncio.gather(
        engine.run(definition, WorkflowContext(session_id="s1"), "order-1"),
        engine.run(definition, WorkflowContext(session_id="s1"), "order-1"),
    )

    assert handler.calls == 1
    assert first.execution_id == second.execution_id
    assert first.success and second.success
    assert second.result == {"call": 1}


@pytest.mark.asyncio
async def test_repeat_run_returns_stored_result_without_rerunning():
    engine = make_engine()
    handler = SlowCounter(delay=0)
    engine.registry.register_function("work", handler)
    definition = single_step()

    first = await engine.run(definition, WorkflowContext(session_id="s1"), "order-1")
    second = await engine.run(definition, WorkflowContext(session_id="s1"), "order-1")

    assert handler.calls == 1
    assert second.execution_id == first.execution_id
    assert second.result == first.result


@pytest.mark.asyncio
async def test_repeat_run_after_failure_reports_stored_failure():
    engine = make_engine()
    calls = []

    async def broken(input, context):
        calls.append(1)
        raise ValueError("invalid account")

    engine.registry.register_function("work", broken)
    definition = single_step()

    with pytest.raises(ValueError):
        await engine.run(definition, WorkflowContext(session_id="s1"), "order-1")

    result = await engine.run(definition, WorkflowContext(session_id="s1"), "order-1")

    assert len(calls) == 1
    assert result.success is False
    assert result.error == "invalid account"
    assert result.compensated is False


@pytest.mark.asyncio
async def test_distinct_keys_run_independently():
    engine = make_engine()
    handler = SlowCounter()
    engine.registry.register_function("work", handler)
    definition = single_step()

    first, second = await asyncio.gather(
        engine.run(definition, WorkflowContext(session_id="s1"), "order-1"),
        engine.run(definition, WorkflowContext(session_id="s1"), "order-2"),
    )

    assert handler.calls == 2
    assert first.execution_id != second.execution_id


@pytest.mark.asyncio
async def test_runs_without_key_are_never_deduplicated():
    engine = make_engine()
    handler = SlowCounter(delay=0)
    engine.registry.register_function("work", handler)
    definition = single_step()

    first = await engine.run(definition, WorkflowContext(session_id="s1"))
    second = await engine.run(definition, WorkflowContext(session_id="s1"))

    assert handler.calls == 2
    assert first.execution_id != second.execution_id
    assert first.execution_id.startswith("wf_exec_")


@pytest.mark.asyncio
async def test_waiting_caller_times_out():
    engine = make_engine(idempotency_wait_timeout=0.05)
    handler = SlowCounter(delay=0.3)
    engine.registry.register_function("work", handler)
    definition = single_step()

    first, second = await asyncio.gather(
        engine.run(definition, WorkflowContext(session_id="s1"), "order-1"),
        engine.run(definition, WorkflowContext(session_id="s1"), "order-1"),
        return_exceptions=True,
    )

    assert first.success is True
    assert isinstance(second, IdempotencyTimeoutError)
    assert second.idempotency_key == "order-1"
    assert handler.calls == 1


@pytest.mark.asyncio
async def test_resolver_claim_registers_once():
    resolver = IdempotencyResolver(InMemoryExecutionStore())
    definition = single_step()
    context = WorkflowContext(session_id="s1")

    def factory():
        return Execution.start(definition, context, "k")

    first, created_first = await resolver.claim("k", factory)
    second, created_second = await resolver.claim("k", factory)

    assert created_first is True
    assert created_second is False
    assert second is first
    assert await resolver.find("k") is first


@pytest.mark.asyncio
async def test_resolver_wait_returns_once_terminal():
    resolver = IdempotencyResolver(InMemoryExecutionStore(), poll_interval=0.01)
    execution = Execution.start(single_step(), WorkflowContext(session_id="s1"), "k")
    execution.status = "running"

    async def finish_later():
        await asyncio.sleep(0.03)
        execution.steps[0].status = "completed"
        execution.steps[0].output = {"done": True}
        execution.status = "completed"

    waiter = asyncio.ensure_future(resolver.wait_for(execution))
    await finish_later()
    result = await waiter

    assert result.success is True
    assert result.execution_id == execution.id
    assert result.result == {"done": True}


@pytest.mark.asyncio
async def test_waiter_can_see_failure_before_compensation_finishes():
    engine = make_engine()

    async def reserve(input, context):
        return {"reserved": True}

    async def release(output, context):
        await asyncio.sleep(0.2)

    async def charge(input, context):
        await asyncio.sleep(0.05)
        raise ValueError("card declined")

    engine.registry.register_function("reserve", reserve, compensate=release)
    engine.registry.register_function("charge", charge)
    definition = WorkflowDefinition(
        id="checkout",
        name="Checkout",
        steps=[StepTemplate(id="r", name="reserve"), StepTemplate(id="c", name="charge")],
        compensation_steps=[StepTemplate(id="undo", name="reserve")],
        retry_config=NO_RETRY,
    )

    owner, waiter = await asyncio.gather(
        engine.run(definition, WorkflowContext(session_id="s1"), "order-1"),
        engine.run(definition, WorkflowContext(session_id="s1"), "order-1"),
        return_exceptions=True,
    )
    later = await engine.run(definition, WorkflowContext(session_id="s1"), "order-1")

    assert isinstance(owner, ValueError)
    assert waiter.success is False
    assert waiter.compensated is False
    assert later.compensated is True
    assert later.execution_id == waiter.execution_id
