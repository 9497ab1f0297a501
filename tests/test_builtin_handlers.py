"""Built-in step handler tests."""

import json

import pytest

from sagaflow import (
    DEFAULT_RETRY_POLICY,
    EngineConfig,
    InMemoryExecutionStore,
    SagaflowConfig,
    StepError,
    StepTemplate,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowEngine,
)
from sagaflow.bindings import Bindings, InMemoryKeyValueStore
from sagaflow.handlers import (
    AIQueryHandler,
    ExecuteToolHandler,
    PersistDataHandler,
    ToolDispatcher,
    ToolResult,
)
from sagaflow.utils.retry import is_retryable


class FakeAI:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def run(self, model, payload):
        self.calls.append((model, payload))
        if self.error is not None:
            raise self.error
        return {"response": "hello", "usage": {"total_tokens": 12}}


@pytest.mark.asyncio
async def test_ai_query_without_binding_is_simulated():
    handler = AIQueryHandler()
    output = await handler.execute({"query": "hi"}, WorkflowContext(session_id="s1"))

    assert output["response"] == "AI response to: hi"
    assert output["model"] == "llama-3.3-70b"
    assert output["tokens_used"] == 0


@pytest.mark.asyncio
async def test_ai_query_uses_binding():
    ai = FakeAI()
    handler = AIQueryHandler()
    context = WorkflowContext(session_id="s1", bindings=Bindings(ai=ai))

    output = await handler.execute({"query": "hi", "model": "small"}, context)

    assert output["response"] == "hello"
    assert output["model"] == "small"
    assert output["tokens_used"] == 12
    model_id, payload = ai.calls[0]
    assert model_id == AIQueryHandler.model_id
    assert payload["messages"][-1] == {"role": "user", "content": "hi"}


@pytest.mark.asyncio
async def test_ai_query_failure_keeps_retryable_text():
    handler = AIQueryHandler()
    context = WorkflowContext(
        session_id="s1", bindings={"ai": FakeAI(error=ConnectionError("network unreachable"))}
    )

    with pytest.raises(StepError, match="AI query failed") as exc_info:
        await handler.execute({"query": "hi"}, context)

    assert is_retryable(exc_info.value, DEFAULT_RETRY_POLICY)


def test_ai_query_validation():
    handler = AIQueryHandler()
    assert handler.validate({"query": "hi"})
    assert not handler.validate({"query": ""})
    assert not handler.validate({"prompt": "hi"})
    assert not handler.validate(None)


@pytest.mark.asyncio
async def test_execute_tool_dispatches_known_tool():
    handler = ExecuteToolHandler()
    output = await handler.execute(
        {"tool_call": {"id": "t1", "name": "kb.search", "parameters": {"query": "vpn"}}},
        WorkflowContext(session_id="s1"),
    )

    assert output["success"] is True
    assert output["data"]["query"] == "vpn"
    assert "executed_at" in output["metadata"]


@pytest.mark.asyncio
async def test_execute_tool_reports_failures_in_result():
    async def broken(call, context):
        raise RuntimeError("tool crashed")

    handler = ExecuteToolHandler(ToolDispatcher({"broken": broken}))
    context = WorkflowContext(session_id="s1")

    unknown = await handler.execute({"tool_call": {"name": "nope"}}, context)
    crashed = await handler.execute({"tool_call": {"name": "broken"}}, context)

    assert unknown["success"] is False
    assert unknown["error"] == "Unknown tool: nope"
    assert crashed["success"] is False
    assert crashed["error"] == "tool crashed"


@pytest.mark.asyncio
async def test_execute_tool_with_custom_tool():
    async def echo(call, context):
        return ToolResult(success=True, data=call.parameters)

    dispatcher = ToolDispatcher.with_defaults()
    dispatcher.register("echo", echo)
    handler = ExecuteToolHandler(dispatcher)

    output = await handler.execute(
        {"tool_call": {"name": "echo", "parameters": {"x": 1}}},
        WorkflowContext(session_id="s1"),
    )

    assert output["data"] == {"x": 1}
    assert "echo" in dispatcher.names()


def test_execute_tool_validation():
    handler = ExecuteToolHandler()
    assert handler.validate({"tool_call": {"name": "kb.search"}})
    assert not handler.validate({"tool_call": {}})
    assert not handler.validate({"toolCall": {"name": "kb.search"}})


@pytest.mark.asyncio
async def test_persist_data_stores_and_deletes():
    kv = InMemoryKeyValueStore()
    handler = PersistDataHandler()
    context = WorkflowContext(session_id="s1", bindings=Bindings(kv=kv))

    stored = await handler.execute({"key": "k", "data": {"a": 1}}, context)
    assert stored["stored"] is True
    value = json.loads(await kv.get("k"))
    assert value["data"] == {"a": 1}
    assert value["session_id"] == "s1"

    deleted = await handler.execute({"key": "k", "data": None}, context)
    assert deleted == {"deleted": True, "key": "k"}
    assert await kv.get("k") is None


@pytest.mark.asyncio
async def test_persist_data_compensation_removes_stored_key():
    kv = InMemoryKeyValueStore()
    handler = PersistDataHandler()
    context = WorkflowContext(session_id="s1", bindings=Bindings(kv=kv))

    output = await handler.execute({"key": "k", "data": "v"}, context)
    await handler.compensate(output, context)

    assert handler.can_compensate
    assert await kv.get("k") is None


@pytest.mark.asyncio
async def test_persist_data_requires_kv_binding():
    handler = PersistDataHandler()

    with pytest.raises(StepError) as exc_info:
        await handler.execute({"key": "k", "data": 1}, WorkflowContext(session_id="s1"))

    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_engine_rolls_back_persisted_data():
    config = SagaflowConfig(engine=EngineConfig())
    engine = WorkflowEngine(store=InMemoryExecutionStore(), config=config)

    async def reject(input, context):
        raise StepError("payment rejected", retryable=False)

    engine.registry.register_function("reject", reject)
    kv = InMemoryKeyValueStore()
    definition = WorkflowDefinition(
        id="checkout",
        name="Checkout",
        steps=[
            StepTemplate(id="save", name="persist_data", input={"key": "cart", "data": [1]}),
            StepTemplate(id="pay", name="reject"),
        ],
        compensation_steps=[
            StepTemplate(id="cleanup", name="persist_data", input={"key": "cart", "data": None})
        ],
    )

    with pytest.raises(StepError, match="payment rejected"):
        await engine.run(
            definition, WorkflowContext(session_id="s1", bindings=Bindings(kv=kv))
        )

    assert kv.keys() == []
