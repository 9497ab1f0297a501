"""Built-in step handlers for AI queries, tool calls and key-value writes."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, Field

from ..constants import DEFAULT_AI_MODEL, KV_EXPIRATION_TTL
from ..errors import StepError
from .base import StepHandler

if TYPE_CHECKING:
    from ..contracts import WorkflowContext
    from .registry import StepHandlerRegistry

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _binding(context: "WorkflowContext", name: str) -> Any:
    """Look up a collaborator on ``context.bindings`` (object or mapping)."""
    bindings = context.bindings
    if bindings is None:
        return None
    if isinstance(bindings, dict):
        return bindings.get(name)
    return getattr(bindings, name, None)


class ToolCall(BaseModel):
    id: str = ""
    name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


Tool = Callable[[ToolCall, "WorkflowContext"], Awaitable[ToolResult]]


async def _search_knowledge_base(call: ToolCall, context: "WorkflowContext") -> ToolResult:
    query = call.parameters.get("query") or "default search"
    return ToolResult(
        success=True,
        data={
            "results": [
                {
                    "title": f"Knowledge Base Result for: {query}",
                    "content": f"Simulated knowledge base result for the query: {query}",
                    "relevance": 0.85,
                    "source": "kb_article_123",
                }
            ],
            "total": 1,
            "query": query,
        },
        metadata={"executed_at": _now_ms(), "source": "knowledge_base"},
    )


async def _create_ticket(call: ToolCall, context: "WorkflowContext") -> ToolResult:
    params = call.parameters
    now = _now_ms()
    return ToolResult(
        success=True,
        data={
            "ticket_id": f"TICKET-{now}",
            "status": "created",
            "title": params.get("title") or "Support Request",
            "priority": params.get("priority") or "medium",
            "assignee": None,
            "created_at": now,
        },
        metadata={"executed_at": now, "source": "ticketing_system"},
    )


async def _fetch_status(call: ToolCall, context: "WorkflowContext") -> ToolResult:
    now = _now_ms()
    return ToolResult(
        success=True,
        data={
            "ticket_id": call.parameters.get("ticket_id"),
            "status": "in_progress",
            "assignee": "agent_123",
            "last_update": now - 3_600_000,
            "estimated_resolution": now + 7_200_000,
        },
        metadata={"executed_at": now, "source": "ticketing_system"},
    )


class ToolDispatcher:
    """Routes tool calls to named tool implementations."""

    def __init__(self, tools: Optional[Dict[str, Tool]] = None) -> None:
        self._tools: Dict[str, Tool] = dict(tools or {})

    @classmethod
    def with_defaults(cls) -> "ToolDispatcher":
        return cls(
            {
                "kb.search": _search_knowledge_base,
                "create_ticket": _create_ticket,
                "fetch_status": _fetch_status,
            }
        )

    def register(self, name: str, tool: Tool) -> None:
        self._tools[name] = tool

    def names(self) -> list[str]:
        return sorted(self._tools)

    async def dispatch(self, call: ToolCall, context: "WorkflowContext") -> ToolResult:
        tool = self._tools.get(call.name)
        if tool is None:
            raise StepError(f"Unknown tool: {call.name}", retryable=False, code="unknown_tool")
        return await tool(call, context)


class AIQueryHandler(StepHandler):
    """Send a prompt to the AI binding, or simulate a reply without one."""

    name = "ai_query"
    model_id = "@cf/meta/llama-3.3-70b-instruct-fp8"
    system_prompt = "You are a helpful AI assistant processing a workflow step."
    max_tokens = 1000

    def validate(self, input: Any) -> bool:
        return (
            isinstance(input, dict)
            and isinstance(input.get("query"), str)
            and len(input["query"]) > 0
        )

    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        model = input.get("model") or DEFAULT_AI_MODEL
        ai = _binding(context, "ai")
        if ai is None:
            return {
                "response": f"AI response to: {input['query']}",
                "model": model,
                "timestamp": _now_ms(),
                "tokens_used": 0,
            }

        payload = {
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": input["query"]},
            ],
            "max_tokens": self.max_tokens,
        }
        try:
            response = await ai.run(self.model_id, payload)
        except Exception as e:
            raise StepError(f"AI query failed: {type(e).__name__}: {e}") from e

        usage = response.get("usage") or {}
        return {
            "response": response.get("response"),
            "model": model,
            "timestamp": _now_ms(),
            "tokens_used": usage.get("total_tokens", 0),
        }


class ExecuteToolHandler(StepHandler):
    """Invoke a named external tool through a ``ToolDispatcher``.

    Tool failures are reported in the returned ``ToolResult`` instead of
    failing the step.
    """

    name = "execute_tool"

    def __init__(self, dispatcher: Optional[ToolDispatcher] = None) -> None:
        self.dispatcher = dispatcher or ToolDispatcher.with_defaults()

    def validate(self, input: Any) -> bool:
        if not isinstance(input, dict):
            return False
        call = input.get("tool_call")
        return isinstance(call, dict) and isinstance(call.get("name"), str)

    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        try:
            call = ToolCall.model_validate(input["tool_call"])
            result = await self.dispatcher.dispatch(call, context)
        except Exception as e:
            logger.warning(f"Tool call {input['tool_call'].get('name')} failed: {e}")
            result = ToolResult(success=False, error=str(e))
        result.metadata.setdefault("executed_at", _now_ms())
        return result.model_dump()


class PersistDataHandler(StepHandler):
    """Write ``data`` under ``key`` in the key-value binding.

    A ``None`` payload deletes the key instead. Compensation deletes whatever
    the step stored.
    """

    name = "persist_data"

    def __init__(self, ttl: int = KV_EXPIRATION_TTL) -> None:
        self.ttl = ttl

    def validate(self, input: Any) -> bool:
        return isinstance(input, dict) and isinstance(input.get("key"), str)

    def _store(self, context: "WorkflowContext") -> Any:
        kv = _binding(context, "kv")
        if kv is None:
            raise StepError(
                "Data persistence failed: no key-value binding configured",
                retryable=False,
                code="missing_binding",
            )
        return kv

    async def execute(self, input: Any, context: "WorkflowContext") -> Any:
        kv = self._store(context)
        key = input["key"]
        data = input.get("data")
        try:
            if data is None:
                await kv.delete(key)
                return {"deleted": True, "key": key}

            value = json.dumps(
                {"data": data, "session_id": context.session_id, "timestamp": _now_ms()},
                default=str,
            )
            await kv.put(key, value, ttl=self.ttl)
        except Exception as e:
            raise StepError(f"Data persistence failed: {type(e).__name__}: {e}") from e
        return {"stored": True, "key": key, "timestamp": _now_ms()}

    async def compensate(self, input: Any, context: "WorkflowContext") -> None:
        if not isinstance(input, dict) or not input.get("stored"):
            return
        kv = self._store(context)
        await kv.delete(input["key"])
        logger.info(f"Removed stored data for key {input['key']}")


def register_builtin_handlers(
    registry: "StepHandlerRegistry", dispatcher: Optional[ToolDispatcher] = None
) -> None:
    """Register ``ai_query``, ``execute_tool`` and ``persist_data``."""
    registry.register(AIQueryHandler())
    registry.register(ExecuteToolHandler(dispatcher))
    registry.register(PersistDataHandler())


__all__ = [
    "AIQueryHandler",
    "ExecuteToolHandler",
    "PersistDataHandler",
    "Tool",
    "ToolCall",
    "ToolDispatcher",
    "ToolResult",
    "register_builtin_handlers",
]
