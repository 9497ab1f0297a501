"""Support-bot facing entry points that run the predefined workflows.

Each operation builds the workflow for its request and derives an
idempotency key from the request content, so repeating the same request
while the first run is tracked returns that run's result.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

from .contracts import ConversationContext, WorkflowContext, WorkflowResult
from .definitions import (
    Priority,
    create_complex_query_workflow,
    create_escalation_workflow,
    create_tool_chain_workflow,
    get_workflow_definition,
)
from .engine import WorkflowEngine
from .errors import WorkflowNotFoundError
from .handlers.builtin import ToolCall

logger = logging.getLogger(__name__)

URGENT_KEYWORDS = ("urgent", "critical", "emergency", "down", "broken")
HIGH_KEYWORDS = ("important", "asap", "quickly", "soon")

TOOL_KEYWORDS = {
    "kb.search": ("search", "find", "documentation"),
    "create_ticket": ("ticket", "issue", "problem"),
    "fetch_status": ("status", "update"),
}


def hash_key(text: str) -> str:
    """Stable short digest of ``text`` for use inside idempotency keys."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def determine_priority(query: str) -> Priority:
    lowered = query.lower()
    if any(keyword in lowered for keyword in URGENT_KEYWORDS):
        return "urgent"
    if any(keyword in lowered for keyword in HIGH_KEYWORDS):
        return "high"
    return "medium"


def suggest_tools(query: str) -> List[str]:
    """Pick the tools a query mentions, in a fixed order."""
    lowered = query.lower()
    return [
        tool
        for tool, keywords in TOOL_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    ]


class WorkflowService:
    """Runs the support workflows on a ``WorkflowEngine``.

    Args:
        bindings: Collaborators (AI, key-value store) handed to every step.
        engine: Engine to run on; a default engine is created when omitted.
    """

    def __init__(
        self, bindings: Any = None, engine: Optional[WorkflowEngine] = None
    ) -> None:
        self.bindings = bindings
        self.engine = engine or WorkflowEngine()

    def create_workflow_context(
        self,
        conversation: ConversationContext,
        variables: Optional[Dict[str, Any]] = None,
    ) -> WorkflowContext:
        profile = conversation.user_profile
        return WorkflowContext(
            session_id=conversation.session_id,
            user_id=profile.id if profile else None,
            conversation_context=conversation,
            bindings=self.bindings,
            variables=dict(variables or {}),
        )

    async def process_complex_query(
        self,
        query: str,
        conversation: ConversationContext,
        idempotency_key: Optional[str] = None,
    ) -> WorkflowResult:
        """Answer ``query`` with the complex query workflow.

        Priority and extra tool steps are chosen from the query text. The
        key defaults to ``complex_query_<session>_<hash(query)>``.
        """
        priority = determine_priority(query)
        tools = suggest_tools(query)
        definition = create_complex_query_workflow(query, priority=priority, tools=tools)
        key = idempotency_key or (
            f"complex_query_{conversation.session_id}_{hash_key(query)}"
        )
        logger.info(
            f"Processing complex query for session {conversation.session_id} "
            f"(priority={priority}, tools={tools}, key={key})"
        )
        return await self.engine.run(
            definition, self.create_workflow_context(conversation), key
        )

    async def execute_tool_chain(
        self,
        tool_calls: Sequence[Union[ToolCall, Dict[str, Any]]],
        conversation: Optional[ConversationContext] = None,
    ) -> WorkflowResult:
        """Run ``tool_calls`` in sequence.

        The key depends only on the tool names and parameters, so the same
        chain is never executed twice while its result is retained.
        """
        calls = [ToolCall.model_validate(call) for call in tool_calls]
        definition = create_tool_chain_workflow(
            tool_calls=[call.model_dump() for call in calls]
        )
        signature = "_".join(
            f"{call.name}:{json.dumps(call.parameters, sort_keys=True, default=str)}"
            for call in calls
        )
        key = f"tool_chain_{hash_key(signature)}"
        conversation = conversation or ConversationContext(session_id="")
        return await self.engine.run(
            definition, self.create_workflow_context(conversation), key
        )

    async def handle_escalation(
        self,
        issue: str,
        conversation: ConversationContext,
        title: str,
        description: str = "",
        priority: str = "medium",
        category: str = "general",
    ) -> WorkflowResult:
        """Hand ``issue`` over to a human agent through a new ticket."""
        ticket_data = {
            "title": title,
            "description": description,
            "priority": priority,
            "category": category,
        }
        definition = create_escalation_workflow(issue, ticket_data)
        key = f"escalation_{conversation.session_id}_{hash_key(issue)}"
        logger.info(
            f"Escalating issue for session {conversation.session_id} "
            f"(priority={priority}, key={key})"
        )
        return await self.engine.run(
            definition, self.create_workflow_context(conversation), key
        )

    async def execute_workflow_by_id(
        self,
        workflow_id: str,
        conversation: ConversationContext,
        variables: Optional[Dict[str, Any]] = None,
    ) -> WorkflowResult:
        """Run a predefined workflow as-is.

        The key carries a millisecond timestamp, so separate calls start
        separate runs.

        Raises:
            WorkflowNotFoundError: ``workflow_id`` is not in the catalogue.
        """
        definition = get_workflow_definition(workflow_id)
        if definition is None:
            raise WorkflowNotFoundError(workflow_id)
        key = f"{workflow_id}_{conversation.session_id}_{int(time.time() * 1000)}"
        return await self.engine.run(
            definition, self.create_workflow_context(conversation, variables), key
        )


__all__ = [
    "WorkflowService",
    "determine_priority",
    "hash_key",
    "suggest_tools",
]
