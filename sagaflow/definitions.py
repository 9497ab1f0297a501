"""Predefined workflow definitions for common support operations.

The module-level definitions are templates; the ``create_*`` factories
return customised copies and never modify them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from .constants import DEFAULT_AI_MODEL
from .contracts import DEFAULT_RETRY_POLICY, StepTemplate, WorkflowDefinition

Priority = Literal["low", "medium", "high", "urgent"]


def _ai(step_id: str, query: str, max_retries: int, model: Optional[str] = None) -> StepTemplate:
    payload: Dict[str, Any] = {"query": query}
    if model:
        payload["model"] = model
    return StepTemplate(id=step_id, name="ai_query", input=payload, max_retries=max_retries)


def _tool(
    step_id: str,
    call_id: str,
    tool_name: str,
    max_retries: int,
    parameters: Optional[Dict[str, Any]] = None,
) -> StepTemplate:
    return StepTemplate(
        id=step_id,
        name="execute_tool",
        input={
            "tool_call": {"id": call_id, "name": tool_name, "parameters": parameters or {}}
        },
        max_retries=max_retries,
    )


def _persist(step_id: str, key: str, data: Any, max_retries: int) -> StepTemplate:
    return StepTemplate(
        id=step_id, name="persist_data", input={"key": key, "data": data}, max_retries=max_retries
    )


COMPLEX_QUERY_WORKFLOW = WorkflowDefinition(
    id="complex_query_processing",
    name="Complex Query Processing",
    description="Handles complex user queries that require multiple tools and AI reasoning",
    timeout=120_000,
    retry_config=DEFAULT_RETRY_POLICY,
    steps=[
        _ai(
            "analyze_query",
            "Analyze the user query and determine required tools and approach",
            2,
            DEFAULT_AI_MODEL,
        ),
        _tool("search_knowledge_base", "kb_search", "kb.search", 3),
        _ai(
            "generate_response",
            "Generate comprehensive response based on search results",
            2,
            DEFAULT_AI_MODEL,
        ),
        _persist("persist_interaction", "interaction_log", {}, 2),
    ],
    compensation_steps=[_persist("cleanup_temp_data", "temp_cleanup", None, 1)],
)

TOOL_CHAIN_WORKFLOW = WorkflowDefinition(
    id="tool_chain_execution",
    name="Tool Chain Execution",
    description="Executes multiple tools in sequence",
    timeout=180_000,
    retry_config=DEFAULT_RETRY_POLICY.model_copy(update={"max_attempts": 2}),
    steps=[
        _ai("validate_tools", "Validate tool chain and execution order", 1),
        _tool("execute_primary_tool", "primary_tool", "dynamic", 3),
        _tool("execute_secondary_tools", "secondary_tools", "dynamic", 2),
        _ai("aggregate_results", "Aggregate and synthesize tool results", 2),
    ],
)

ESCALATION_WORKFLOW = WorkflowDefinition(
    id="issue_escalation",
    name="Issue Escalation",
    description="Handles escalation of complex issues to human agents",
    timeout=300_000,
    retry_config=DEFAULT_RETRY_POLICY.model_copy(update={"max_attempts": 5}),
    steps=[
        _ai("assess_urgency", "Assess issue urgency and determine escalation path", 2),
        _tool("create_ticket", "ticket_creation", "create_ticket", 3),
        _tool("notify_agents", "notification", "send_notification", 2),
        _persist("update_session", "escalation_status", {}, 2),
        _ai(
            "generate_handoff_summary",
            "Generate comprehensive handoff summary for human agent",
            2,
        ),
    ],
    compensation_steps=[
        _tool("cancel_ticket", "ticket_cancellation", "cancel_ticket", 2),
        _persist("revert_session_state", "session_revert", None, 1),
    ],
)

DATA_PROCESSING_WORKFLOW = WorkflowDefinition(
    id="data_processing",
    name="Data Processing",
    description="Handles long-running data processing tasks",
    timeout=600_000,
    retry_config=DEFAULT_RETRY_POLICY.model_copy(
        update={"base_delay": 2000, "max_delay": 60000}
    ),
    steps=[
        _persist("prepare_data", "processing_prep", {}, 2),
        _ai("process_batch_1", "Process first batch of data", 3),
        _ai("process_batch_2", "Process second batch of data", 3),
        _ai("aggregate_results", "Aggregate processing results", 2),
        _persist("store_final_results", "final_results", {}, 3),
    ],
    compensation_steps=[_persist("cleanup_processing_data", "cleanup_temp", None, 1)],
)

WORKFLOW_REGISTRY: Dict[str, WorkflowDefinition] = {
    definition.id: definition
    for definition in (
        COMPLEX_QUERY_WORKFLOW,
        TOOL_CHAIN_WORKFLOW,
        ESCALATION_WORKFLOW,
        DATA_PROCESSING_WORKFLOW,
    )
}


def get_workflow_definition(workflow_id: str) -> Optional[WorkflowDefinition]:
    return WORKFLOW_REGISTRY.get(workflow_id)


def list_available_workflows() -> List[WorkflowDefinition]:
    return list(WORKFLOW_REGISTRY.values())


def _derive(base: WorkflowDefinition, steps: List[StepTemplate], **changes: Any) -> WorkflowDefinition:
    data = base.model_dump()
    data.update(changes)
    data["steps"] = [s.model_dump() for s in steps]
    return WorkflowDefinition.model_validate(data)


def _with_query(step: StepTemplate, query: str) -> StepTemplate:
    return step.model_copy(update={"input": {**step.input, "query": query}})


def create_complex_query_workflow(
    query: str, priority: Priority = "medium", tools: Optional[List[str]] = None
) -> WorkflowDefinition:
    """Customise the complex query workflow for ``query``.

    Each name in ``tools`` becomes an extra ``execute_tool`` step right after
    the analysis step.
    """
    steps = list(COMPLEX_QUERY_WORKFLOW.steps)
    steps[0] = _with_query(steps[0], f'Analyze this user query: "{query}"')
    steps[2] = _with_query(
        steps[2], f'Generate response for: "{query}" with priority: {priority}'
    )
    for index, tool_name in enumerate(tools or []):
        steps.insert(1 + index, _tool(f"tool_{tool_name}", f"tool_{index}", tool_name, 2))
    return _derive(COMPLEX_QUERY_WORKFLOW, steps)


def create_tool_chain_workflow(
    tool_calls: Optional[List[Dict[str, Any]]] = None,
    tools: Optional[List[str]] = None,
) -> WorkflowDefinition:
    """Replace the placeholder tool steps with concrete tool calls.

    ``tool_calls`` (full ``{"id", "name", "parameters"}`` mappings) take
    precedence over bare ``tools`` names.
    """
    steps = [s for s in TOOL_CHAIN_WORKFLOW.steps if s.name != "execute_tool"]
    if tool_calls:
        for index, call in enumerate(tool_calls):
            steps.insert(
                1 + index,
                StepTemplate(
                    id=f"tool_{index}",
                    name="execute_tool",
                    input={"tool_call": dict(call)},
                    max_retries=2,
                ),
            )
    elif tools:
        for index, tool_name in enumerate(tools):
            steps.insert(1 + index, _tool(f"tool_{tool_name}", f"tool_{index}", tool_name, 2))
    return _derive(TOOL_CHAIN_WORKFLOW, steps)


def create_escalation_workflow(
    issue: str, ticket_data: Dict[str, Any]
) -> WorkflowDefinition:
    """Customise the escalation workflow; urgent tickets get a 2 minute timeout."""
    steps = list(ESCALATION_WORKFLOW.steps)
    steps[0] = _with_query(steps[0], f'Assess urgency for issue: "{issue}"')
    ticket_step = steps[1]
    steps[1] = ticket_step.model_copy(
        update={
            "input": {
                "tool_call": {**ticket_step.input["tool_call"], "parameters": dict(ticket_data)}
            }
        }
    )
    steps[4] = _with_query(steps[4], f'Generate handoff summary for: "{issue}"')

    if ticket_data.get("priority") == "urgent":
        return _derive(ESCALATION_WORKFLOW, steps, timeout=120_000)
    return _derive(ESCALATION_WORKFLOW, steps)


__all__ = [
    "COMPLEX_QUERY_WORKFLOW",
    "TOOL_CHAIN_WORKFLOW",
    "ESCALATION_WORKFLOW",
    "DATA_PROCESSING_WORKFLOW",
    "WORKFLOW_REGISTRY",
    "create_complex_query_workflow",
    "create_escalation_workflow",
    "create_tool_chain_workflow",
    "get_workflow_definition",
    "list_available_workflows",
]
