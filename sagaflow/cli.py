"""Command line interface for inspecting and running sagaflow workflows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from sagaflow.bindings import Bindings, InMemoryKeyValueStore
from sagaflow.config import load_config
from sagaflow.contracts import ConversationContext, WorkflowDefinition
from sagaflow.definitions import (
    get_workflow_definition,
    list_available_workflows,
)
from sagaflow.engine import WorkflowEngine
from sagaflow.persistence import ExecutionSummary
from sagaflow.service import WorkflowService

app = typer.Typer(help="CLI for sagaflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for inspecting and running workflows")
handler_app = typer.Typer(help="Commands for inspecting step handlers")
config_app = typer.Typer(help="Commands for inspecting configuration")

app.add_typer(workflow_app, name="workflow")
app.add_typer(handler_app, name="handler")
app.add_typer(config_app, name="config")


@app.callback()
def main() -> None:
    """sagaflow CLI entry point."""
    pass


def _load_definition_file(path: Path) -> WorkflowDefinition:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return WorkflowDefinition.model_validate(data)


def _resolve_definition(target: str) -> WorkflowDefinition:
    """Resolve ``target`` as a catalogue id or a YAML/JSON definition file."""
    definition = get_workflow_definition(target)
    if definition is not None:
        return definition

    path = Path(target).expanduser()
    if not path.is_file():
        typer.secho(f"Workflow not found: {target}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        return _load_definition_file(path)
    except (ValidationError, yaml.YAMLError) as e:
        typer.secho(f"Invalid workflow definition in {path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List the predefined workflows.

    Example:
        sagaflow workflow list
        # Output: complex_query_processing    Complex Query Processing    4 steps
    """
    for definition in list_available_workflows():
        typer.echo(
            f"{definition.id}\t{definition.name}\t{len(definition.steps)} steps"
        )


@workflow_app.command("show")
def workflow_show(target: str) -> None:
    """Show a workflow definition (catalogue id or definition file) as JSON."""
    definition = _resolve_definition(target)
    typer.echo(definition.model_dump_json(indent=2))


@workflow_app.command("validate")
def workflow_validate(path: Path) -> None:
    """
    Validate a workflow definition file against the registered handlers.

    Exits with code 1 when the file does not parse or a step references an
    unknown handler.
    """
    if not path.is_file():
        typer.secho(f"File not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        definition = _load_definition_file(path)
    except (ValidationError, yaml.YAMLError) as e:
        typer.secho(f"Invalid workflow definition: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    engine = WorkflowEngine()
    missing = [
        step.id
        for step in [*definition.steps, *definition.compensation_steps]
        if step.name not in engine.registry
    ]
    if missing:
        typer.secho(
            f"Steps without a registered handler: {', '.join(missing)}",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)
    typer.echo(f"{definition.id}: {len(definition.steps)} steps OK")


@workflow_app.command("run")
def workflow_run(
    target: str,
    session_id: str = typer.Option("cli", help="Session id for the workflow context"),
    key: Optional[str] = typer.Option(None, help="Idempotency key"),
    query: Optional[str] = typer.Option(
        None, help="User query for the complex query workflow"
    ),
    steps: bool = typer.Option(False, "--steps", help="Also print a per-step summary"),
) -> None:
    """
    Run a workflow with the built-in handlers and an in-memory key-value store.

    A ``--query`` for the complex query workflow picks its priority, tools
    and idempotency key from the query text.

    Prints the workflow result as JSON. Exits with code 1 if the run fails.

    Example:
        sagaflow workflow run complex_query_processing --query "reset my password"
        sagaflow workflow run ./my_workflow.yaml --key order-42
    """
    engine = WorkflowEngine(config=load_config())
    service = WorkflowService(bindings=Bindings(kv=InMemoryKeyValueStore()), engine=engine)
    conversation = ConversationContext(session_id=session_id)

    if query and target == "complex_query_processing":
        label = target
        run = service.process_complex_query(query, conversation, idempotency_key=key)
    elif key is None and get_workflow_definition(target) is not None:
        label = target
        run = service.execute_workflow_by_id(target, conversation)
    else:
        definition = _resolve_definition(target)
        label = definition.id
        run = engine.run(
            definition, service.create_workflow_context(conversation), idempotency_key=key
        )

    async def _run():
        result = await run
        executions = await engine.list_executions()
        execution = next((e for e in executions if e.id == result.execution_id), None)
        return result, execution

    try:
        result, execution = asyncio.run(_run())
    except Exception as e:
        typer.secho(f"Workflow {label} failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(result.model_dump_json(indent=2))
    if steps and execution is not None:
        summary = ExecutionSummary.from_execution(execution)
        typer.echo(summary.model_dump_json(indent=2))


@handler_app.command("list")
def handler_list() -> None:
    """List the step handlers registered by default."""
    engine = WorkflowEngine()
    for handler in engine.registry:
        flags = []
        if handler.can_compensate:
            flags.append("compensates")
        suffix = f"\t({', '.join(flags)})" if flags else ""
        typer.echo(f"{handler.name}{suffix}")


@config_app.command("show")
def config_show(path: Optional[Path] = None) -> None:
    """Print the effective configuration as JSON."""
    config = load_config(str(path) if path else None)
    typer.echo(json.dumps(config.model_dump(), indent=2))


if __name__ == "__main__":
    app()
