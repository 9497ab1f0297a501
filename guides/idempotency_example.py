"""Example showing concurrent runs sharing one idempotency key."""

import asyncio

from sagaflow import StepTemplate, WorkflowContext, WorkflowDefinition, WorkflowEngine


async def main():
    engine = WorkflowEngine()
    calls = 0

    async def create_ticket(input, context):
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.5)
        return {"ticket_id": "TICKET-1"}

    engine.registry.register_function("create_ticket", create_ticket)
    definition = WorkflowDefinition(
        id="ticket",
        name="Create ticket",
        steps=[StepTemplate(id="create", name="create_ticket")],
    )

    results = await asyncio.gather(
        *(
            engine.run(definition, WorkflowContext(session_id="s1"), idempotency_key="ticket-s1")
            for _ in range(3)
        )
    )

    print(f"📋 Execution IDs: {sorted({r.execution_id for r in results})}")
    print(f"🔁 Handler calls: {calls}")


if __name__ == "__main__":
    asyncio.run(main())
