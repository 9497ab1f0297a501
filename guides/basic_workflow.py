"""Simple example showing a two-step workflow sharing outputs via the context."""

import asyncio

from sagaflow import StepTemplate, WorkflowContext, WorkflowDefinition, WorkflowEngine


async def main():
    """Basic workflow run example."""
    engine = WorkflowEngine()

    async def fetch_order(input, context):
        return {"order_id": input["order_id"], "total": 42}

    async def price_order(input, context):
        order = context.variables["step_fetch_output"]
        return {"order_id": order["order_id"], "total_with_tax": order["total"] * 1.2}

    engine.registry.register_function("fetch_order", fetch_order)
    engine.registry.register_function("price_order", price_order)

    definition = WorkflowDefinition(
        id="price_order",
        name="Price order",
        steps=[
            StepTemplate(id="fetch", name="fetch_order", input={"order_id": "ord-1"}),
            StepTemplate(id="price", name="price_order"),
        ],
    )

    result = await engine.run(definition, WorkflowContext(session_id="session-1"))

    print(f"✅ Workflow finished: success={result.success}")
    print(f"📋 Execution ID: {result.execution_id}")
    print(f"🔗 Result: {result.result}")


if __name__ == "__main__":
    asyncio.run(main())
