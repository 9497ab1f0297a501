"""Example showing rollback of completed steps when a later step fails."""

import asyncio

from sagaflow import (
    StepError,
    StepTemplate,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowEngine,
)
from sagaflow.bindings import Bindings, InMemoryKeyValueStore


async def main():
    engine = WorkflowEngine()

    async def charge_card(input, context):
        raise StepError("card declined", retryable=False)

    engine.registry.register_function("charge_card", charge_card)

    kv = InMemoryKeyValueStore()
    definition = WorkflowDefinition(
        id="checkout",
        name="Checkout",
        steps=[
            StepTemplate(id="reserve", name="persist_data", input={"key": "cart:1", "data": {"sku": "A"}}),
            StepTemplate(id="charge", name="charge_card", input={"amount": 10}),
        ],
        compensation_steps=[
            StepTemplate(id="release", name="persist_data", input={"key": "cart:1", "data": None}),
        ],
    )

    try:
        await engine.run(definition, WorkflowContext(session_id="s1", bindings=Bindings(kv=kv)))
    except StepError as e:
        print(f"❌ Checkout failed: {e}")

    print(f"🧹 Keys left after rollback: {kv.keys()}")


if __name__ == "__main__":
    asyncio.run(main())
