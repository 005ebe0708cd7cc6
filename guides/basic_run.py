"""Simple example running a trigger followed by an echo action."""

import asyncio

from nexusflow import WorkflowDefinition, WorkflowExecutor
from nexusflow.credentials import InMemorySecretStore


async def main():
    """Basic workflow run example."""
    definition = WorkflowDefinition.model_validate(
        {
            "name": "welcome-customer",
            "steps": [
                {"id": "start", "kind": "trigger", "label": "New signup"},
                {
                    "id": "greet",
                    "kind": "external_action",
                    "label": "Send greeting",
                    "config": {
                        "serviceId": "demo",
                        "actionId": "echo",
                        "parameters": {"template": "welcome"},
                    },
                },
                {"id": "pause", "kind": "wait", "config": {"duration": "250ms"}},
            ],
            "edges": [
                {"source": "start", "target": "greet"},
                {"source": "greet", "target": "pause"},
            ],
        }
    )

    executor = WorkflowExecutor(secret_store=InMemorySecretStore())
    report = await executor.execute(definition, {"customer_id": "cust-123", "plan": "premium"})

    print(f"✅ Run finished: {report.status.value}")
    print(f"📋 Run ID: {report.run_id}")
    for event in executor.events(report.run_id):
        print(f"  {event.level.value:<7} {event.message}")
    print(f"🔗 Greeting received: {report.results['greet']['upstream_data']}")


if __name__ == "__main__":
    asyncio.run(main())
