"""Register a service action and fail fast when it is rejected."""

import asyncio

from nexusflow import FailureMode, WorkflowExecutor, build_graph
from nexusflow.activities import ActionRegistry, DefaultActivities
from nexusflow.activities.actions import register_demo_actions
from nexusflow.credentials import InMemorySecretStore
from nexusflow.errors import ActivityFailure

registry = ActionRegistry()
register_demo_actions(registry)


@registry.register("tickets", "create")
async def create_ticket(parameters, secret, upstream):
    if not parameters.get("title"):
        raise ActivityFailure("Ticket title is required", retryable=False)
    return {"ticket_id": "T-1001", "title": parameters["title"], "requested_by": upstream.get("user")}


async def main():
    graph = build_graph(
        {
            "steps": [
                {"id": "start", "kind": "trigger"},
                {
                    "id": "ticket",
                    "kind": "external_action",
                    "config": {
                        "serviceId": "tickets",
                        "actionId": "create",
                        "credentialId": "tickets-api",
                        "parameters": {"title": "Printer on fire"},
                    },
                },
                {
                    "id": "notify",
                    "kind": "external_action",
                    "config": {"serviceId": "demo", "actionId": "echo"},
                },
                {
                    "id": "broken",
                    "kind": "external_action",
                    "config": {"serviceId": "tickets", "actionId": "create"},
                },
            ],
            "edges": [
                {"source": "start", "target": "ticket"},
                {"source": "ticket", "target": "notify"},
                {"source": "start", "target": "broken"},
            ],
        }
    )

    executor = WorkflowExecutor(
        DefaultActivities(actions=registry),
        InMemorySecretStore({"tickets-api": "token-123"}),
    )

    # Default policy: the rejected ticket aborts the whole run.
    report = await executor.execute(graph, {"user": "ada"})
    print(f"fail_fast: {report.status.value} ({report.error})")

    # Permissive policy: only the failed branch is held back.
    report = await executor.execute(graph, {"user": "ada"}, failure_mode=FailureMode.CONTINUE)
    print(f"continue: {report.status.value}")
    for step_id, step in report.steps.items():
        print(f"  {step_id}: {step.status.value}")

    await executor.aclose()


if __name__ == "__main__":
    asyncio.run(main())
