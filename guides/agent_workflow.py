"""Run an AI agent step with tools, then publish its answer.

Requires the provider's API key in the environment, e.g. ``OPENAI_API_KEY``.

    python guides/agent_workflow.py "What is 17 * 23, and what is nexusflow?"
"""

import asyncio
import logging
import sys
from pathlib import Path

from nexusflow import LoggingObserver, WorkflowExecutor, load_definition


async def main(question: str):
    logging.basicConfig(level=logging.INFO)
    definition = load_definition(Path(__file__).with_name("agent_workflow.yaml"))
    executor = WorkflowExecutor(observers=[LoggingObserver()])

    missing = executor.missing_credentials(definition)
    if missing:
        print(f"Missing credentials: {missing}")
        return

    report = await executor.execute(definition, {"question": question})
    research = report.results.get("research") or {}
    print(f"Answer: {research.get('answer')}")
    for entry in research.get("trace", []):
        print(f"  [{entry['role']}] {entry['content'][:80]}")


if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "What is 6 * 7?"))
