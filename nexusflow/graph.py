"""Validated, read-only view of a workflow graph."""

from __future__ import annotations

import json
import logging
from collections import deque
from pathlib import Path
from typing import Dict, Iterable, List, Set

import yaml

from .contracts import Edge, Step, StepKind, WorkflowDefinition
from .errors import InvalidGraph, MissingTrigger

logger = logging.getLogger(__name__)


def _unique(ids: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    ordered: List[str] = []
    for step_id in ids:
        if step_id not in seen:
            seen.add(step_id)
            ordered.append(step_id)
    return ordered


class WorkflowGraph:
    """Immutable graph of steps and dependencies for a single run.

    Construction validates the definition:

    - step ids are unique,
    - every edge references existing steps and is not a self-edge,
    - the graph is acyclic,
    - there is exactly one trigger step.

    Raises:
        InvalidGraph: On duplicate ids, dangling or self edges, or cycles.
        MissingTrigger: When the trigger count is not exactly one.
    """

    def __init__(self, definition: WorkflowDefinition) -> None:
        self.definition = definition
        self._steps: Dict[str, Step] = {}
        for step in definition.steps:
            if step.id in self._steps:
                raise InvalidGraph(f"Duplicate step id: {step.id}")
            self._steps[step.id] = step

        self._incoming: Dict[str, List[Edge]] = {step_id: [] for step_id in self._steps}
        self._outgoing: Dict[str, List[Edge]] = {step_id: [] for step_id in self._steps}
        for edge in definition.edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in self._steps:
                    raise InvalidGraph(
                        f"Edge {edge.source} -> {edge.target} references unknown step {endpoint}"
                    )
            if edge.source == edge.target:
                raise InvalidGraph(f"Self-edge on step {edge.source}")
            self._incoming[edge.target].append(edge)
            self._outgoing[edge.source].append(edge)

        self._check_acyclic()

        triggers = [s for s in self._steps.values() if s.kind == StepKind.TRIGGER]
        if len(triggers) != 1:
            raise MissingTrigger(
                f"Workflow must have exactly one trigger step, found {len(triggers)}"
            )
        self._trigger = triggers[0]

    # ------------------------------------------------------------------
    def _check_acyclic(self) -> None:
        in_degree = {step_id: len(self.parents(step_id)) for step_id in self._steps}
        queue = deque(step_id for step_id, degree in in_degree.items() if degree == 0)
        visited = 0
        while queue:
            step_id = queue.popleft()
            visited += 1
            for child in self.children(step_id):
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    queue.append(child)
        if visited != len(self._steps):
            cyclic = sorted(step_id for step_id, degree in in_degree.items() if degree > 0)
            raise InvalidGraph(f"Workflow graph contains a cycle through: {', '.join(cyclic)}")

    # ------------------------------------------------------------------
    @property
    def trigger(self) -> Step:
        return self._trigger

    @property
    def steps(self) -> List[Step]:
        return list(self._steps.values())

    def step(self, step_id: str) -> Step:
        try:
            return self._steps[step_id]
        except KeyError:
            raise KeyError(f"Unknown step: {step_id}") from None

    def incoming_edges(self, step_id: str) -> List[Edge]:
        """Edges into ``step_id`` in declaration order."""
        return list(self._incoming[step_id])

    def parents(self, step_id: str) -> List[str]:
        """Distinct parent ids of ``step_id``, ordered by first incoming edge."""
        return _unique(edge.source for edge in self._incoming[step_id])

    def children(self, step_id: str) -> List[str]:
        """Distinct child ids of ``step_id``, ordered by first outgoing edge."""
        return _unique(edge.target for edge in self._outgoing[step_id])

    def reachable_from_trigger(self) -> Set[str]:
        seen = {self._trigger.id}
        queue = deque([self._trigger.id])
        while queue:
            for child in self.children(queue.popleft()):
                if child not in seen:
                    seen.add(child)
                    queue.append(child)
        return seen

    def orphans(self) -> List[str]:
        """Non-trigger steps without incoming edges; they can never become ready."""
        return [
            step_id
            for step_id, edges in self._incoming.items()
            if not edges and step_id != self._trigger.id
        ]

    def descendants(self, step_id: str) -> Set[str]:
        found: Set[str] = set()
        queue = deque(self.children(step_id))
        while queue:
            child = queue.popleft()
            if child not in found:
                found.add(child)
                queue.extend(self.children(child))
        return found

    def credential_ids(self) -> List[str]:
        """Credential ids referenced by any step, in step order."""
        return _unique(
            credential_id
            for step in self._steps.values()
            if (credential_id := getattr(step.config, "credential_id", None))
        )

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps


def load_definition(path: str | Path) -> WorkflowDefinition:
    """Load a workflow definition from a YAML or JSON document."""
    path = Path(path)
    text = path.read_text()
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    logger.debug(f"Loaded workflow definition from {path}")
    return WorkflowDefinition.model_validate(data)


def build_graph(definition: WorkflowDefinition | dict) -> WorkflowGraph:
    """Validate ``definition`` (model or plain mapping) and return its graph."""
    if not isinstance(definition, WorkflowDefinition):
        definition = WorkflowDefinition.model_validate(definition)
    return WorkflowGraph(definition)
