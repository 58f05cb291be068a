"""Graph traversal engine: runs a workflow graph with branching and loop support."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from ..errors import IterationLimitExceeded, NoNodesError
from .conditions import ConditionResult
from .graph import find_start_nodes, valid_edges
from .schema import Edge, Node
from .steps import ConditionConfig, Step

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 10_000

# (node_id, "running" | "success" | "error", error_message=None)
StatusCallback = Callable[..., None]


class StepRunner(Protocol):
    async def execute_step(self, step: Step) -> Any: ...


class ConditionRunner(Protocol):
    async def evaluate(self, config: ConditionConfig) -> ConditionResult: ...


@dataclass
class RunResult:
    """Outcome of one traversal."""

    success: bool
    steps_executed: int = 0
    steps_succeeded: int = 0
    iterations: int = 0
    visit_order: list[str] = field(default_factory=list)
    stopped: bool = False


class GraphTraversalEngine:
    """Walks a workflow graph depth-first from its start nodes.

    Loops are legal: a node may run many times. All traversals of one run
    share a single iteration counter, capped at ``max_iterations``. Nodes
    run strictly one after another in edge-list order, since steps mutate
    shared variables and a shared page.
    """

    def __init__(self, max_iterations: int = MAX_ITERATIONS):
        self.max_iterations = max_iterations
        self.steps_executed = 0
        self.steps_succeeded = 0
        self.iterations = 0
        self.visit_order: list[str] = []
        self._stop_requested = False

    def request_stop(self) -> None:
        """Stop before the next node is issued. An in-flight step is not interrupted."""
        self._stop_requested = True

    async def execute(
        self,
        nodes: list[Node],
        edges: list[Edge],
        step_executor: StepRunner,
        conditional_evaluator: ConditionRunner,
        on_status: StatusCallback | None = None,
    ) -> RunResult:
        if not nodes:
            raise NoNodesError()

        self.steps_executed = 0
        self.steps_succeeded = 0
        self.iterations = 0
        self.visit_order = []

        node_map = {node.id: node for node in nodes}
        edges = valid_edges(nodes, edges)
        outgoing: dict[str, list[Edge]] = {}
        for edge in edges:
            outgoing.setdefault(edge.source, []).append(edge)

        start_nodes = find_start_nodes(nodes, edges)
        visited: set[str] = set()

        try:
            for start in start_nodes:
                if self._stop_requested:
                    break
                await self._traverse(
                    start.id, node_map, outgoing, visited, step_executor, conditional_evaluator, on_status
                )
            stopped = self._stop_requested
        finally:
            # A stop applies to one run; the engine can be executed again afterwards
            self._stop_requested = False

        if stopped:
            logger.info("Run stopped on request after %d iterations", self.iterations)
        return RunResult(
            success=not stopped,
            steps_executed=self.steps_executed,
            steps_succeeded=self.steps_succeeded,
            iterations=self.iterations,
            visit_order=list(self.visit_order),
            stopped=stopped,
        )

    async def _traverse(
        self,
        start_id: str,
        node_map: dict[str, Node],
        outgoing: dict[str, list[Edge]],
        visited: set[str],
        step_executor: StepRunner,
        conditional_evaluator: ConditionRunner,
        on_status: StatusCallback | None,
    ) -> None:
        # Explicit stack in place of recursion: children are pushed in reverse
        # so they pop in edge-list order, giving the same pre-order as a
        # recursive walk without being bound by the interpreter stack depth.
        stack = [start_id]
        while stack:
            if self._stop_requested:
                return

            node_id = stack.pop()
            self.iterations += 1
            if self.iterations > self.max_iterations:
                raise IterationLimitExceeded(self.max_iterations)

            visited.add(node_id)
            self.visit_order.append(node_id)
            next_ids = await self._run_node(
                node_map[node_id], outgoing.get(node_id, []), step_executor, conditional_evaluator, on_status
            )
            stack.extend(reversed(next_ids))

    async def _run_node(
        self,
        node: Node,
        out_edges: list[Edge],
        step_executor: StepRunner,
        conditional_evaluator: ConditionRunner,
        on_status: StatusCallback | None,
    ) -> list[str]:
        _emit(on_status, node.id, "running")

        condition = node.condition_config
        counted = condition is not None or node.step is not None
        if counted:
            self.steps_executed += 1

        condition_result: bool | None = None
        try:
            if condition is not None:
                result = await conditional_evaluator.evaluate(condition)
                condition_result = result.condition_result
            elif node.step is not None:
                await step_executor.execute_step(node.step)
        except Exception as e:
            _emit(on_status, node.id, "error", str(e))
            raise

        if counted:
            self.steps_succeeded += 1
        _emit(on_status, node.id, "success")

        if condition is not None:
            branch = "if" if condition_result else "else"
            return [edge.target for edge in out_edges if edge.source_handle == branch]
        return [edge.target for edge in out_edges]


def _emit(on_status: StatusCallback | None, node_id: str, status: str, error: str | None = None) -> None:
    if on_status is None:
        return
    if error is None:
        on_status(node_id, status)
    else:
        on_status(node_id, status, error)
