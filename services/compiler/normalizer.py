"""
Graph Normalizer

Validates an automation graph and linearizes it into an ordered list of
compiled steps. Each trigger is an entry point; its pipeline is the set of
actions reachable through outgoing edges, ordered so that every action runs
after all of its upstream actions (ties follow edge declaration order).
"""

import heapq
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from core.graph import AutomationGraph, GraphNode, GraphSchemaValidator, NodeKind

from .base import CompilerReport
from .builders import OperationBuilder, OperationBuilderRegistry, StepTarget, function_name_for, registry, trigger_key_for
from .errors import (
    CYCLE_DETECTED,
    MALFORMED_GRAPH,
    UNREACHABLE_NODE,
    UNSUPPORTED_OPERATION,
    CompileError,
)

logger = logging.getLogger(__name__)

GraphInput = Union[AutomationGraph, Dict[str, Any]]


@dataclass(frozen=True)
class CompiledStep:
    """One emitted function, produced once per compile and never mutated"""
    node: GraphNode
    function_name: str
    emitted_source: str
    builder: OperationBuilder
    trigger_key: Optional[str] = None


@dataclass(frozen=True)
class TriggerPipeline:
    """A trigger and the ordered action steps it runs"""
    trigger: CompiledStep
    steps: Tuple[CompiledStep, ...]


@dataclass(frozen=True)
class NormalizedGraph:
    graph: AutomationGraph
    steps: Tuple[CompiledStep, ...]
    pipelines: Tuple[TriggerPipeline, ...]
    warnings: Tuple[Dict[str, Any], ...]


class GraphNormalizer:
    """
    Graph normalizer: AutomationGraph → ordered CompiledStep list

    Pipeline:
    1) structural validation (schema, unique ids, edge endpoints, triggers)
    2) registry resolution for every node
    3) per-trigger walk with cycle detection
    4) unreachable node warnings
    5) step rendering
    """

    def __init__(self, builder_registry: Optional[OperationBuilderRegistry] = None):
        self.registry = builder_registry or registry
        self.schema_validator = GraphSchemaValidator()
        self.report = CompilerReport()

    def run(self, graph: GraphInput) -> NormalizedGraph:
        self.report = CompilerReport()

        # 1) Structure
        graph = self._coerce_graph(graph)
        nodes = graph.node_map()
        self._validate_structure(graph)

        # 2) Registry resolution
        builders = {}
        for node in graph.nodes:
            if not self.registry.has(node.registry_key):
                self._fail(UNSUPPORTED_OPERATION, node.id,
                           f"No builder registered for '{node.registry_key}'",
                           hint="GET /registry lists the supported operations")
            builders[node.id] = self.registry.get(node.registry_key, node.id)

        # 3) Walk each trigger
        orders: List[Tuple[GraphNode, List[str]]] = []
        reached = set()
        for trigger in graph.triggers():
            order = self._walk(graph, trigger.id)
            reached.add(trigger.id)
            reached.update(order)
            orders.append((trigger, order))

        # 4) Unreachable nodes
        for node in graph.nodes:
            if node.id not in reached:
                message = f"Node '{node.id}' is not reachable from any trigger and was dropped"
                self.report.add_warning(UNREACHABLE_NODE, f"nodes.{node.id}", message,
                                        hint="Connect it downstream of a trigger or delete it")
                logger.warning(f"⚠️ {message}")

        # 5) Render
        names: Dict[str, str] = {}
        compiled: Dict[str, CompiledStep] = {}
        steps: List[CompiledStep] = []
        pipelines: List[TriggerPipeline] = []
        trigger_keys: Dict[str, str] = {}
        for trigger, order in orders:
            trigger_step = self._compile_node(nodes[trigger.id], builders, names, trigger_keys)
            steps.append(trigger_step)
            pipeline_steps = []
            for node_id in order:
                if node_id not in compiled:
                    compiled[node_id] = self._compile_node(nodes[node_id], builders, names, trigger_keys)
                    steps.append(compiled[node_id])
                pipeline_steps.append(compiled[node_id])
            pipelines.append(TriggerPipeline(trigger_step, tuple(pipeline_steps)))

        logger.debug(f"Normalized {len(graph.nodes)} nodes into {len(steps)} steps")
        return NormalizedGraph(graph, tuple(steps), tuple(pipelines), tuple(self.report.warnings))

    def _fail(self, code: str, node_id: Optional[str], message: str, path: str = "", hint: Optional[str] = None):
        self.report.add_error(code, path or (f"nodes.{node_id}" if node_id else ""), message, hint)
        raise CompileError(code, node_id, message, self.report)

    def _coerce_graph(self, graph: GraphInput) -> AutomationGraph:
        model = graph if isinstance(graph, AutomationGraph) else None
        issues = self.schema_validator.validate_document(graph.model_dump() if model is not None else graph)
        if issues:
            for issue in issues:
                self.report.add_error(MALFORMED_GRAPH, issue.path, issue.message)
            first = issues[0]
            raise CompileError(MALFORMED_GRAPH, first.node_id, f"{first.path}: {first.message}", self.report)
        if model is not None:
            return model
        try:
            return AutomationGraph.model_validate(graph)
        except PydanticValidationError as e:
            error = e.errors()[0]
            loc = list(error.get("loc", ()))
            node_id = None
            if len(loc) >= 2 and loc[0] == "nodes" and isinstance(loc[1], int):
                node_id = graph["nodes"][loc[1]].get("id") or f"nodes[{loc[1]}]"
            path = ".".join(str(part) for part in loc)
            self._fail(MALFORMED_GRAPH, node_id, f"{path}: {error.get('msg')}", path)

    def _validate_structure(self, graph: AutomationGraph):
        seen = set()
        for node in graph.nodes:
            if node.id in seen:
                self._fail(MALFORMED_GRAPH, node.id, f"Duplicate node id '{node.id}'")
            seen.add(node.id)

        nodes = graph.node_map()
        for index, edge in enumerate(graph.edges):
            for end in (edge.source, edge.target):
                if end not in nodes:
                    self._fail(MALFORMED_GRAPH, end, f"Edge {edge.source} -> {edge.target} references unknown node '{end}'",
                               f"edges.{index}")
            if nodes[edge.target].kind == NodeKind.TRIGGER:
                self._fail(MALFORMED_GRAPH, edge.target, f"Edge {edge.source} -> {edge.target} points into a trigger",
                           f"edges.{index}")

        if not graph.triggers():
            self._fail(MALFORMED_GRAPH, None, "Graph has no trigger nodes", "nodes")

    def _walk(self, graph: AutomationGraph, trigger_id: str) -> List[str]:
        """
        Depth-first walk from a trigger in edge declaration order.

        Returns the reachable actions ordered so each one follows all of its
        upstream actions; raises CYCLE_DETECTED when the walk revisits a node
        that is still on the current path.
        """
        discovery: Dict[str, int] = {trigger_id: 0}
        on_path = {trigger_id}
        stack = [(trigger_id, iter(graph.outgoing(trigger_id)))]
        while stack:
            node_id, targets = stack[-1]
            target = next(targets, None)
            if target is None:
                stack.pop()
                on_path.discard(node_id)
                continue
            if target in on_path:
                self._fail(CYCLE_DETECTED, target,
                           f"Node '{target}' is revisited from '{node_id}' in the walk from trigger '{trigger_id}'",
                           hint=f"Remove the edge {node_id} -> {target}")
            if target in discovery:
                continue
            discovery[target] = len(discovery)
            on_path.add(target)
            stack.append((target, iter(graph.outgoing(target))))

        reachable = set(discovery)
        indegree = {node_id: 0 for node_id in reachable}
        for edge in graph.edges:
            if edge.source in reachable and edge.target in reachable:
                indegree[edge.target] += 1

        order = []
        ready = [(discovery[trigger_id], trigger_id)]
        while ready:
            _, node_id = heapq.heappop(ready)
            if node_id != trigger_id:
                order.append(node_id)
            for target in graph.outgoing(node_id):
                indegree[target] -= 1
                if indegree[target] == 0:
                    heapq.heappush(ready, (discovery[target], target))
        return order

    def _compile_node(self, node: GraphNode, builders: Dict[str, OperationBuilder],
                      names: Dict[str, str], trigger_keys: Dict[str, str]) -> CompiledStep:
        builder = builders[node.id]
        function_name = function_name_for(builder.key, node.id)
        suffix = 2
        while function_name in names:
            function_name = f"{function_name_for(builder.key, node.id)}_{suffix}"
            suffix += 1
        names[function_name] = node.id

        trigger_key = None
        if node.kind == NodeKind.TRIGGER:
            trigger_key = trigger_key_for(builder.key, node.id, node.config)
            if trigger_key in trigger_keys:
                self._fail(MALFORMED_GRAPH, node.id,
                           f"Trigger key '{trigger_key}' is already used by node '{trigger_keys[trigger_key]}'")
            trigger_keys[trigger_key] = node.id

        source = builder.build(dict(node.config), StepTarget(function_name, node.id, trigger_key))
        return CompiledStep(node, function_name, source, builder, trigger_key)


def normalize(graph: GraphInput, builder_registry: Optional[OperationBuilderRegistry] = None) -> List[CompiledStep]:
    """Validate a graph and return its ordered compiled steps; raises CompileError."""
    return list(GraphNormalizer(builder_registry).run(graph).steps)
