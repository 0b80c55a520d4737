"""
Graph → Bundle compiler entry points.
"""

import logging
import time
from typing import Any, Dict, Optional

from core.graph import AutomationGraph
from core.logging_config import get_compile_logger

from .assembler import Assembler, Bundle
from .base import BaseCompiler, CompilerReport
from .builders import OperationBuilderRegistry
from .errors import CompileError
from .normalizer import GraphInput, GraphNormalizer

logger = logging.getLogger(__name__)
compile_logger = get_compile_logger(__name__)


def _describe(graph: GraphInput):
    if isinstance(graph, AutomationGraph):
        return graph.id, len(graph.nodes), len(graph.edges)
    if isinstance(graph, dict):
        nodes = graph.get("nodes")
        edges = graph.get("edges")
        return (
            str(graph.get("id") or "<unnamed>"),
            len(nodes) if isinstance(nodes, list) else 0,
            len(edges) if isinstance(edges, list) else 0,
        )
    return "<invalid>", 0, 0


class BundleCompiler(BaseCompiler):
    """
    Bundle compiler: AutomationGraph → Bundle

    Runs the normalizer and the assembler. Either a complete bundle is
    returned or the report carries the fatal error; nothing partial escapes.
    """

    def __init__(self, builder_registry: Optional[OperationBuilderRegistry] = None,
                 assembler: Optional[Assembler] = None):
        super().__init__()
        self.normalizer = GraphNormalizer(builder_registry)
        self.assembler = assembler or Assembler()

    def compile(self, input_doc: GraphInput, ctx: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Main compilation method for Graph → Bundle

        Args:
            input_doc: AutomationGraph model or raw graph document
            ctx: Optional overrides (``timezone``)

        Returns:
            Dict with bundle (None on failure) and report
        """
        ctx = ctx or {}
        workflow_id, nodes, edges = _describe(input_doc)
        compile_logger.log_compile_start(workflow_id, nodes, edges)
        started = time.perf_counter()

        try:
            # 1) Normalize
            normalized = self.normalizer.run(input_doc)
            self.report = self.normalizer.report

            # 2) Apply context overrides
            if ctx.get("timezone") and not normalized.graph.timezone:
                normalized = normalized.__class__(
                    normalized.graph.model_copy(update={"timezone": ctx["timezone"]}),
                    normalized.steps,
                    normalized.pipelines,
                    normalized.warnings,
                )

            # 3) Assemble
            bundle = self.assembler.assemble(normalized)
        except CompileError as e:
            self.report = e.report or self.normalizer.report
            compile_logger.log_compile_error(workflow_id, e.code, e.message, e.node_id)
            compile_logger.log_compile_end(workflow_id, (time.perf_counter() - started) * 1000, "failed")
            return {"bundle": None, "report": self.report, "error": e}

        for warning in self.report.warnings:
            logger.warning(f"{warning['code']} at {warning['path']}: {warning['message']}")
        compile_logger.log_compile_end(workflow_id, (time.perf_counter() - started) * 1000, "completed")
        return {"bundle": bundle, "report": self.report, "error": None}


def compile_graph(graph: GraphInput, builder_registry: Optional[OperationBuilderRegistry] = None,
                  timezone: Optional[str] = None) -> Bundle:
    """Compile a graph into a Bundle; raises CompileError on failure."""
    result = BundleCompiler(builder_registry).compile(graph, {"timezone": timezone} if timezone else None)
    if result["error"] is not None:
        raise result["error"]
    return result["bundle"]


def compile_report(graph: GraphInput) -> CompilerReport:
    """Validate a graph without keeping the bundle."""
    return BundleCompiler().compile(graph)["report"]
