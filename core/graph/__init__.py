"""
Automation graph document model and structural schema.
"""

from .models import AutomationGraph, GraphNode, GraphEdge, NodeKind
from .schema import GraphSchemaValidator, GraphIssue, GRAPH_SCHEMA

__all__ = [
    "AutomationGraph",
    "GraphNode",
    "GraphEdge",
    "NodeKind",
    "GraphSchemaValidator",
    "GraphIssue",
    "GRAPH_SCHEMA",
]
