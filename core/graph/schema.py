"""
JSON Schema validation for automation graph documents
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from jsonschema.validators import Draft202012Validator

logger = logging.getLogger(__name__)


GRAPH_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "AutomationGraph",
    "type": "object",
    "required": ["id", "nodes"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "timezone": {"type": ["string", "null"]},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "kind", "app", "operation"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "kind": {"enum": ["trigger", "action"]},
                    "app": {"type": "string", "minLength": 1},
                    "operation": {"type": "string", "minLength": 1},
                    "label": {"type": ["string", "null"]},
                    "config": {"type": "object"},
                },
            },
        },
        "edges": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["source", "target"],
                "properties": {
                    "source": {"type": "string"},
                    "target": {"type": "string"},
                },
            },
        },
    },
}


@dataclass
class GraphIssue:
    """A structural problem found in a graph document"""
    path: str
    message: str
    node_id: Optional[str] = None


class GraphSchemaValidator:
    """Validates graph documents against the graph JSON schema"""

    def __init__(self, schema: Optional[Dict[str, Any]] = None):
        self.schema = schema or GRAPH_SCHEMA
        self.validator = Draft202012Validator(self.schema)

    def validate_document(self, doc: Any) -> List[GraphIssue]:
        """
        Validate a document against the schema

        Args:
            doc: The graph document to validate

        Returns:
            List of issues ordered by document path (empty if valid)
        """
        issues = []
        for error in sorted(self.validator.iter_errors(doc), key=lambda e: [str(p) for p in e.absolute_path]):
            path = list(error.absolute_path)
            issues.append(GraphIssue(
                path=".".join(str(p) for p in path) or "root",
                message=error.message,
                node_id=self._node_id_for(doc, path)
            ))

        for path in _non_finite_paths(doc, []):
            issues.append(GraphIssue(
                path=".".join(str(p) for p in path),
                message="NaN and Infinity are not valid JSON numbers",
                node_id=self._node_id_for(doc, path)
            ))

        if issues:
            logger.debug(f"Graph schema validation found {len(issues)} issue(s)")
        return issues

    def _node_id_for(self, doc: Any, path: List[Any]) -> Optional[str]:
        """Resolve the id of the node an error path points into, if any"""
        if len(path) < 2 or path[0] != "nodes" or not isinstance(path[1], int):
            return None
        nodes = doc.get("nodes") if isinstance(doc, dict) else None
        if not isinstance(nodes, list) or path[1] >= len(nodes):
            return None
        node = nodes[path[1]]
        if isinstance(node, dict) and isinstance(node.get("id"), str) and node["id"]:
            return node["id"]
        return f"nodes[{path[1]}]"


def _non_finite_paths(value: Any, path: List[Any]):
    """Yield the path of every NaN or infinite float inside a document"""
    if isinstance(value, float) and not math.isfinite(value):
        yield path
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from _non_finite_paths(item, path + [key])
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from _non_finite_paths(item, path + [index])
