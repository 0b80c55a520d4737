"""
Data models for automation graph documents.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class NodeKind(str, Enum):
    """Role of a node in the graph"""
    TRIGGER = "trigger"
    ACTION = "action"


class GraphNode(BaseModel):
    """A trigger or action node."""

    id: str = Field(..., description="Unique node identifier within the graph")
    kind: NodeKind = Field(..., description="Whether the node is a trigger or an action")
    app: str = Field(..., description="Connector the operation belongs to")
    operation: str = Field(..., description="Operation name within the connector")
    label: Optional[str] = Field(None, description="Human readable label")
    config: Dict[str, Any] = Field(
        default_factory=dict,
        description="Template values; strings may contain {{path}} placeholders"
    )

    @field_validator('id', 'app', 'operation')
    @classmethod
    def validate_not_blank(cls, v):
        """Reject blank identifiers."""
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v

    @property
    def registry_key(self) -> str:
        """Key of the operation builder for this node."""
        return f"{self.kind.value}.{self.app}:{self.operation}"


class GraphEdge(BaseModel):
    """A directed edge between two nodes."""

    source: str = Field(..., description="Upstream node id")
    target: str = Field(..., description="Downstream node id")


class AutomationGraph(BaseModel):
    """A declarative automation graph."""

    id: str = Field(..., description="Workflow identifier")
    name: str = Field("", description="Workflow name")
    timezone: Optional[str] = Field(None, description="IANA timezone for time-based triggers")
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)

    def node_map(self) -> Dict[str, GraphNode]:
        """Map node id to node."""
        return {node.id: node for node in self.nodes}

    def outgoing(self, node_id: str) -> List[str]:
        """Targets of a node's outgoing edges in declaration order."""
        return [edge.target for edge in self.edges if edge.source == node_id]

    def triggers(self) -> List[GraphNode]:
        """Trigger nodes in declaration order."""
        return [node for node in self.nodes if node.kind == NodeKind.TRIGGER]
