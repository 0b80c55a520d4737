"""
Tests for graph document models and schema validation.
"""
import pytest
from pydantic import ValidationError

from core.graph import AutomationGraph, GraphNode, GraphSchemaValidator, NodeKind


class TestGraphModels:
    """Test the pydantic graph models."""

    def test_registry_key(self):
        node = GraphNode(id="a1", kind="action", app="slack", operation="send_message")
        assert node.kind == NodeKind.ACTION
        assert node.registry_key == "action.slack:send_message"
        assert node.config == {}

    @pytest.mark.parametrize("field", ["id", "app", "operation"])
    def test_blank_identifiers_rejected(self, field):
        data = {"id": "a1", "kind": "action", "app": "slack", "operation": "send_message"}
        data[field] = "  "
        with pytest.raises(ValidationError):
            GraphNode(**data)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            GraphNode(id="a1", kind="filter", app="core", operation="if")

    def test_graph_helpers(self, linear_graph):
        graph = AutomationGraph.model_validate(linear_graph)

        assert [node.id for node in graph.triggers()] == ["t1"]
        assert graph.outgoing("t1") == ["a1"]
        assert graph.outgoing("a2") == []
        assert set(graph.node_map()) == {"t1", "a1", "a2"}
        assert graph.name == "Linear workflow"
        assert graph.timezone is None


class TestGraphSchemaValidator:
    """Test JSON schema validation of raw documents."""

    def test_valid_document(self, linear_graph):
        assert GraphSchemaValidator().validate_document(linear_graph) == []

    def test_missing_nodes(self):
        issues = GraphSchemaValidator().validate_document({"id": "wf"})
        assert len(issues) == 1
        assert issues[0].path == "root"
        assert "nodes" in issues[0].message

    def test_issue_points_at_node(self):
        doc = {
            "id": "wf",
            "nodes": [
                {"id": "t1", "kind": "trigger", "app": "core", "operation": "manual"},
                {"id": "a1", "kind": "step", "app": "slack", "operation": "send_message"},
            ],
        }

        issues = GraphSchemaValidator().validate_document(doc)

        assert issues[0].path == "nodes.1.kind"
        assert issues[0].node_id == "a1"

    def test_node_without_id(self):
        doc = {"id": "wf", "nodes": [{"kind": "trigger", "app": "core", "operation": "manual"}]}

        issues = GraphSchemaValidator().validate_document(doc)

        assert issues[0].node_id == "nodes[0]"

    def test_not_an_object(self):
        issues = GraphSchemaValidator().validate_document(["nodes"])
        assert issues and issues[0].node_id is None

    def test_non_finite_numbers_rejected(self):
        doc = {
            "id": "wf",
            "nodes": [
                {"id": "t1", "kind": "trigger", "app": "core", "operation": "manual"},
                {"id": "a1", "kind": "action", "app": "http", "operation": "request",
                 "config": {"body": {"ratio": float("nan"), "limits": [1.5, float("inf")]}}},
            ],
        }

        issues = GraphSchemaValidator().validate_document(doc)

        assert [issue.path for issue in issues] == ["nodes.1.config.body.ratio", "nodes.1.config.body.limits.1"]
        assert all(issue.node_id == "a1" for issue in issues)
