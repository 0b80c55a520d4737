"""
Pytest configuration and fixtures for the scriptforge compiler tests.
"""
import logging
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from api.main import app
from services.compiler import compile_graph, runtime_block
from services.dry_run import DryRunSandbox, FakeHost

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SNAPSHOTS_DIR = Path(__file__).parent / "snapshots"
EXPECTED_BUILDER_COUNT = 10


def make_graph(nodes, edges=None, graph_id="wf-test", **extra):
    """Build a graph document from (id, kind, app, operation, config) tuples."""
    doc = {
        "id": graph_id,
        "nodes": [
            {"id": node_id, "kind": kind, "app": app, "operation": operation, "config": config or {}}
            for node_id, kind, app, operation, config in nodes
        ],
        "edges": [{"source": source, "target": target} for source, target in (edges or [])],
    }
    doc.update(extra)
    return doc


def single_action_graph(app, operation, config, graph_id="wf-single"):
    """Manual trigger followed by one action."""
    return make_graph(
        [
            ("t1", "trigger", "core", "manual", {}),
            ("a1", "action", app, operation, config),
        ],
        [("t1", "a1")],
        graph_id=graph_id,
    )


def run_bundle(graph, properties=None, http=None, ctx=None, function="main", now_ms=None):
    """Compile a graph, run one entry point and return (result, host, sandbox)."""
    bundle = compile_graph(graph)
    kwargs = {"properties": properties, "http_fixtures": http}
    if now_ms is not None:
        kwargs["now_ms"] = now_ms
    host = FakeHost(**kwargs)
    sandbox = DryRunSandbox(bundle.code, host)
    result = sandbox.run_function(function, ctx)
    return result, host, sandbox


@pytest.fixture(autouse=True)
def restore_root_logging():
    """CLI entry points reconfigure the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def test_client():
    """Create a test client for the FastAPI application."""
    return TestClient(app)


@pytest.fixture
def fake_host():
    """Empty in-memory host."""
    return FakeHost()


@pytest.fixture
def runtime_sandbox(fake_host):
    """Sandbox holding only the shared runtime block."""
    return DryRunSandbox(runtime_block(), fake_host, filename="runtime.py")


@pytest.fixture
def linear_graph():
    """Manual trigger -> Slack message -> HTTP request."""
    return make_graph(
        [
            ("t1", "trigger", "core", "manual", {}),
            ("a1", "action", "slack", "send_message", {"channel": "#ops", "text": "Order {{order.id}} received"}),
            ("a2", "action", "http", "request", {"url": "https://example.com/hook", "method": "POST"}),
        ],
        [("t1", "a1"), ("a1", "a2")],
        graph_id="wf-linear",
        name="Linear workflow",
    )


@pytest.fixture
def scheduled_graph():
    """Hourly schedule -> Slack message."""
    return make_graph(
        [
            ("t1", "trigger", "time", "schedule", {"every_hours": 1}),
            ("a1", "action", "slack", "send_message", {"channel": "#ops", "text": "tick"}),
        ],
        [("t1", "a1")],
        graph_id="wf-scheduled",
        timezone="Europe/Berlin",
    )
