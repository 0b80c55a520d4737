"""
Tests for the FastAPI application.
"""
import hashlib

from api.main import app
from services.compiler import CYCLE_DETECTED, MALFORMED_GRAPH
from tests.conftest import EXPECTED_BUILDER_COUNT, make_graph


class TestMainApp:
    """Test the main FastAPI application."""

    def test_app_creation(self):
        """Test that the FastAPI app is created correctly."""
        assert app.title == "scriptforge API"
        assert app.version == "1.0.0"

    def test_cors_middleware(self):
        """Test that CORS middleware is configured."""
        assert any("CORSMiddleware" in str(middleware.cls) for middleware in app.user_middleware)

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"

    def test_request_headers(self, test_client):
        response = test_client.get("/")

        assert len(response.headers["X-Request-ID"]) == 8
        assert response.headers["X-Response-Time"].endswith("ms")


class TestSystemRoutes:
    """Test the health endpoint."""

    def test_health(self, test_client):
        data = test_client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["runtime_version"] == "1"
        assert data["builders"] == EXPECTED_BUILDER_COUNT


class TestCompilerRoutes:
    """Test compile, registry and runtime endpoints."""

    def test_compile(self, test_client, linear_graph):
        response = test_client.post("/compile", json=linear_graph)

        assert response.status_code == 200
        data = response.json()
        assert data["workflow_id"] == "wf-linear"
        assert sorted(data["files"]) == ["Code.py", "manifest.json"]
        assert data["manifest"]["entry_points"][0] == "main"

    def test_compile_malformed(self, test_client):
        response = test_client.post("/compile", json={"id": "wf", "nodes": []})

        assert response.status_code == 422
        assert response.json()["code"] == MALFORMED_GRAPH

    def test_compile_cycle(self, test_client):
        graph = make_graph(
            [
                ("t1", "trigger", "core", "manual", {}),
                ("a", "action", "http", "request", {"url": "https://a.test"}),
                ("b", "action", "http", "request", {"url": "https://b.test"}),
            ],
            [("t1", "a"), ("a", "b"), ("b", "a")],
        )

        response = test_client.post("/compile", json=graph)

        assert response.status_code == 422
        assert response.json()["code"] == CYCLE_DETECTED

    def test_compile_rejects_nan(self, test_client):
        body = (
            '{"id": "wf", "nodes": ['
            '{"id": "t1", "kind": "trigger", "app": "core", "operation": "manual"},'
            '{"id": "a1", "kind": "action", "app": "http", "operation": "request",'
            ' "config": {"url": "https://a.test", "body": {"ratio": NaN}}}],'
            ' "edges": [{"source": "t1", "target": "a1"}]}'
        )

        response = test_client.post("/compile", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 422
        assert response.json()["code"] == MALFORMED_GRAPH
        assert response.json()["node_id"] == "a1"

    def test_registry(self, test_client):
        entries = test_client.get("/registry").json()

        assert len(entries) == EXPECTED_BUILDER_COUNT
        assert "trigger.webhook:incoming" in [entry["key"] for entry in entries]

    def test_runtime(self, test_client):
        data = test_client.get("/runtime").json()

        assert data["source"].startswith(data["marker"])
        assert data["sha256"] == hashlib.sha256(data["source"].encode("utf-8")).hexdigest()
