"""
Tests for bundle assembly, the manifest and the compiler entry points.
"""
import ast
import hashlib
import json

import pytest

from core.config import settings
from services.compiler import (
    MALFORMED_GRAPH,
    UNREACHABLE_NODE,
    BundleCompiler,
    CompileError,
    compile_graph,
    compile_report,
    runtime_block,
    runtime_block_sha256,
)
from services.compiler.cli import main as cli_main
from services.compiler.runtime import ALLOWED_IMPORTS, RUNTIME_BLOCK_BEGIN, RUNTIME_BLOCK_END
from tests.conftest import SNAPSHOTS_DIR, make_graph


def top_level_functions(source):
    return [node.name for node in ast.parse(source).body if isinstance(node, ast.FunctionDef)]


class TestBundleCode:
    """Test the generated Code.py."""

    def test_code_parses_and_names_entry_points(self, linear_graph):
        bundle = compile_graph(linear_graph)
        names = top_level_functions(bundle.code)

        for expected in ("main", "setup_triggers", "run_trigger_core_manual__t1",
                         "trigger_core_manual__t1", "action_slack_send_message__a1", "action_http_request__a2"):
            assert expected in names

    def test_runtime_block_embedded_once(self, linear_graph):
        code = compile_graph(linear_graph).code

        assert code.count(RUNTIME_BLOCK_BEGIN) == 1
        assert code.count(RUNTIME_BLOCK_END) == 1
        assert runtime_block() in code

    def test_sections_in_order(self, linear_graph):
        code = compile_graph(linear_graph).code

        positions = [code.index(marker) for marker in (
            "# Generated by scriptforge",
            RUNTIME_BLOCK_BEGIN,
            "# --- steps ---",
            "def action_slack_send_message__a1",
            "def action_http_request__a2",
            "# --- triggers ---",
            "def trigger_core_manual__t1",
            "# --- pipelines ---",
            "def run_trigger_core_manual__t1",
            "def main",
        )]
        assert positions == sorted(positions)

    def test_pipeline_calls_steps_in_order(self, linear_graph):
        code = compile_graph(linear_graph).code
        pipeline = code[code.index("def run_trigger_core_manual__t1"):]

        assert pipeline.index("ctx = action_slack_send_message__a1(ctx)") < pipeline.index("ctx = action_http_request__a2(ctx)")

    def test_only_host_modules_imported(self, linear_graph, scheduled_graph):
        for graph in (linear_graph, scheduled_graph):
            tree = ast.parse(compile_graph(graph).code)
            for node in ast.walk(tree):
                if isinstance(node, ast.Import):
                    assert all(alias.name in ALLOWED_IMPORTS for alias in node.names)
                elif isinstance(node, ast.ImportFrom):
                    assert node.module in ALLOWED_IMPORTS

    def test_compile_is_byte_identical(self, linear_graph):
        first = compile_graph(linear_graph)
        second = compile_graph(json.loads(json.dumps(linear_graph)))

        assert first.files == second.files

    def test_webhook_adds_do_post(self):
        graph = make_graph([("hook", "trigger", "webhook", "incoming", {})])
        bundle = compile_graph(graph)

        assert "do_post" in top_level_functions(bundle.code)
        assert "do_post" in bundle.manifest["entry_points"]
        assert bundle.manifest["advanced_services"] == ["web_app"]

    def test_no_do_post_without_webhook(self, linear_graph):
        assert "do_post" not in top_level_functions(compile_graph(linear_graph).code)

    def test_active_trigger_keys(self, scheduled_graph):
        code = compile_graph(scheduled_graph).code
        assert "ACTIVE_TRIGGER_KEYS = ['trigger.time:schedule@t1']" in code
        assert "installed.append(install_trigger_time_schedule__t1())" in code


class TestManifest:
    """Test manifest.json."""

    def test_manifest_fields(self, scheduled_graph):
        manifest = compile_graph(scheduled_graph).manifest

        assert manifest["timezone"] == "Europe/Berlin"
        assert manifest["runtime_version"] == "1"
        assert manifest["scopes"] == sorted(manifest["scopes"])
        assert "host:triggers" in manifest["scopes"]
        assert "slack:chat:write" in manifest["scopes"]
        assert manifest["entry_points"] == ["main", "setup_triggers", "trigger_time_schedule__t1"]

    def test_default_timezone(self, linear_graph):
        assert compile_graph(linear_graph).manifest["timezone"] == "Etc/UTC"

    def test_timezone_override_only_fills_missing(self, linear_graph, scheduled_graph):
        assert compile_graph(linear_graph, timezone="America/New_York").manifest["timezone"] == "America/New_York"
        assert compile_graph(scheduled_graph, timezone="America/New_York").manifest["timezone"] == "Europe/Berlin"

    def test_manifest_file_is_stable_json(self, linear_graph):
        text = compile_graph(linear_graph).files["manifest.json"]
        assert text == json.dumps(json.loads(text), indent=2, sort_keys=True) + "\n"


class TestBundle:
    """Test the bundle value object."""

    def test_stats(self, linear_graph):
        bundle = compile_graph(linear_graph)
        assert dict(bundle.stats) == {"nodes": 3, "edges": 2, "steps": 2, "triggers": 1}
        assert bundle.workflow_id == "wf-linear"

    def test_bundle_is_read_only(self, linear_graph):
        bundle = compile_graph(linear_graph)
        with pytest.raises(TypeError):
            bundle.files["Code.py"] = ""

    def test_write_to(self, linear_graph, tmp_path):
        bundle = compile_graph(linear_graph)

        written = bundle.write_to(tmp_path / "out")

        assert sorted(path.name for path in written) == ["Code.py", "manifest.json"]
        assert (tmp_path / "out" / "Code.py").read_text() == bundle.code
        assert [p.name for p in (tmp_path / "out").iterdir() if p.name.startswith(".")] == []

    def test_to_dict(self, linear_graph):
        payload = compile_graph(linear_graph).to_dict()
        assert set(payload) == {"workflow_id", "stats", "files", "manifest", "warnings"}

    def test_warnings_carried(self):
        graph = make_graph([
            ("t1", "trigger", "core", "manual", {}),
            ("x", "action", "slack", "send_message", {"text": "never"}),
        ])

        bundle = compile_graph(graph)

        assert [w["code"] for w in bundle.warnings] == [UNREACHABLE_NODE]
        assert "action_slack_send_message__x" not in bundle.code


class TestCompilerEntryPoints:
    """Test BundleCompiler and compile_report."""

    def test_failure_returns_report(self):
        result = BundleCompiler().compile({"id": "wf", "nodes": []})

        assert result["bundle"] is None
        assert result["error"].code == MALFORMED_GRAPH
        assert result["report"].has_errors

    def test_compile_graph_raises(self):
        with pytest.raises(CompileError):
            compile_graph({"id": "wf", "nodes": []})

    def test_compile_report_success(self, linear_graph):
        report = compile_report(linear_graph)
        assert report.is_success

    def test_runtime_hash_matches_block(self):
        assert runtime_block_sha256() == hashlib.sha256(runtime_block().encode("utf-8")).hexdigest()


class TestRuntimeBlockGolden:
    """The runtime block's top-level API is pinned in tests/snapshots/runtime_block_api.txt."""

    def test_top_level_definitions(self):
        tree = ast.parse(runtime_block())
        names = []
        for node in tree.body:
            if isinstance(node, ast.ClassDef):
                names.append(f"class {node.name}")
            elif isinstance(node, ast.FunctionDef):
                names.append(f"def {node.name}")
        golden = SNAPSHOTS_DIR / "runtime_block_api.txt"

        if settings.update_snapshots:
            golden.write_text("\n".join(names) + "\n")
            return
        assert names == golden.read_text().splitlines()

    def test_sections_in_order(self):
        block = runtime_block()
        lines = block.splitlines()

        assert lines[0] == RUNTIME_BLOCK_BEGIN
        assert lines[-1] == RUNTIME_BLOCK_END
        markers = ["class ValidationError", "def log_structured", "def interpolate(", "def with_retries",
                   "def decode_sealed_secret", "_SECRET_HELPER_DEFAULT_OVERRIDES = ",
                   "_CONNECTOR_OAUTH_TOKEN_METADATA = ", "def get_secret", "def ensure_trigger", "def finish_run"]
        positions = [block.index(marker) for marker in markers]
        assert positions == sorted(positions)


class TestCompilerCli:
    """Test the command line interface."""

    def test_compile_command(self, linear_graph, tmp_path, capsys):
        graph_file = tmp_path / "graph.json"
        graph_file.write_text(json.dumps(linear_graph))

        code = cli_main(["compile", "--in", str(graph_file), "--out", str(tmp_path / "build")])

        assert code == 0
        assert (tmp_path / "build" / "Code.py").exists()
        assert json.loads(capsys.readouterr().out)["stats"]["steps"] == 2

    def test_compile_command_failure(self, tmp_path, capsys):
        graph_file = tmp_path / "graph.json"
        graph_file.write_text(json.dumps({"id": "wf", "nodes": []}))

        code = cli_main(["compile", "--in", str(graph_file), "--out", str(tmp_path / "build")])

        assert code == 1
        assert capsys.readouterr().err.startswith(MALFORMED_GRAPH)
        assert not (tmp_path / "build").exists()

    def test_validate_command(self, linear_graph, tmp_path, capsys):
        graph_file = tmp_path / "graph.json"
        graph_file.write_text(json.dumps(linear_graph))

        assert cli_main(["validate", "--in", str(graph_file)]) == 0
        assert json.loads(capsys.readouterr().out)["errors"] == []

    def test_registry_command(self, capsys):
        assert cli_main(["registry", "--json"]) == 0
        keys = [entry["key"] for entry in json.loads(capsys.readouterr().out)]
        assert "action.stripe:create_payment_intent" in keys
