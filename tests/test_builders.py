"""
Tests for the operation builder registry and rendered step source.
"""
import ast

import pytest

from core.config import settings
from services.compiler import OperationBuilderRegistry, StepTarget, UnsupportedOperationError, registry
from services.compiler.builders import function_name_for, trigger_key_for
from tests.conftest import SNAPSHOTS_DIR

EXPECTED_KEYS = [
    "action.http:request",
    "action.salesforce:create_lead",
    "action.sheets:append_row",
    "action.shopify:create_order",
    "action.slack:send_message",
    "action.stripe:create_payment_intent",
    "trigger.core:manual",
    "trigger.sheets:row_added",
    "trigger.time:schedule",
    "trigger.webhook:incoming",
]

SNAPSHOT_CASES = {
    "slack_send_message": ("action.slack:send_message", {"channel": "#ops", "text": "Order {{order.id}}"}),
    "stripe_create_payment_intent": ("action.stripe:create_payment_intent", {"amount": 1999, "currency": "usd"}),
    "time_schedule": ("trigger.time:schedule", {"every_hours": 6, "timezone": "Europe/Berlin"}),
}


def assert_snapshot(name, source):
    """Compare rendered source with tests/snapshots/<name>.py.txt; UPDATE_SNAPSHOTS=1 rewrites it."""
    path = SNAPSHOTS_DIR / f"{name}.py.txt"
    if settings.update_snapshots:
        path.write_text(source)
        return
    assert path.exists(), f"missing snapshot {path.name}; rerun with UPDATE_SNAPSHOTS=1"
    assert source == path.read_text()


class TestRegistry:
    """Test registration and lookup."""

    def test_builtin_builders(self):
        assert registry.keys() == EXPECTED_KEYS

    def test_unknown_key(self):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            registry.get("action.fax:send", "n1")

        assert exc_info.value.key == "action.fax:send"
        assert exc_info.value.node_id == "n1"

    def test_invalid_key_rejected(self):
        local = OperationBuilderRegistry()
        with pytest.raises(ValueError):
            local.register("slack.send")

    def test_duplicate_registration_rejected(self):
        local = OperationBuilderRegistry()
        local.register("action.demo:noop")(lambda config, target: "")

        with pytest.raises(ValueError):
            local.register("action.demo:noop")(lambda config, target: "")

    def test_metadata(self):
        builder = registry.get("trigger.webhook:incoming")

        assert builder.kind == "trigger"
        assert builder.app == "webhook"
        assert builder.entry_points == ("do_post",)
        assert builder.advanced_services == ("web_app",)
        assert registry.get("trigger.time:schedule").installs_trigger is True
        assert registry.get("action.slack:send_message").installs_trigger is False

    def test_describe(self):
        described = registry.describe()
        assert [entry["key"] for entry in described] == EXPECTED_KEYS
        assert all(entry["description"] for entry in described)

    def test_naming_helpers(self):
        assert function_name_for("action.slack:send_message", "a-1") == "action_slack_send_message__a_1"
        assert function_name_for("trigger.core:manual", "1st") == "trigger_core_manual__n1st"
        assert trigger_key_for("trigger.core:manual", "t1") == "trigger.core:manual@t1"
        assert trigger_key_for("trigger.time:schedule", "t1", {"key": " nightly "}) == "nightly"


class TestRendering:
    """Test builder output."""

    @pytest.mark.parametrize("key", EXPECTED_KEYS)
    def test_empty_config_renders_valid_python(self, key):
        source = registry.render(key, {})
        ast.parse(source)

    @pytest.mark.parametrize("key", EXPECTED_KEYS)
    def test_rendering_is_deterministic(self, key):
        config = {"text": "hello", "channel": "#c", "amount": 100, "every_minutes": 15, "url": "https://x.test"}
        assert registry.render(key, config) == registry.render(key, dict(config))

    def test_function_is_named_after_target(self):
        target = StepTarget("action_slack_send_message__notify", "notify")
        source = registry.render("action.slack:send_message", {"text": "hi"}, target)

        tree = ast.parse(source)
        assert [node.name for node in tree.body if isinstance(node, ast.FunctionDef)] == [target.function_name]

    def test_installing_triggers_render_installer(self):
        source = registry.render("trigger.time:schedule", {"every_hours": 1})
        names = [node.name for node in ast.parse(source).body if isinstance(node, ast.FunctionDef)]

        assert names == ["trigger_time_schedule__node", "install_trigger_time_schedule__node"]

    def test_config_values_stay_literal(self):
        hostile = '"""\nimport os\nos.system("rm -rf /")\n"""'
        source = registry.render("action.slack:send_message", {"text": hostile, "channel": "{{ctx.channel}}"})

        tree = ast.parse(source)
        assert len(tree.body) == 1
        assert repr(hostile) in source
        assert "'{{ctx.channel}}'" in source

    def test_hostile_node_id_stays_in_docstring(self):
        target = StepTarget("action_slack_send_message__x", 'x"""\nimport os')
        source = registry.render("action.slack:send_message", {"text": "hi"}, target)

        tree = ast.parse(source)
        assert len(tree.body) == 1

    def test_schedule_keeps_only_schedule_options(self):
        source = registry.render("trigger.time:schedule", {"every_hours": 2, "unrelated": "x"})

        assert "'every_hours': 2" in source
        assert "unrelated" not in source

    def test_sheets_poll_interval_default(self):
        assert '"every_minutes": 5' in registry.render("trigger.sheets:row_added", {})
        assert '"every_minutes": 15' in registry.render("trigger.sheets:row_added", {"poll_interval_minutes": 15})

    @pytest.mark.parametrize("name", sorted(SNAPSHOT_CASES))
    def test_snapshots(self, name):
        key, config = SNAPSHOT_CASES[name]
        assert_snapshot(name, registry.render(key, config))
