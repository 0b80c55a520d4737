"""
Tests for the idempotent trigger registry and polling helpers.
"""
import json
import re

import pytest

REGISTRY_KEY = "__scriptforge_trigger_registry__"
STATE_PREFIX = "__scriptforge_trigger_state__:"


def creator(host, handler):
    return lambda: host.create_trigger({"kind": "time", "handler": handler})


def registry_entries(host):
    return json.loads(host.properties.get(REGISTRY_KEY, "{}"))


class TestEnsureTrigger:
    """Test create-once semantics."""

    def test_creates_then_reuses(self, runtime_sandbox, fake_host):
        ensure = runtime_sandbox.function("ensure_trigger")

        first = ensure("A", "handle_a", "time", creator(fake_host, "handle_a"))
        second = ensure("A", "handle_a", "time", creator(fake_host, "handle_a"))

        assert first["created"] is True
        assert second["created"] is False
        assert second["trigger_id"] == first["trigger_id"]
        assert len(fake_host.triggers) == 1
        assert fake_host.events("INFO") == ["trigger_created", "trigger_exists"]

    def test_recreates_deleted_host_trigger(self, runtime_sandbox, fake_host):
        ensure = runtime_sandbox.function("ensure_trigger")
        first = ensure("A", "handle_a", "time", creator(fake_host, "handle_a"))
        fake_host.delete_trigger(first["trigger_id"])

        second = ensure("A", "handle_a", "time", creator(fake_host, "handle_a"))

        assert second["created"] is True
        assert second["trigger_id"] != first["trigger_id"]
        assert "trigger_missing_recreating" in fake_host.events("WARN")
        assert registry_entries(fake_host)["A"]["id"] == second["trigger_id"]

    def test_changed_fingerprint_replaces_trigger(self, runtime_sandbox, fake_host):
        ensure = runtime_sandbox.function("ensure_trigger")
        first = ensure("A", "handle_a", "time", creator(fake_host, "handle_a"), None, "every-1h")

        second = ensure("A", "handle_a", "time", creator(fake_host, "handle_a"), None, "every-2h")

        assert second["created"] is True
        assert fake_host.deleted_trigger_ids == [first["trigger_id"]]
        assert [t["id"] for t in fake_host.triggers] == [second["trigger_id"]]

    def test_failed_creation_is_logged_and_raised(self, runtime_sandbox, fake_host):
        def broken():
            raise RuntimeError("quota exceeded")

        with pytest.raises(RuntimeError):
            runtime_sandbox.function("ensure_trigger")("A", "handle_a", "time", broken)

        assert "trigger_create_failed" in fake_host.events("ERROR")
        assert REGISTRY_KEY not in fake_host.properties

    def test_ephemeral_trigger_skips_registry(self, runtime_sandbox, fake_host):
        result = runtime_sandbox.function("create_ephemeral_trigger")(
            "once", "handle_once", "time", creator(fake_host, "handle_once"))

        assert result["ephemeral"] is True
        assert len(fake_host.triggers) == 1
        assert REGISTRY_KEY not in fake_host.properties


class TestSyncTriggerRegistry:
    """Test removal of triggers that are no longer declared."""

    def test_replaces_b_with_c(self, runtime_sandbox, fake_host):
        ensure = runtime_sandbox.function("ensure_trigger")
        sync = runtime_sandbox.function("sync_trigger_registry")
        a = ensure("A", "handle_a", "time", creator(fake_host, "handle_a"))
        b = ensure("B", "handle_b", "time", creator(fake_host, "handle_b"))
        fake_host.set_property(STATE_PREFIX + "B", json.dumps({"cursor": 3}))

        ensure("A", "handle_a", "time", creator(fake_host, "handle_a"))
        c = ensure("C", "handle_c", "time", creator(fake_host, "handle_c"))
        removed = sync(["A", "C"])

        assert removed == ["B"]
        assert fake_host.deleted_trigger_ids == [b["trigger_id"]]
        assert sorted(t["id"] for t in fake_host.triggers) == sorted([a["trigger_id"], c["trigger_id"]])
        assert sorted(registry_entries(fake_host)) == ["A", "C"]
        assert STATE_PREFIX + "B" not in fake_host.properties

    def test_nothing_to_remove(self, runtime_sandbox, fake_host):
        runtime_sandbox.function("ensure_trigger")("A", "handle_a", "time", creator(fake_host, "handle_a"))
        assert runtime_sandbox.function("sync_trigger_registry")(["A"]) == []

    def test_clear_by_key(self, runtime_sandbox, fake_host):
        created = runtime_sandbox.function("ensure_trigger")("A", "handle_a", "time", creator(fake_host, "handle_a"))

        assert runtime_sandbox.function("clear_trigger_by_key")("A") is True
        assert fake_host.deleted_trigger_ids == [created["trigger_id"]]
        assert registry_entries(fake_host) == {}
        assert runtime_sandbox.function("clear_trigger_by_key")("A") is False

    def test_clear_by_key_drops_polling_cursor(self, runtime_sandbox, fake_host):
        runtime_sandbox.function("ensure_trigger")("poll", "handle_poll", "time", creator(fake_host, "handle_poll"))
        fake_host.set_property(STATE_PREFIX + "poll", json.dumps({"cursor": 4}))
        fake_host.set_property(STATE_PREFIX + "other", json.dumps({"cursor": 9}))

        runtime_sandbox.function("clear_trigger_by_key")("poll")

        assert STATE_PREFIX + "poll" not in fake_host.properties
        assert json.loads(fake_host.properties[STATE_PREFIX + "other"]) == {"cursor": 9}

    def test_corrupt_registry_is_treated_as_empty(self, runtime_sandbox, fake_host):
        fake_host.set_property(REGISTRY_KEY, "not json")

        runtime_sandbox.function("ensure_trigger")("A", "handle_a", "time", creator(fake_host, "handle_a"))

        assert "trigger_registry_parse_failed" in fake_host.events("WARN")
        assert list(registry_entries(fake_host)) == ["A"]


class TestBuildTimeTrigger:
    """Test declarative time trigger specs."""

    def test_recurring_spec(self, runtime_sandbox, fake_host):
        result = runtime_sandbox.function("build_time_trigger")({
            "key": "daily", "handler": "on_tick", "every_days": 1, "at_hour": 9, "on_week_day": "monday",
        })

        assert result["created"] is True
        definition = fake_host.triggers[0]
        assert definition["every"] == {"unit": "days", "value": 1}
        assert definition["at_hour"] == 9
        assert definition["on_week_day"] == "MONDAY"
        assert definition["handler"] == "on_tick"

    def test_one_shot_spec(self, runtime_sandbox, fake_host):
        runtime_sandbox.function("build_time_trigger")({"key": "once", "handler": "on_tick", "run_at": 1700000600000})
        assert fake_host.triggers[0]["run_at"] == 1700000600000

    @pytest.mark.parametrize("config,field", [
        ({"handler": "h"}, "run_at"),
        ({"handler": "h", "every_hours": 1, "at_hour": 24}, "at_hour"),
        ({"handler": "h", "every_hours": 1, "near_minute": -1}, "near_minute"),
        ({"handler": "h", "every_weeks": 1, "on_week_day": "FUNDAY"}, "on_week_day"),
        ({"handler": "h", "every_days": 1, "on_month_day": 32}, "on_month_day"),
    ])
    def test_invalid_specs(self, runtime_sandbox, fake_host, config, field):
        with pytest.raises(runtime_sandbox.error_class("ValidationError")) as exc_info:
            runtime_sandbox.function("build_time_trigger")(config)

        assert field in exc_info.value.fields
        assert fake_host.triggers == []

    def test_same_spec_is_idempotent(self, runtime_sandbox, fake_host):
        build = runtime_sandbox.function("build_time_trigger")
        build({"key": "k", "handler": "h", "every_minutes": 5})
        build({"key": "k", "handler": "h", "every_minutes": 5})
        build({"key": "k", "handler": "h", "every_minutes": 10})

        assert len(fake_host.triggers) == 1
        assert fake_host.triggers[0]["every"] == {"unit": "minutes", "value": 10}
        assert len(fake_host.deleted_trigger_ids) == 1


class TestPollingWrapper:
    """Test cursor persistence around a polling executor."""

    def test_state_saved_on_success(self, runtime_sandbox, fake_host):
        seen = []

        def executor(runtime):
            outcome = runtime.dispatch_batch([{"n": 1}, {"n": 2}])
            runtime.state["cursor"] = 2
            return outcome

        stats = runtime_sandbox.function("build_polling_wrapper")("poll", executor, seen.append)

        assert seen == [{"n": 1}, {"n": 2}]
        assert stats["processed"] == 2
        assert stats["succeeded"] == 2
        assert json.loads(fake_host.properties[STATE_PREFIX + "poll"]) == {"cursor": 2}
        assert "trigger_poll_success" in fake_host.events("INFO")

    def test_state_not_saved_on_failure(self, runtime_sandbox, fake_host):
        fake_host.set_property(STATE_PREFIX + "poll", json.dumps({"cursor": 1}))

        def executor(runtime):
            runtime.state["cursor"] = 5
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            runtime_sandbox.function("build_polling_wrapper")("poll", executor, lambda payload: payload)

        assert json.loads(fake_host.properties[STATE_PREFIX + "poll"]) == {"cursor": 1}
        assert "trigger_poll_error" in fake_host.events("ERROR")

    def test_batch_counts_failures(self, runtime_sandbox, fake_host):
        def entry(payload):
            if payload["n"] == 2:
                raise ValueError("bad row")
            return payload

        def executor(runtime):
            return runtime.dispatch_batch([{"n": 1}, {"n": 2}, {"n": 3}])

        stats = runtime_sandbox.function("build_polling_wrapper")("poll", executor, entry)

        assert stats["attempted"] == 3
        assert stats["failed"] == 1
        assert stats["processed"] == 2
        assert "trigger_dispatch_failed" in fake_host.events("ERROR")


class TestRunLifecycle:
    """Test run bookkeeping helpers."""

    def test_begin_run_assigns_run_id(self, runtime_sandbox, fake_host):
        ctx = runtime_sandbox.function("begin_run")("manual", {"order": 1})

        assert ctx["order"] == 1
        assert re.match(r"^1700000000000-[0-9a-f]{6}$", ctx["run_id"])
        assert "run_start" in fake_host.events("INFO")

    def test_begin_run_keeps_existing_run_id(self, runtime_sandbox):
        assert runtime_sandbox.function("begin_run")("manual", {"run_id": "r-1"})["run_id"] == "r-1"

    def test_dispatch_without_pipeline(self, runtime_sandbox):
        with pytest.raises(LookupError):
            runtime_sandbox.function("dispatch_pipeline")("missing", {})
