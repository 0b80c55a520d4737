"""
Tests for the structured logging and value helpers of the runtime block.
"""
import json

import pytest

from services.dry_run import DryRunSandbox, FakeHost
from services.compiler import runtime_block


class TestStructuredLogging:
    """Test log payloads recorded on the host."""

    def test_log_info_runs_in_sandbox(self, runtime_sandbox, fake_host):
        payload = runtime_sandbox.function("log_info")("order_received", {"order_id": 7})

        assert payload["timestamp"] == "2023-11-14T22:13:20.000Z"
        assert fake_host.logs == [{
            "level": "INFO",
            "message": '[INFO] order_received {"order_id": 7}',
            "event": "order_received",
            "details": {"order_id": 7},
            "timestamp": "2023-11-14T22:13:20.000Z",
        }]

    def test_timestamp_keeps_milliseconds(self):
        host = FakeHost(now_ms=1_700_000_000_042)
        sandbox = DryRunSandbox(runtime_block(), host, filename="runtime.py")

        sandbox.function("log_warn")("quota_low")

        assert host.logs[0]["timestamp"] == "2023-11-14T22:13:20.042Z"
        assert host.logs[0]["details"] == {}

    def test_details_serialized_sorted(self, runtime_sandbox, fake_host):
        runtime_sandbox.function("log_error")("run_failed", {"b": 1, "a": [1, 2]})

        message = fake_host.logs[0]["message"]
        assert message.startswith("[ERROR] run_failed ")
        assert message[len("[ERROR] run_failed "):] == json.dumps({"a": [1, 2], "b": 1}, sort_keys=True)


class TestValueHelpers:
    """Test config value coercion."""

    @pytest.mark.parametrize("value,expected", [
        (3, 3),
        ("12", 12),
        (" 7 ", 7),
        ("9007199254740993", 9007199254740993),
        (9007199254740993, 9007199254740993),
        ("2.9", 2),
        (4.0, 4),
        (0, None),
        ("-1", None),
        ("abc", None),
        (True, None),
        ("", None),
        (None, None),
        (float("inf"), None),
    ])
    def test_to_positive_integer(self, runtime_sandbox, value, expected):
        assert runtime_sandbox.function("to_positive_integer")(value) == expected
