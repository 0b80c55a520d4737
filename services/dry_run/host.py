"""
In-memory implementation of the host capability contract.

FakeHost stands in for the scripting host when a compiled bundle is run by the
dry-run sandbox: a seeded property store, a queue of fixture HTTP responses, an
in-memory trigger list, a virtual clock and a log recorder.
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

logger = logging.getLogger(__name__)

DEFAULT_NOW_MS = 1_700_000_000_000


class DryRunAbort(BaseException):
    """
    Stops a dry run from inside host calls.

    Derives from BaseException so that ``except Exception`` blocks in the
    program under test (retry loops in particular) cannot swallow it.
    """


class HttpExpectationError(AssertionError):
    """Recorded requests did not line up with the fixture queue"""


def _parse_payload(payload: Any, content_type: Optional[str]) -> Any:
    if payload is None or isinstance(payload, (dict, list)):
        return payload
    text = payload.decode("utf-8") if isinstance(payload, bytes) else str(payload)
    content_type = (content_type or "").lower()
    if "x-www-form-urlencoded" in content_type:
        return {key: values[0] if len(values) == 1 else values
                for key, values in parse_qs(text, keep_blank_values=True).items()}
    try:
        return json.loads(text)
    except ValueError:
        return text


def is_subset(expected: Any, actual: Any) -> bool:
    """True when every key in ``expected`` is present in ``actual`` with a matching value."""
    if isinstance(expected, dict):
        return isinstance(actual, dict) and all(
            key in actual and is_subset(value, actual[key]) for key, value in expected.items()
        )
    if isinstance(expected, list):
        return isinstance(actual, list) and len(expected) == len(actual) and all(
            is_subset(e, a) for e, a in zip(expected, actual)
        )
    if isinstance(actual, str) and not isinstance(expected, str):
        return json.dumps(expected) == actual or str(expected) == actual
    return expected == actual


class HttpFixtureQueue:
    """Ordered fixture responses; each one checks the request it answers"""

    def __init__(self, fixtures: Optional[List[Any]] = None):
        self.fixtures = [self._as_dict(fixture) for fixture in (fixtures or [])]
        self.position = 0
        self.mismatches: List[str] = []

    @staticmethod
    def _as_dict(fixture: Any) -> Dict[str, Any]:
        if hasattr(fixture, "model_dump"):
            return fixture.model_dump()
        return dict(fixture)

    @property
    def remaining(self) -> List[Dict[str, Any]]:
        return self.fixtures[self.position:]

    def respond(self, request: Dict[str, Any]) -> Dict[str, Any]:
        if self.position >= len(self.fixtures):
            message = f"Unexpected request {request['method']} {request['url']}: no fixture left"
            self.mismatches.append(message)
            raise DryRunAbort(message)

        fixture = self.fixtures[self.position]
        self.position += 1
        name = fixture.get("name") or f"fixture #{self.position}"
        problems = self._check(fixture.get("request") or {}, request)
        if problems:
            message = f"{name}: " + "; ".join(problems)
            self.mismatches.append(message)
            raise DryRunAbort(message)

        response = fixture.get("response") or {}
        headers = {str(k).lower(): v for k, v in (response.get("headers") or {}).items()}
        text = response.get("text")
        body = response.get("body")
        if text is None:
            text = "" if body is None else (body if isinstance(body, str) else json.dumps(body))
            if isinstance(body, (dict, list)):
                headers.setdefault("content-type", "application/json")
        return {"status": int(response.get("status", 200)), "headers": headers, "text": text}

    def _check(self, expected: Dict[str, Any], request: Dict[str, Any]) -> List[str]:
        problems = []
        if expected.get("url") and expected["url"] != request["url"]:
            problems.append(f"url {request['url']!r} != {expected['url']!r}")
        if expected.get("method") and expected["method"].upper() != request["method"]:
            problems.append(f"method {request['method']} != {expected['method'].upper()}")
        actual_headers = {k.lower(): v for k, v in request["headers"].items()}
        for name, value in (expected.get("headers") or {}).items():
            if actual_headers.get(name.lower()) != value:
                problems.append(f"header {name} is {actual_headers.get(name.lower())!r}, expected {value!r}")
        if expected.get("payload") is not None:
            actual = _parse_payload(request.get("payload"), request.get("content_type"))
            if not is_subset(expected["payload"], actual):
                problems.append(f"payload {actual!r} does not contain {expected['payload']!r}")
        return problems


class FakeHost:
    """Host capability contract backed by in-memory state"""

    def __init__(self, properties: Optional[Dict[str, str]] = None, http_fixtures: Optional[List[Any]] = None,
                 now_ms: int = DEFAULT_NOW_MS):
        self.properties: Dict[str, str] = {key: str(value) for key, value in (properties or {}).items()}
        self.http = HttpFixtureQueue(http_fixtures)
        self.requests: List[Dict[str, Any]] = []
        self.triggers: List[Dict[str, Any]] = []
        self.deleted_trigger_ids: List[str] = []
        self.logs: List[Dict[str, Any]] = []
        self.sleeps: List[int] = []
        self._clock = int(now_ms)
        self._trigger_sequence = 0

    # property store
    def get_property(self, key):
        return self.properties.get(key)

    def set_property(self, key, value):
        if not isinstance(value, str):
            raise TypeError(f"property {key} must be a string, got {type(value).__name__}")
        self.properties[key] = value

    def delete_property(self, key):
        self.properties.pop(key, None)

    def property_keys(self):
        return sorted(self.properties)

    # outbound requests
    def fetch(self, url, options=None):
        options = options or {}
        request = {
            "url": url,
            "method": (options.get("method") or "GET").upper(),
            "headers": dict(options.get("headers") or {}),
            "payload": options.get("payload"),
            "content_type": options.get("content_type"),
        }
        self.requests.append(request)
        logger.debug(f"dry-run fetch {request['method']} {url}")
        return self.http.respond(request)

    # triggers
    def create_trigger(self, definition):
        self._trigger_sequence += 1
        trigger_id = f"trigger-{self._trigger_sequence}"
        self.triggers.append(dict(definition, id=trigger_id))
        return trigger_id

    def list_triggers(self):
        return [dict(trigger) for trigger in self.triggers]

    def delete_trigger(self, trigger_id):
        before = len(self.triggers)
        self.triggers = [trigger for trigger in self.triggers if trigger["id"] != trigger_id]
        if len(self.triggers) != before:
            self.deleted_trigger_ids.append(trigger_id)

    # crypto and encoding
    def hmac_sha256(self, key, data):
        return hmac.new(bytes(key), bytes(data), hashlib.sha256).digest()

    def base64_encode(self, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        return base64.b64encode(bytes(data)).decode("ascii")

    def base64_decode(self, text):
        return base64.b64decode(text, validate=True)

    # clock
    def sleep(self, ms):
        ms = max(0, int(ms))
        self.sleeps.append(ms)
        self._clock += ms

    def now_ms(self):
        return self._clock

    def advance(self, ms: int):
        self._clock += int(ms)

    # console
    def log(self, level, message, payload=None):
        payload = payload or {}
        self.logs.append({
            "level": level,
            "message": message,
            "event": payload.get("event"),
            "details": payload.get("details"),
            "timestamp": payload.get("timestamp"),
        })

    def events(self, level: Optional[str] = None) -> List[str]:
        """Logged event names, optionally filtered by level."""
        return [entry["event"] for entry in self.logs if level is None or entry["level"] == level]
