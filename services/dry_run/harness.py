"""
Dry-run harness: compile a fixture's graph, run it in the sandbox and check
the resulting context, structured logs and outbound requests.
"""

import copy
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.compiler import CompileError, compile_graph

from .fixtures import DryRunFixture, FixtureExpectations
from .host import DryRunAbort, FakeHost, HttpExpectationError, is_subset
from .sandbox import DryRunSandbox

logger = logging.getLogger(__name__)


@dataclass
class FixtureResult:
    fixture_id: str
    passed: bool
    failures: List[str] = field(default_factory=list)
    context: Any = None
    error: Optional[str] = None
    logs: List[Dict[str, Any]] = field(default_factory=list)
    requests: List[Dict[str, Any]] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.fixture_id,
            "passed": self.passed,
            "failures": list(self.failures),
            "context": self.context,
            "error": self.error,
            "logs": self.logs,
            "requests": self.requests,
            "duration_ms": round(self.duration_ms, 2),
        }


def _log_matches(expectation, entry: Dict[str, Any]) -> bool:
    if expectation.level and entry["level"] != expectation.level:
        return False
    if expectation.event and entry["event"] != expectation.event:
        return False
    if expectation.includes and expectation.includes not in entry["message"]:
        return False
    if expectation.matches and not re.search(expectation.matches, entry["message"]):
        return False
    return True


def _payload_text(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, bytes):
        return payload.decode("utf-8", "replace")
    return str(payload)


def check_expectations(expect: FixtureExpectations, host: FakeHost, context: Any,
                       error: Optional[BaseException]) -> List[str]:
    """List every way a run differs from its expectations."""
    failures = []

    if expect.error:
        if error is None:
            failures.append(f"expected {expect.error} but the run succeeded")
        elif type(error).__name__ != expect.error:
            failures.append(f"expected {expect.error}, got {type(error).__name__}: {error}")
        elif expect.error_includes and expect.error_includes not in str(error):
            failures.append(f"error message {str(error)!r} lacks {expect.error_includes!r}")
    elif error is not None:
        failures.append(f"unexpected {type(error).__name__}: {error}")
    elif expect.context and not is_subset(expect.context, context):
        failures.append(f"context {context!r} does not contain {expect.context!r}")

    for expectation in expect.logs:
        if not any(_log_matches(expectation, entry) for entry in host.logs):
            failures.append(f"no log entry matching {expectation.model_dump(exclude_none=True)}")

    if expect.http_calls is not None:
        if len(expect.http_calls) != len(host.requests):
            failures.append(f"expected {len(expect.http_calls)} request(s), got {len(host.requests)}")
        for index, (expected, request) in enumerate(zip(expect.http_calls, host.requests)):
            if expected.url and expected.url != request["url"]:
                failures.append(f"request {index} url {request['url']!r} != {expected.url!r}")
            if expected.method and expected.method.upper() != request["method"]:
                failures.append(f"request {index} method {request['method']} != {expected.method.upper()}")
            fragment = expected.includes_payload_fragment
            if fragment and fragment not in _payload_text(request.get("payload")):
                failures.append(f"request {index} payload lacks {fragment!r}")

    return failures


def run_fixture(fixture: DryRunFixture) -> FixtureResult:
    """Compile and run one fixture."""
    started = time.perf_counter()
    result = FixtureResult(fixture_id=fixture.id, passed=False)

    try:
        bundle = compile_graph(fixture.graph)
    except CompileError as e:
        result.failures.append(f"compile failed: {e.code}: {e.message}")
        result.duration_ms = (time.perf_counter() - started) * 1000
        return result

    host = FakeHost(
        properties={**fixture.properties, **fixture.secrets},
        http_fixtures=fixture.http,
        now_ms=fixture.now_ms,
    )
    sandbox = DryRunSandbox(bundle.code, host)

    context = None
    error = None
    try:
        context = sandbox.run_function(fixture.entry.function, copy.deepcopy(fixture.entry.context))
    except DryRunAbort as e:
        result.failures.append(f"aborted: {e}")
    except Exception as e:
        error = e

    result.failures.extend(check_expectations(fixture.expect, host, context, error))
    try:
        sandbox.verify_http_expectations()
    except HttpExpectationError as e:
        if str(e) not in " ".join(result.failures):
            result.failures.append(str(e))

    result.context = context
    result.error = f"{type(error).__name__}: {error}" if error is not None else None
    result.logs = list(host.logs)
    result.requests = list(host.requests)
    result.passed = not result.failures
    result.duration_ms = (time.perf_counter() - started) * 1000
    if result.passed:
        logger.info(f"✅ {fixture.id}")
    else:
        logger.warning(f"❌ {fixture.id}: {'; '.join(result.failures)}")
    return result


def run_fixtures(fixtures: List[DryRunFixture]) -> Dict[str, Any]:
    """Run fixtures in order and summarize."""
    started = time.perf_counter()
    results = [run_fixture(fixture) for fixture in fixtures]
    passed = sum(1 for result in results if result.passed)
    return {
        "results": [result.to_dict() for result in results],
        "passed": passed,
        "failed": len(results) - passed,
        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
    }
