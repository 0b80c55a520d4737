"""
Dry-run sandbox harness for compiled bundles.
"""

from .fixtures import DryRunFixture, load_fixture, load_fixtures
from .harness import FixtureResult, check_expectations, run_fixture, run_fixtures
from .host import DryRunAbort, FakeHost, HttpExpectationError, HttpFixtureQueue
from .sandbox import DryRunSandbox

__all__ = [
    "DryRunAbort",
    "DryRunFixture",
    "DryRunSandbox",
    "FakeHost",
    "FixtureResult",
    "HttpExpectationError",
    "HttpFixtureQueue",
    "check_expectations",
    "load_fixture",
    "load_fixtures",
    "run_fixture",
    "run_fixtures",
]
