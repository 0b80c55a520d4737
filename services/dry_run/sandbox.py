"""
Executes generated bundle source against a FakeHost.
"""

import builtins
import logging
from typing import Any, Dict

from services.compiler.runtime import ALLOWED_IMPORTS

from .host import FakeHost, HttpExpectationError

logger = logging.getLogger(__name__)

BLOCKED_BUILTINS = ("open", "exec", "eval", "compile", "input", "breakpoint", "help", "exit", "quit")


def _restricted_import(name, globals=None, locals=None, fromlist=(), level=0):
    if level != 0 or name not in ALLOWED_IMPORTS:
        raise ImportError(f"import of '{name}' is not available on the host")
    return builtins.__import__(name, globals, locals, fromlist, level)


def _sandbox_builtins() -> Dict[str, Any]:
    allowed = {name: value for name, value in vars(builtins).items() if name not in BLOCKED_BUILTINS}
    allowed["__import__"] = _restricted_import
    return allowed


class DryRunSandbox:
    """A fresh namespace holding one executed bundle"""

    def __init__(self, source: str, host: FakeHost, filename: str = "Code.py"):
        self.host = host
        self.namespace: Dict[str, Any] = {
            "__builtins__": _sandbox_builtins(),
            "__name__": "scriptforge_bundle",
            "host": host,
        }
        exec(compile(source, filename, "exec"), self.namespace)

    def function(self, name: str):
        value = self.namespace.get(name)
        if not callable(value):
            raise AttributeError(f"Bundle defines no function '{name}'")
        return value

    def run_function(self, name: str, *args, **kwargs):
        logger.debug(f"dry-run call {name}")
        return self.function(name)(*args, **kwargs)

    def run_main(self, ctx=None):
        return self.run_function("main", ctx)

    def fire_trigger(self, trigger_id: str, event=None):
        """Invoke the handler of a host trigger the bundle installed."""
        for trigger in self.host.triggers:
            if trigger["id"] == trigger_id:
                return self.run_function(trigger["handler"], event)
        raise KeyError(f"No host trigger {trigger_id}")

    def error_class(self, name: str):
        """Exception class defined by the bundle runtime, e.g. ``ValidationError``."""
        return self.namespace[name]

    def verify_http_expectations(self):
        queue = self.host.http
        problems = list(queue.mismatches)
        for fixture in queue.remaining:
            problems.append(f"fixture {fixture.get('name') or '<unnamed>'} was never requested")
        if problems:
            raise HttpExpectationError("; ".join(problems))
