"""
Compile-time error types.
"""

from typing import Optional

MALFORMED_GRAPH = "MALFORMED_GRAPH"
UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
CYCLE_DETECTED = "CYCLE_DETECTED"
UNREACHABLE_NODE = "UNREACHABLE_NODE"


class CompileError(Exception):
    """A fatal compile failure; no bundle is produced."""

    def __init__(self, code: str, node_id: Optional[str], message: str, report=None):
        super().__init__(f"{code}: {message}" + (f" (node {node_id})" if node_id else ""))
        self.code = code
        self.node_id = node_id
        self.message = message
        self.report = report

    def to_dict(self):
        return {
            "code": self.code,
            "node_id": self.node_id,
            "message": self.message,
            "errors": list(self.report.errors) if self.report is not None else [],
        }


class UnsupportedOperationError(CompileError):
    """No builder is registered for a registry key."""

    def __init__(self, key: str, node_id: Optional[str] = None, report=None):
        super().__init__(UNSUPPORTED_OPERATION, node_id, f"No builder registered for '{key}'", report)
        self.key = key
