"""
Operation builder registry.

A builder maps one node's static configuration to the Python source of the
function that performs the operation on the host. Builders are registered
under ``"<kind>.<app>:<operation>"`` keys and must be pure: the same config
always renders the same text.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..errors import UnsupportedOperationError
from ..templating import identifier

logger = logging.getLogger(__name__)

REGISTRY_KEY_PATTERN = re.compile(r"^(trigger|action)\.([a-z0-9][a-z0-9_-]*):([a-z0-9][a-z0-9_]*)$")


@dataclass(frozen=True)
class StepTarget:
    """Names a rendered function and the node it came from."""
    function_name: str
    node_id: str
    trigger_key: Optional[str] = None


@dataclass(frozen=True)
class OperationBuilder:
    """A registered builder and its capability metadata"""
    key: str
    kind: str
    app: str
    operation: str
    build: Callable[[Dict[str, Any], StepTarget], str]
    connector: Optional[str] = None
    description: str = ""
    scopes: Tuple[str, ...] = field(default_factory=tuple)
    advanced_services: Tuple[str, ...] = field(default_factory=tuple)
    installs_trigger: bool = False
    entry_points: Tuple[str, ...] = field(default_factory=tuple)

    def describe(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind,
            "app": self.app,
            "operation": self.operation,
            "connector": self.connector,
            "description": self.description,
            "scopes": list(self.scopes),
        }


def function_name_for(key: str, node_id: str) -> str:
    """Generated function name for a node, e.g. ``action_slack_send_message__a1``."""
    return f"{identifier(key)}__{identifier(node_id)}"


def trigger_key_for(key: str, node_id: str, config: Optional[Dict[str, Any]] = None) -> str:
    """Logical trigger key; an explicit ``key`` in the config wins."""
    explicit = (config or {}).get("key")
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()
    return f"{key}@{node_id}"


def step_context(key: str, config: Dict[str, Any], target: StepTarget, **extra: Any) -> Dict[str, Any]:
    """Template variables shared by every builder."""
    context = {
        "fn": target.function_name,
        "node_id": target.node_id,
        "step": f"{key}@{target.node_id}",
        "trigger_key": target.trigger_key,
        "config": config,
    }
    context.update(extra)
    return context


class OperationBuilderRegistry:
    """Holds builders by registry key"""

    def __init__(self):
        self._builders: Dict[str, OperationBuilder] = {}

    def register(self, key: str, *, connector: Optional[str] = None, description: str = "",
                 scopes: Optional[List[str]] = None, advanced_services: Optional[List[str]] = None,
                 installs_trigger: bool = False, entry_points: Optional[List[str]] = None):
        """Decorator registering a build function under ``key``."""
        match = REGISTRY_KEY_PATTERN.match(key)
        if not match:
            raise ValueError(f"Invalid registry key '{key}'")
        kind, app, operation = match.groups()

        def decorator(build_fn):
            if key in self._builders:
                raise ValueError(f"Builder already registered for '{key}'")
            self._builders[key] = OperationBuilder(
                key=key,
                kind=kind,
                app=app,
                operation=operation,
                build=build_fn,
                connector=connector or app,
                description=description,
                scopes=tuple(scopes or ()),
                advanced_services=tuple(advanced_services or ()),
                installs_trigger=installs_trigger,
                entry_points=tuple(entry_points or ()),
            )
            logger.debug(f"Registered builder {key}")
            return build_fn

        return decorator

    def get(self, key: str, node_id: Optional[str] = None) -> OperationBuilder:
        builder = self._builders.get(key)
        if builder is None:
            raise UnsupportedOperationError(key, node_id)
        return builder

    def has(self, key: str) -> bool:
        return key in self._builders

    def keys(self) -> List[str]:
        return sorted(self._builders)

    def render(self, key: str, config: Optional[Dict[str, Any]] = None,
               target: Optional[StepTarget] = None) -> str:
        """Render a builder's source for a config; a default target is used when none is given."""
        builder = self.get(key)
        config = dict(config or {})
        if target is None:
            node_id = "node"
            trigger_key = trigger_key_for(key, node_id, config) if builder.kind == "trigger" else None
            target = StepTarget(function_name_for(key, node_id), node_id, trigger_key)
        return builder.build(config, target)

    def describe(self) -> List[Dict[str, Any]]:
        return [self._builders[key].describe() for key in self.keys()]


registry = OperationBuilderRegistry()
