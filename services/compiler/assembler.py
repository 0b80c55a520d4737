"""
Assembler

Merges compiled steps, trigger wiring and the shared runtime block into the
bundle's ``Code.py`` and builds the capability ``manifest.json``.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from core.config import settings

from .normalizer import NormalizedGraph, TriggerPipeline
from .runtime import runtime_block
from .templating import render_source

logger = logging.getLogger(__name__)

CODE_FILE = "Code.py"
MANIFEST_FILE = "manifest.json"

HEADER_TEMPLATE = r'''# Generated by scriptforge. Do not edit by hand.
# workflow: {{ workflow_id | doc }}{% if name %} ({{ name | doc }}){% endif %}

# runtime: {{ runtime_version }}
'''

PIPELINE_TEMPLATE = r'''
def run_{{ trigger_fn }}(ctx=None):
    """Pipeline for trigger {{ trigger_key | doc }}."""
    ctx = begin_run({{ trigger_key | py }}, ctx)
    try:
{% for step in steps %}
        ctx = {{ step }}(ctx)
{% else %}
        pass
{% endfor %}
    except Exception as error:
        log_error("run_failed", {"trigger": {{ trigger_key | py }}, "run_id": ctx.get("run_id"), "message": str(error)})
        raise
    return finish_run({{ trigger_key | py }}, ctx)
'''

ENTRY_TEMPLATE = r'''
PIPELINES = {
{% for key, fn in pipelines %}
    {{ key | py }}: run_{{ fn }},
{% endfor %}
}

ACTIVE_TRIGGER_KEYS = {{ active_keys | py }}


def setup_triggers():
    """Install this workflow's host triggers and remove the ones it no longer declares."""
    installed = []
{% for fn in installers %}
    installed.append(install_{{ fn }}())
{% endfor %}
    removed = sync_trigger_registry(ACTIVE_TRIGGER_KEYS)
    return {"installed": installed, "removed": removed}


def main(ctx=None):
    """Install triggers, then run the first trigger's pipeline."""
    setup_triggers()
    return run_{{ first_trigger }}(ctx)
{% if webhooks %}


def do_post(event=None):
    """Web app POST entry point; ?trigger=<node id> selects a webhook trigger."""
    handlers = {
{% for node_id, fn in webhooks %}
        {{ node_id | py }}: {{ fn }},
{% endfor %}
    }
    event = event if isinstance(event, dict) else {}
    selected = (event.get("parameters") or {}).get("trigger")
    handler = handlers.get(selected) or {{ webhooks[0][1] }}
    return handler(event)
{% endif %}
'''


@dataclass(frozen=True)
class Bundle:
    """Immutable compiler output"""
    workflow_id: str
    files: Mapping[str, str]
    stats: Mapping[str, int]
    warnings: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def code(self) -> str:
        return self.files[CODE_FILE]

    @property
    def manifest(self) -> Dict[str, Any]:
        return json.loads(self.files[MANIFEST_FILE])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "stats": dict(self.stats),
            "files": dict(self.files),
            "manifest": self.manifest,
            "warnings": [dict(warning) for warning in self.warnings],
        }

    def write_to(self, directory: Union[str, Path]) -> List[Path]:
        """Write every file; each file is replaced atomically."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        written = []
        for name in sorted(self.files):
            target = directory / name
            fd, tmp_path = tempfile.mkstemp(dir=str(directory), prefix=f".{name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(self.files[name])
                os.replace(tmp_path, target)
            except Exception:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
            written.append(target)
        return written


class Assembler:
    """Turns a normalized graph into a Bundle. Cannot fail on its own."""

    def __init__(self, runtime_version: Optional[str] = None, default_timezone: Optional[str] = None):
        self.runtime_version = runtime_version or settings.runtime_version
        self.default_timezone = default_timezone or settings.default_timezone

    def assemble(self, normalized: NormalizedGraph) -> Bundle:
        graph = normalized.graph
        code = self.render_code(normalized)
        manifest = self.build_manifest(normalized)
        actions = [step for step in normalized.steps if step.trigger_key is None]
        stats = {
            "nodes": len(graph.nodes),
            "edges": len(graph.edges),
            "steps": len(actions),
            "triggers": len(normalized.pipelines),
        }
        files = {
            CODE_FILE: code,
            MANIFEST_FILE: json.dumps(manifest, indent=2, sort_keys=True) + "\n",
        }
        logger.debug(f"Assembled bundle for {graph.id}: {stats}")
        return Bundle(
            workflow_id=graph.id,
            files=MappingProxyType(files),
            stats=MappingProxyType(stats),
            warnings=tuple(normalized.warnings),
        )

    def render_code(self, normalized: NormalizedGraph) -> str:
        graph = normalized.graph
        pipelines = normalized.pipelines
        actions = [step for step in normalized.steps if step.trigger_key is None]

        sections = [
            render_source(HEADER_TEMPLATE, workflow_id=graph.id, name=graph.name,
                          runtime_version=self.runtime_version),
            runtime_block(),
            "# --- steps ---",
        ]
        sections.extend(step.emitted_source.strip("\n") for step in actions)
        sections.append("# --- triggers ---")
        sections.extend(pipeline.trigger.emitted_source.strip("\n") for pipeline in pipelines)
        sections.append("# --- pipelines ---")
        sections.extend(self._render_pipeline(pipeline) for pipeline in pipelines)
        sections.append(self._render_entry_points(pipelines))
        return "\n\n\n".join(section.strip("\n") for section in sections) + "\n"

    def _render_pipeline(self, pipeline: TriggerPipeline) -> str:
        return render_source(
            PIPELINE_TEMPLATE,
            trigger_fn=pipeline.trigger.function_name,
            trigger_key=pipeline.trigger.trigger_key,
            steps=[step.function_name for step in pipeline.steps],
        )

    def _render_entry_points(self, pipelines: Tuple[TriggerPipeline, ...]) -> str:
        triggers = [pipeline.trigger for pipeline in pipelines]
        return render_source(
            ENTRY_TEMPLATE,
            pipelines=[(step.trigger_key, step.function_name) for step in triggers],
            active_keys=[step.trigger_key for step in triggers if step.builder.installs_trigger],
            installers=[step.function_name for step in triggers if step.builder.installs_trigger],
            first_trigger=triggers[0].function_name,
            webhooks=[(step.node.id, step.function_name) for step in triggers
                      if "do_post" in step.builder.entry_points],
        )

    def build_manifest(self, normalized: NormalizedGraph) -> Dict[str, Any]:
        scopes = set()
        advanced_services = set()
        for step in normalized.steps:
            scopes.update(step.builder.scopes)
            advanced_services.update(step.builder.advanced_services)

        entry_points = ["main", "setup_triggers"]
        for pipeline in normalized.pipelines:
            entry_points.append(pipeline.trigger.function_name)
            for extra in pipeline.trigger.builder.entry_points:
                if extra not in entry_points:
                    entry_points.append(extra)

        return {
            "timezone": normalized.graph.timezone or self.default_timezone,
            "scopes": sorted(scopes),
            "advanced_services": sorted(advanced_services),
            "runtime_version": self.runtime_version,
            "entry_points": entry_points,
        }
