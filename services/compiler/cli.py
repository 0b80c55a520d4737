"""
CLI interface for the graph compiler.

Usage:
    python -m services.compiler.cli compile --in graph.json --out build/
    python -m services.compiler.cli validate --in graph.json
    python -m services.compiler.cli registry
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict

from core.logging_config import setup_logging

from .builders import registry
from .compiler import BundleCompiler, compile_graph
from .errors import CompileError

logger = logging.getLogger(__name__)


def load_json_file(file_path: str) -> Dict[str, Any]:
    """Load and parse a JSON file"""
    try:
        with open(file_path, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"File not found: {file_path}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {file_path}: {e}")
        sys.exit(1)


def compile_command(args) -> int:
    """Compile a graph and write the bundle files"""
    graph = load_json_file(args.input)
    try:
        bundle = compile_graph(graph, timezone=args.timezone)
    except CompileError as e:
        print(f"{e.code}: {e.message}" + (f" (node {e.node_id})" if e.node_id else ""), file=sys.stderr)
        return 1

    for path in bundle.write_to(args.output):
        logger.info(f"Wrote {path}")
    for warning in bundle.warnings:
        print(f"warning {warning['code']}: {warning['message']}", file=sys.stderr)
    print(json.dumps({"workflow_id": bundle.workflow_id, "stats": dict(bundle.stats)}, indent=2))
    return 0


def validate_command(args) -> int:
    """Validate a graph without writing anything"""
    graph = load_json_file(args.input)
    result = BundleCompiler().compile(graph)
    report = result["report"]
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if result["error"] is None else 1


def registry_command(args) -> int:
    """List registered operation builders"""
    if args.json:
        print(json.dumps(registry.describe(), indent=2))
        return 0
    for entry in registry.describe():
        print(f"{entry['key']:<40} {entry['description']}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="scriptforge graph compiler")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="Compile a graph into a bundle")
    compile_parser.add_argument("--in", dest="input", required=True, help="Graph JSON file")
    compile_parser.add_argument("--out", dest="output", required=True, help="Output directory")
    compile_parser.add_argument("--timezone", help="Timezone when the graph does not set one")
    compile_parser.set_defaults(func=compile_command)

    validate_parser = subparsers.add_parser("validate", help="Validate a graph")
    validate_parser.add_argument("--in", dest="input", required=True, help="Graph JSON file")
    validate_parser.set_defaults(func=validate_command)

    registry_parser = subparsers.add_parser("registry", help="List registered builders")
    registry_parser.add_argument("--json", action="store_true", help="Print JSON")
    registry_parser.set_defaults(func=registry_command)

    args = parser.parse_args(argv)
    setup_logging(log_level=args.log_level, log_format="simple")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
