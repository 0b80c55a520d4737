"""
Run dry-run fixtures.

Usage:
    python -m services.dry_run.cli [--fixtures tests/fixtures/dry_run] [--json]
"""

import argparse
import json
import sys

from core.config import settings
from core.logging_config import setup_logging

from .fixtures import load_fixtures
from .harness import run_fixtures


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run compiled bundles against dry-run fixtures")
    parser.add_argument("--fixtures", default=settings.dry_run_fixtures_dir, help="Fixture directory")
    parser.add_argument("--json", action="store_true", help="Print the full JSON summary")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)
    setup_logging(log_level=args.log_level, log_format="simple")

    summary = run_fixtures(load_fixtures(args.fixtures))
    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    else:
        for result in summary["results"]:
            status = "PASS" if result["passed"] else "FAIL"
            print(f"{status} {result['id']}")
            for failure in result["failures"]:
                print(f"    {failure}")
        print(f"\n{summary['passed']} passed, {summary['failed']} failed in {summary['duration_ms']}ms")
    return 0 if summary["failed"] == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
