"""
Seal connector secrets for a bundle.

Usage:
    python -m services.sealing.cli --in secrets.json [--ttl 900] [--out sealed.json]

The input maps connector ids to ``{PROPERTY: value}``. The output lists one
token per connector together with the script property to store it under.
"""

import argparse
import base64
import json
import logging
import sys

from core.logging_config import setup_logging

from .issuer import SecretSealer, build_connector_bundle

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seal connector secrets into short-lived tokens")
    parser.add_argument("--in", dest="input", required=True, help="JSON file mapping connector -> {PROPERTY: value}")
    parser.add_argument("--out", dest="output", help="Write the bundle here instead of stdout")
    parser.add_argument("--ttl", type=int, help="Token lifetime in seconds")
    parser.add_argument("--shared-key", help="Base64 shared key (defaults to settings, else random per token)")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)
    setup_logging(log_level=args.log_level, log_format="simple")

    try:
        with open(args.input, "r") as f:
            secrets_by_connector = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read {args.input}: {e}")
        return 1
    if not isinstance(secrets_by_connector, dict):
        logger.error("Input must be a JSON object keyed by connector id")
        return 1

    shared_key = base64.b64decode(args.shared_key) if args.shared_key else None
    try:
        bundle = build_connector_bundle(secrets_by_connector, args.ttl, SecretSealer(shared_key))
    except ValueError as e:
        logger.error(str(e))
        return 1

    output = json.dumps(bundle, indent=2, sort_keys=True)
    if args.output:
        with open(args.output, "w") as f:
            f.write(output + "\n")
        logger.info(f"Sealed {bundle['connector_count']} connector(s) into {args.output}")
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
