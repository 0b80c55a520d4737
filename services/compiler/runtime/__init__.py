"""
Shared runtime block embedded verbatim in every compiled bundle.
"""

import hashlib
import pprint
from functools import lru_cache

from .blocks import CODEC, HTTP, LOGGING, PRELUDE, SECRETS, TRIGGERS, VALUES
from .secret_catalog import build_oauth_metadata, build_secret_overrides

RUNTIME_BLOCK_BEGIN = "# --- scriptforge runtime begin ---"
RUNTIME_BLOCK_END = "# --- scriptforge runtime end ---"

# host functions the generated program calls; the dry-run host implements all of them
HOST_CAPABILITIES = (
    "get_property",
    "set_property",
    "delete_property",
    "property_keys",
    "fetch",
    "create_trigger",
    "list_triggers",
    "delete_trigger",
    "hmac_sha256",
    "base64_encode",
    "base64_decode",
    "sleep",
    "now_ms",
    "log",
)

# modules generated code may import
ALLOWED_IMPORTS = frozenset({"json", "re", "math", "random", "datetime", "email", "email.utils", "urllib", "urllib.parse"})


def _secret_tables() -> str:
    overrides = pprint.pformat(build_secret_overrides(), indent=1, width=100, sort_dicts=True)
    metadata = pprint.pformat(build_oauth_metadata(), indent=1, width=100, sort_dicts=True)
    return (
        "\n_SECRET_HELPER_DEFAULT_OVERRIDES = " + overrides + "\n"
        + "\n_CONNECTOR_OAUTH_TOKEN_METADATA = " + metadata + "\n"
    )


@lru_cache(maxsize=1)
def runtime_block() -> str:
    """The runtime block text, identical for every bundle."""
    sections = [PRELUDE, LOGGING, VALUES, HTTP, CODEC, _secret_tables(), SECRETS, TRIGGERS]
    body = "\n\n".join(section.strip("\n") + "\n" for section in sections)
    return f"{RUNTIME_BLOCK_BEGIN}\n{body}{RUNTIME_BLOCK_END}\n"


def runtime_block_sha256() -> str:
    return hashlib.sha256(runtime_block().encode("utf-8")).hexdigest()
