"""
Sealed secret issuer.

Produces the short-lived credential tokens that compiled bundles decode at run
time, and opens them again on the server side for verification. The token
layout and both labels must stay in step with the runtime decoder.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.config import settings
from services.compiler.runtime.secret_catalog import sealed_credentials_property

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "SF1."
TOKEN_VERSION = 1
STREAM_LABEL = b"scriptforge-secret-stream-v1"
METADATA_LABEL = b"scriptforge-secret-metadata-v1"
IV_BYTES = 16
SHARED_KEY_BYTES = 32


class SealedSecretError(Exception):
    """A sealed token could not be produced or opened"""


class SealedSecretIntegrityError(SealedSecretError):
    """A token failed its MAC or metadata checks"""


class SealedSecretExpiredError(SealedSecretError):
    """A token is past its expiry"""


class PurposeMismatchError(SealedSecretError):
    """A token was sealed for a different purpose than required"""


@dataclass(frozen=True)
class OpenedSecret:
    payload: Any
    issued_at: int
    expires_at: int
    purpose: Optional[str]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _keystream(shared_key: bytes, iv: bytes, length: int) -> bytes:
    output = b""
    counter = 0
    while len(output) < length:
        block = iv + counter.to_bytes(4, "big") + STREAM_LABEL
        output += hmac.new(shared_key, block, hashlib.sha256).digest()
        counter += 1
    return output[:length]


def _mac(shared_key: bytes, iv: bytes, ciphertext: bytes, issued_at: int, expires_at: int,
         purpose: Optional[str]) -> str:
    data = (
        METADATA_LABEL
        + iv
        + ciphertext
        + str(issued_at).encode("utf-8")
        + str(expires_at).encode("utf-8")
        + (purpose or "").encode("utf-8")
    )
    return hmac.new(shared_key, data, hashlib.sha256).hexdigest()


def _xor(data: bytes, keystream: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(data, keystream))


class SecretSealer:
    """Seals and opens credential tokens"""

    def __init__(self, shared_key: Optional[bytes] = None, default_ttl_seconds: Optional[int] = None,
                 min_ttl_seconds: Optional[int] = None):
        if shared_key is None and settings.sealing_shared_key:
            shared_key = base64.b64decode(settings.sealing_shared_key)
        self.shared_key = shared_key
        self.default_ttl_seconds = default_ttl_seconds or settings.sealing_default_ttl_seconds
        self.min_ttl_seconds = min_ttl_seconds or settings.sealing_min_ttl_seconds

    def seal(self, payload: Any, ttl_seconds: Optional[int] = None, purpose: Optional[str] = None,
             now_ms: Optional[int] = None) -> str:
        """
        Seal a JSON-serializable payload

        Args:
            payload: Value returned to the bundle when the token is opened
            ttl_seconds: Token lifetime; defaults to the configured TTL
            purpose: Optional label bound into the MAC
            now_ms: Issue time override

        Returns:
            Token string starting with ``SF1.``
        """
        ttl = self.default_ttl_seconds if ttl_seconds is None else int(ttl_seconds)
        if ttl < self.min_ttl_seconds:
            raise ValueError(f"ttl_seconds must be at least {self.min_ttl_seconds}")

        issued_at = _now_ms() if now_ms is None else int(now_ms)
        expires_at = issued_at + ttl * 1000
        purpose = purpose or None
        shared_key = self.shared_key or secrets.token_bytes(SHARED_KEY_BYTES)
        iv = secrets.token_bytes(IV_BYTES)

        plaintext = json.dumps({
            "payload": payload,
            "issued_at": issued_at,
            "expires_at": expires_at,
            "purpose": purpose,
        }, sort_keys=True).encode("utf-8")
        ciphertext = _xor(plaintext, _keystream(shared_key, iv, len(plaintext)))

        token = {
            "version": TOKEN_VERSION,
            "shared_key": base64.b64encode(shared_key).decode("ascii"),
            "iv": base64.b64encode(iv).decode("ascii"),
            "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
            "hmac": _mac(shared_key, iv, ciphertext, issued_at, expires_at, purpose),
            "issued_at": issued_at,
            "expires_at": expires_at,
            "purpose": purpose,
        }
        encoded = base64.b64encode(json.dumps(token, sort_keys=True).encode("utf-8")).decode("ascii")
        logger.debug(f"Sealed secret for {purpose or 'credential'} expiring at {expires_at}")
        return TOKEN_PREFIX + encoded

    def open(self, token: str, require_purpose: Optional[str] = None,
             now_ms: Optional[int] = None) -> OpenedSecret:
        """Open a token with the same checks the bundle runtime applies."""
        if not isinstance(token, str) or not token.startswith(TOKEN_PREFIX):
            raise SealedSecretError("Value is not a sealed secret token")
        try:
            envelope = json.loads(base64.b64decode(token[len(TOKEN_PREFIX):], validate=True).decode("utf-8"))
        except ValueError as e:
            raise SealedSecretError(f"Failed to parse sealed credential token: {e}") from e
        if not isinstance(envelope, dict) or envelope.get("version") != TOKEN_VERSION:
            raise SealedSecretError("Unrecognized sealed credential token format.")

        purpose = envelope.get("purpose") or None
        label = purpose or "credential"
        issued_at = envelope.get("issued_at")
        expires_at = envelope.get("expires_at")
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            raise SealedSecretError(f"Sealed credential token for {label} has no expiry.")
        if (_now_ms() if now_ms is None else now_ms) > expires_at:
            raise SealedSecretExpiredError(f"Credential token for {label} has expired.")

        try:
            shared_key = base64.b64decode(envelope["shared_key"], validate=True)
            iv = base64.b64decode(envelope["iv"], validate=True)
            ciphertext = base64.b64decode(envelope["ciphertext"], validate=True)
        except (KeyError, TypeError, ValueError) as e:
            raise SealedSecretError(f"Malformed sealed credential token for {label}: {e}") from e

        expected = _mac(shared_key, iv, ciphertext, issued_at, expires_at, purpose)
        if not hmac.compare_digest(expected.encode("utf-8"), str(envelope.get("hmac") or "").encode("utf-8")):
            raise SealedSecretIntegrityError(f"Credential token integrity check failed for {label}.")

        try:
            sealed = json.loads(_xor(ciphertext, _keystream(shared_key, iv, len(ciphertext))).decode("utf-8"))
        except ValueError as e:
            raise SealedSecretIntegrityError(f"Failed to decode sealed credential payload for {label}: {e}") from e
        if (
            not isinstance(sealed, dict)
            or sealed.get("issued_at") != issued_at
            or sealed.get("expires_at") != expires_at
            or (sealed.get("purpose") or None) != purpose
        ):
            raise SealedSecretIntegrityError(f"Credential token metadata mismatch for {label}.")

        if require_purpose is not None and purpose != require_purpose:
            raise PurposeMismatchError(f"Token purpose {purpose!r} does not match required {require_purpose!r}")

        return OpenedSecret(sealed.get("payload"), issued_at, expires_at, purpose)


def seal_secret(payload: Any, shared_key: Optional[bytes] = None, ttl_seconds: Optional[int] = None,
                purpose: Optional[str] = None, now_ms: Optional[int] = None) -> str:
    return SecretSealer(shared_key).seal(payload, ttl_seconds, purpose, now_ms)


def open_sealed_secret(token: str, require_purpose: Optional[str] = None,
                       now_ms: Optional[int] = None) -> OpenedSecret:
    return SecretSealer().open(token, require_purpose, now_ms)


def connector_property(connector: str) -> str:
    """Property a connector's sealed bundle is stored under."""
    return sealed_credentials_property(connector)


def build_connector_bundle(secrets_by_connector: Dict[str, Dict[str, str]], ttl_seconds: Optional[int] = None,
                           sealer: Optional[SecretSealer] = None, now_ms: Optional[int] = None) -> Dict[str, Any]:
    """
    Seal every connector's secrets into one token each

    Returns:
        {generated_at, ttl_seconds, connector_count, connectors: {id: {property, token, expires_at, purpose}}}
    """
    sealer = sealer or SecretSealer()
    ttl = sealer.default_ttl_seconds if ttl_seconds is None else int(ttl_seconds)
    issued_at = _now_ms() if now_ms is None else int(now_ms)
    connectors = {}
    for connector in sorted(secrets_by_connector):
        values = secrets_by_connector[connector]
        if not isinstance(values, dict) or not values:
            logger.warning(f"Skipping connector {connector}: no secrets")
            continue
        purpose = f"connector:{connector}"
        token = sealer.seal({"connector": connector, "secrets": values}, ttl, purpose, issued_at)
        connectors[connector] = {
            "property": connector_property(connector),
            "token": token,
            "expires_at": issued_at + ttl * 1000,
            "purpose": purpose,
        }
    return {
        "generated_at": issued_at,
        "ttl_seconds": ttl,
        "connector_count": len(connectors),
        "connectors": connectors,
    }
