"""
Server-side issuer for sealed credential tokens.
"""

from .issuer import (
    OpenedSecret,
    PurposeMismatchError,
    SealedSecretError,
    SealedSecretExpiredError,
    SealedSecretIntegrityError,
    SecretSealer,
    build_connector_bundle,
    open_sealed_secret,
    seal_secret,
)

__all__ = [
    "OpenedSecret",
    "PurposeMismatchError",
    "SealedSecretError",
    "SealedSecretExpiredError",
    "SealedSecretIntegrityError",
    "SecretSealer",
    "build_connector_bundle",
    "open_sealed_secret",
    "seal_secret",
]
