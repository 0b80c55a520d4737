"""
Operation builders. Importing this package registers every builder.
"""

from .registry import (
    OperationBuilder,
    OperationBuilderRegistry,
    StepTarget,
    function_name_for,
    registry,
    trigger_key_for,
)
from . import triggers, slack, shopify, stripe, sheets, http, salesforce  # noqa: F401

__all__ = [
    "OperationBuilder",
    "OperationBuilderRegistry",
    "StepTarget",
    "function_name_for",
    "registry",
    "trigger_key_for",
]
