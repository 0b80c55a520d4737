"""
Graph-to-program compiler.

Turns an AutomationGraph into a bundle holding one self-installing host
program (``Code.py``) and its capability manifest (``manifest.json``).
"""

from .assembler import Assembler, Bundle
from .base import BaseCompiler, CompilerReport
from .builders import OperationBuilder, OperationBuilderRegistry, StepTarget, registry
from .compiler import BundleCompiler, compile_graph, compile_report
from .errors import (
    CYCLE_DETECTED,
    MALFORMED_GRAPH,
    UNREACHABLE_NODE,
    UNSUPPORTED_OPERATION,
    CompileError,
    UnsupportedOperationError,
)
from .normalizer import CompiledStep, GraphNormalizer, NormalizedGraph, normalize
from .runtime import runtime_block, runtime_block_sha256

__all__ = [
    "Assembler",
    "BaseCompiler",
    "Bundle",
    "BundleCompiler",
    "CompileError",
    "CompiledStep",
    "CompilerReport",
    "CYCLE_DETECTED",
    "GraphNormalizer",
    "MALFORMED_GRAPH",
    "NormalizedGraph",
    "OperationBuilder",
    "OperationBuilderRegistry",
    "StepTarget",
    "UNREACHABLE_NODE",
    "UNSUPPORTED_OPERATION",
    "UnsupportedOperationError",
    "compile_graph",
    "compile_report",
    "normalize",
    "registry",
    "runtime_block",
    "runtime_block_sha256",
]
