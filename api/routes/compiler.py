"""
Compiler routes: compile graphs, list builders, fetch the runtime block.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse

from services.compiler import CompileError, compile_graph, registry, runtime_block, runtime_block_sha256
from services.compiler.runtime import RUNTIME_BLOCK_BEGIN

logger = logging.getLogger(__name__)
router = APIRouter(tags=["compiler"])


@router.post("/compile")
async def compile_workflow(graph: Dict[str, Any] = Body(..., description="AutomationGraph document")):
    """Compile an automation graph into a bundle"""
    try:
        bundle = compile_graph(graph)
    except CompileError as e:
        logger.warning(f"Compile failed: {e}")
        return JSONResponse(status_code=422, content=e.to_dict())
    return bundle.to_dict()


@router.get("/registry")
async def list_builders() -> List[Dict[str, Any]]:
    """List registered operation builders"""
    return registry.describe()


@router.get("/runtime")
async def get_runtime() -> Dict[str, Any]:
    """Shared runtime block embedded in every bundle"""
    return {
        "marker": RUNTIME_BLOCK_BEGIN,
        "sha256": runtime_block_sha256(),
        "source": runtime_block(),
    }
