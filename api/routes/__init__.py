"""
API Routes Package

This package contains all the route modules organized by functionality.
"""

from api.routes.compiler import router as compiler_router
from api.routes.system import router as system_router

__all__ = [
    "compiler_router",
    "system_router"
]
