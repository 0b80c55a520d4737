"""
FastAPI application exposing the graph compiler.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import compiler_router, system_router
from api.middleware import add_logging_middleware
from core.logging_config import get_logger
from services.compiler import registry

logger = get_logger(__name__)

app = FastAPI(
    title="scriptforge API",
    description="Compiles automation graphs into self-installing host programs.",
    version="1.0.0",
    openapi_tags=[
        {
            "name": "compiler",
            "description": "Graph compilation, builder registry and runtime block"
        },
        {
            "name": "system",
            "description": "Health checks"
        }
    ]
)


@app.on_event("startup")
async def startup_event():
    """Log the builder inventory when the server starts"""
    logger.info("🚀 Starting scriptforge API server...")
    logger.info(f"📚 {len(registry.keys())} operation builders registered")


# Add logging middleware first (for request tracking)
add_logging_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(compiler_router)
app.include_router(system_router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "scriptforge API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc"
    }
