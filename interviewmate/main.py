"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from interviewmate.api import router as api_router
from interviewmate.core.errors import register_exception_handlers
from interviewmate.core.logging import get_logger
from interviewmate.core.memory_manager import MemoryManager

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Backends connect lazily on the first request that needs them
    app.state.memory_manager = MemoryManager()

    yield

    logger.info("Shutting down...")
    manager: MemoryManager = app.state.memory_manager
    if manager.initialized:
        await manager.close()


app = FastAPI(
    title="InterviewMate",
    description="Interview practice chat service with conversation memory",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
