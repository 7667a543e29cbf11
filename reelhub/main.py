"""FastAPI application entry point for Reelhub."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from reelhub.api import manager as ws_manager
from reelhub.api.playback import router as playback_router
from reelhub.api.routes import router as api_router
from reelhub.config import settings
from reelhub.core.errors import ReelhubError
from reelhub.core.logging import setup_logging
from reelhub.services.app_services import build_services
from reelhub.storage.factory import create_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    # Startup
    setup_logging(settings)
    logger.info("Starting Reelhub...")

    store = create_store(settings)
    services = await build_services(settings, store)
    app.state.services = services
    logger.info("Services initialized")

    yield

    # Shutdown
    logger.info("Shutting down Reelhub...")
    await services.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Reelhub API",
    description="Multi-provider media aggregation with automatic source selection",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
app.include_router(playback_router)


@app.exception_handler(ReelhubError)
async def reelhub_error_handler(request: Request, exc: ReelhubError) -> JSONResponse:
    """Map domain errors to ``{"error": code, "detail": message}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.code, "detail": str(exc)}
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint for data-update and session-state broadcasts."""
    await ws_manager.connect(websocket)
    try:
        while True:
            # Keep connection alive, handle any incoming messages
            data = await websocket.receive_text()
            logger.debug(f"Received WebSocket message: {data}")
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        await ws_manager.disconnect(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    """Root endpoint - API status."""
    return {
        "name": settings.site_name,
        "version": "0.1.0",
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, reload=False)
