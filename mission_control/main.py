"""FastAPI server for Mission Control."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import httpx
import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import gateway, state
from .api.websocket import ClientEventType, ClientManager, WebSocketEndpoint, websocket_route
from .config import Settings, load_settings
from .gateway.connection import ConnectFactory, GatewayConnection
from .services.bridge import StoreBridge
from .services.hydration import hydrate_from_url
from .services.store import AppStore

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def create_app(
    settings: Optional[Settings] = None,
    connect_factory: Optional[ConnectFactory] = None,
    probe_connect_factory=None,
    http_client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
) -> FastAPI:
    """
    Build the Mission Control application.

    The lifespan is the composition root: it creates the one shared
    GatewayConnection, the store, the bridge and the browser client manager,
    and tears them down in reverse order on shutdown.

    Args:
        settings: Runtime settings; read from the environment when omitted
        connect_factory: Replacement socket factory for the gateway connection
        probe_connect_factory: Replacement socket factory for status probes
        http_client_factory: httpx client class used for hydration

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_settings()
    server_start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Mission Control server...")
        logger.info(f"Gateway: {settings.gateway_url}")

        connection = GatewayConnection.from_settings(settings, connect_factory=connect_factory)
        store = AppStore()
        bridge = StoreBridge(connection, store)
        clients = ClientManager()
        clients.attach(connection, store)

        app.state.settings = settings
        app.state.connection = connection
        app.state.store = store
        app.state.bridge = bridge
        app.state.clients = clients
        app.state.ws_endpoint = WebSocketEndpoint(clients, store, connection)
        app.state.probe_connect_factory = probe_connect_factory

        if settings.api_url:
            await hydrate_from_url(store, settings.api_url, client_factory=http_client_factory)
        else:
            logger.info("No API URL configured; skipping store hydration")

        if settings.autoconnect:
            bridge.start()
        else:
            bridge.attach()

        yield

        logger.info("Shutting down Mission Control server...")
        await clients.broadcast({
            "type": ClientEventType.SERVER_SHUTDOWN.value,
            "message": "Server is shutting down",
        })
        clients.detach()
        bridge.close()
        await connection.shutdown()

    app = FastAPI(
        title="Mission Control API",
        description="Live gateway sync, state snapshots and WebSocket relay for the Mission Control dashboard",
        version=__version__,
        lifespan=lifespan,
    )

    # Configure CORS for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(state.router, prefix="/api/state", tags=["state"])
    app.include_router(gateway.router, prefix="/api/gateway", tags=["gateway"])

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "uptime": time.time() - server_start_time,
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint."""
        return {
            "message": "Mission Control API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "websocket": "/ws",
        }

    @app.get("/api/stats", tags=["monitoring"])
    async def get_stats():
        """Browser client statistics."""
        return {
            "websocket_connections": app.state.clients.get_connection_stats(),
            "server_uptime": time.time() - server_start_time,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Browser WebSocket for live state updates."""
        await websocket_route(websocket)

    @app.exception_handler(500)
    async def internal_error_handler(request, exc):
        logger.error(f"Unhandled error on {request.url.path}: {exc!r}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


def run() -> None:
    """Console entry point: configure logging and serve the app."""
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
