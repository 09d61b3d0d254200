import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from .api import websockets
from .api.errors import register_error_handlers
from .bus.connection import connect_bus
from .dependencies import (
    get_event_broadcaster,
    get_settings,
    get_websocket_manager,
    set_bus_connection,
)
from .domains.iscsi.api import iscsi_router
from .domains.iscsi.stream import iscsi_stream
from .logging_config import setup_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging(settings)

    config_info = settings.config_file_info
    logging.info(f"Configuration loaded from: {config_info['active_config_file']}")
    logging.info(f"Running on hostname: {config_info['hostname']}")
    if len(config_info["all_available_configs"]) > 1:
        logging.info(
            f"Available config files: {', '.join(config_info['all_available_configs'])}"
        )

    logging.info("iSCSI bridge starting up...")
    bus = await connect_bus(settings)
    set_bus_connection(bus)

    try:
        events = await iscsi_stream(bus, settings)
    except Exception:
        logging.error("Could not subscribe to iSCSI changes, shutting down")
        bus.disconnect()
        raise

    websocket_manager = get_websocket_manager()
    websocket_manager.start()

    broadcaster = get_event_broadcaster()
    broadcaster.start(events)

    yield

    # Shutdown
    logging.info("iSCSI bridge shutting down...")
    await broadcaster.stop()
    await websocket_manager.stop()
    bus.disconnect()
    logging.info("All background tasks stopped")


app = FastAPI(
    title="iSCSI Bridge",
    description="HTTP and WebSocket access to the iSCSI storage D-Bus service",
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logging.info(
        f"Incoming request: {request.method} {request.url.path}",
        extra={
            "operation": "http_request",
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else "unknown",
        },
    )

    response = await call_next(request)

    logging.info(
        f"Response: {response.status_code}",
        extra={
            "operation": "http_response",
            "status_code": response.status_code,
            "path": request.url.path,
        },
    )

    return response


app.include_router(iscsi_router)
app.include_router(websockets.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "iscsi-bridge"}


def run() -> None:
    uvicorn.run(
        "iscsi_bridge.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
