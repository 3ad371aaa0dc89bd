"""
Ecoute Relay — pairs a listener and a source over WebSocket.

WebSocket and HTTP share one port. The WebSocket endpoint is mounted at "/"
(what deployed clients connect to) and at "/ws".

Run: uv run ecoute
  or uv run uvicorn ecoute.main:app --host 0.0.0.0 --port 10000
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from ecoute.core.config import EcouteConfig, config
from ecoute.core.logging import setup_logging
from ecoute.http.status import create_status_router
from ecoute.relay.hub import RelayHub
from ecoute.session.interface import SessionStorage
from ecoute.session.store import SessionStore
from ecoute.transport.websocket import WebSocketTransport

# --- Setup ---
setup_logging()
logger = logging.getLogger("ecoute")


def create_app(
    cfg: EcouteConfig | None = None,
    storage: SessionStorage | None = None,
) -> FastAPI:
    """Build the app. Storage defaults to a SessionStore when persistence is enabled."""
    cfg = cfg or config
    if storage is None and cfg.storage.enabled:
        storage = SessionStore(cfg.storage.db_path)

    hub = RelayHub(
        storage=storage,
        liveness=cfg.liveness,
        write_queue_size=cfg.storage.write_queue_size,
    )
    transport = WebSocketTransport(hub, send_timeout=cfg.server.ws_send_timeout)

    app = FastAPI(title=cfg.server.name, version=cfg.server.version)
    app.state.hub = hub
    app.state.storage = storage

    app.include_router(create_status_router(hub, storage))
    app.add_api_websocket_route("/", transport.handle_connection)
    app.add_api_websocket_route("/ws", transport.handle_connection)

    @app.on_event("startup")
    async def startup():
        if storage is not None:
            await storage.start()
        await hub.start()
        logger.info(
            "%s v%s ready (port=%s, persistence=%s)",
            cfg.server.name,
            cfg.server.version,
            cfg.server.port,
            storage is not None,
        )

    @app.on_event("shutdown")
    async def shutdown():
        await hub.stop()
        if storage is not None:
            await storage.stop()
        logger.info("%s stopped", cfg.server.name)

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    uvicorn.run(
        "ecoute.main:app",
        host=config.server.host,
        port=config.server.port,
        ws_ping_interval=config.liveness.ws_ping_interval,
        log_config=None,
    )


if __name__ == "__main__":
    run()
