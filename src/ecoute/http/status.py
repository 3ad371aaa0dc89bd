"""
Status API — read-only HTTP view of the relay.

Endpoints:
    GET /                        → service info + live connectivity
    GET /health                  → liveness probe for the hosting platform
    GET /sessions?limit=20       → recent listening sessions, newest first
    GET /sessions/{session_id}   → one session with its chunk count
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

import ecoute.core.config as config_module
from ecoute.transport.frames import utc_now_iso

if TYPE_CHECKING:
    from ecoute.relay.hub import RelayHub
    from ecoute.session.interface import SessionStorage

logger = logging.getLogger(__name__)


def create_status_router(
    hub: "RelayHub",
    storage: "SessionStorage | None" = None,
) -> APIRouter:
    """Create the status router."""

    router = APIRouter(tags=["status"])

    def _persistence_disabled() -> JSONResponse:
        return JSONResponse(
            {"error": "Session persistence is disabled"}, status_code=503
        )

    @router.get("/")
    async def root() -> JSONResponse:
        server = config_module.config.server
        status = hub.status()
        return JSONResponse(
            {
                "service": server.name,
                "version": server.version,
                "status": "running" if hub.running else "starting",
                "users": status["users"],
                "active_sessions": status["active_sessions"],
                "connections": status["connections"],
                "features": hub.features,
                "timestamp": utc_now_iso(),
            }
        )

    @router.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "healthy"})

    @router.get("/sessions")
    async def list_sessions(limit: int = Query(20, ge=1, le=500)) -> JSONResponse:
        """Most recently started sessions first."""
        if storage is None:
            return _persistence_disabled()

        sessions = await storage.list_recent_sessions(limit=limit)
        return JSONResponse({"sessions": [s.to_dict() for s in sessions]})

    @router.get("/sessions/{session_id}")
    async def get_session(session_id: str) -> JSONResponse:
        if storage is None:
            return _persistence_disabled()

        session = await storage.get_session(session_id)
        if session is None:
            return JSONResponse(
                {"error": f"Session {session_id} not found"}, status_code=404
            )

        return JSONResponse(
            {
                **session.to_dict(),
                "chunk_count": session.chunk_count,
                "active": hub.lifecycle.get(session_id) is not None,
            }
        )

    return router
