"""
Ecoute Configuration — single source of truth for all settings.

Reads from environment variables with sensible defaults.
A local .env file is honoured for development; in production the
hosting platform injects the variables directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from ecoute import __version__

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerConfig:
    """HTTP / WebSocket server settings."""

    name: str = "Ecoute Relay"
    version: str = __version__
    host: str = "0.0.0.0"
    port: int = 10000
    ws_send_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            host=os.getenv("ECOUTE_HOST", "0.0.0.0"),
            # PORT is what most PaaS hosts inject
            port=int(os.getenv("ECOUTE_PORT", os.getenv("PORT", "10000"))),
            ws_send_timeout=float(os.getenv("ECOUTE_WS_SEND_TIMEOUT", "5.0")),
        )


@dataclass(frozen=True)
class LivenessConfig:
    """Heartbeat and dead-connection sweep intervals, in seconds."""

    heartbeat_interval: float = 25.0
    ws_ping_interval: float = 30.0
    sweep_interval: float = 60.0
    stats_interval: float = 300.0

    @classmethod
    def from_env(cls) -> LivenessConfig:
        return cls(
            heartbeat_interval=float(os.getenv("ECOUTE_HEARTBEAT_INTERVAL", "25.0")),
            ws_ping_interval=float(os.getenv("ECOUTE_WS_PING_INTERVAL", "30.0")),
            sweep_interval=float(os.getenv("ECOUTE_SWEEP_INTERVAL", "60.0")),
            stats_interval=float(os.getenv("ECOUTE_STATS_INTERVAL", "300.0")),
        )


@dataclass(frozen=True)
class StorageConfig:
    """Session persistence settings."""

    enabled: bool = True
    db_path: str = "ecoute_sessions.db"
    write_queue_size: int = 1000

    @classmethod
    def from_env(cls) -> StorageConfig:
        return cls(
            enabled=_env_bool("ECOUTE_PERSIST", "true"),
            db_path=os.getenv("ECOUTE_DB_PATH", "ecoute_sessions.db"),
            write_queue_size=int(os.getenv("ECOUTE_WRITE_QUEUE_SIZE", "1000")),
        )


@dataclass(frozen=True)
class EcouteConfig:
    """Root configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls) -> EcouteConfig:
        return cls(
            server=ServerConfig.from_env(),
            liveness=LivenessConfig.from_env(),
            storage=StorageConfig.from_env(),
        )


# Singleton — import this wherever you need config
config = EcouteConfig.from_env()
