"""Tests for LivenessSupervisor — heartbeats, sweep, stats."""

import asyncio
import logging

import pytest
import pytest_asyncio

from conftest import open_connection
from ecoute.core.config import LivenessConfig
from ecoute.relay.hub import RelayHub
from ecoute.relay.roles import Role


@pytest_asyncio.fixture
async def fast_hub():
    h = RelayHub(
        liveness=LivenessConfig(
            heartbeat_interval=0.01,
            sweep_interval=0.02,
            stats_interval=3600,
        )
    )
    await h.start()
    yield h
    await h.stop()


@pytest.mark.asyncio
async def test_heartbeat_sends_server_ping(fast_hub: RelayHub):
    conn = await open_connection(fast_hub)
    await asyncio.sleep(0.05)

    assert len(conn.of_type("server_ping")) >= 2
    assert all("timestamp" in f for f in conn.of_type("server_ping"))


@pytest.mark.asyncio
async def test_heartbeat_stops_when_connection_closes(fast_hub: RelayHub):
    conn = await open_connection(fast_hub)
    conn.open = False
    await asyncio.sleep(0.05)

    assert conn.of_type("server_ping") == []
    assert fast_hub.supervisor.watched == 0


@pytest.mark.asyncio
async def test_close_unwatches(hub: RelayHub):
    conn = await open_connection(hub)
    assert hub.supervisor.watched == 1

    await hub.on_close(conn)
    assert hub.supervisor.watched == 0


@pytest.mark.asyncio
async def test_sweep_releases_dead_connections(hub: RelayHub):
    listener = await open_connection(hub, "listener")
    source = await open_connection(hub, "source")
    source.sent.clear()

    listener.open = False
    swept = await hub.supervisor.sweep()

    assert swept == 1
    assert hub.registry.get(Role.LISTENER) is None
    assert source.types() == ["peer_disconnected", "user_status"]
    assert source.last("user_status")["users"]["listener"] == "disconnected"


@pytest.mark.asyncio
async def test_sweep_leaves_open_connections(hub: RelayHub):
    await open_connection(hub, "listener")
    assert await hub.supervisor.sweep() == 0
    assert hub.registry.get(Role.LISTENER) is not None


@pytest.mark.asyncio
async def test_periodic_sweep_runs(fast_hub: RelayHub):
    listener = await open_connection(fast_hub, "listener")
    listener.open = False
    await asyncio.sleep(0.08)

    assert fast_hub.registry.get(Role.LISTENER) is None


@pytest.mark.asyncio
async def test_log_stats(hub: RelayHub, caplog):
    await open_connection(hub, "source")

    with caplog.at_level(logging.INFO, logger="ecoute.relay.liveness"):
        hub.supervisor.log_stats()

    assert "Relay stats" in caplog.text
    assert "'source': 'connected'" in caplog.text
