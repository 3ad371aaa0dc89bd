"""
Ecoute relay core.

Public API:
    Role                    — the two fixed roles (listener, source)
    RelayHub                — facade owning the core components
    ConnectionRegistry      — role → connection, last-writer-wins
    MessageDispatcher       — routes parsed frames
    SessionLifecycleManager — listening-session state machine
    LivenessSupervisor      — heartbeats, sweep, stats
    BackgroundWriter        — fire-and-forget persistence queue
"""

from ecoute.relay.roles import Role

_LAZY = {
    "RelayHub": "ecoute.relay.hub",
    "ConnectionRegistry": "ecoute.relay.registry",
    "ClaimResult": "ecoute.relay.registry",
    "MessageDispatcher": "ecoute.relay.dispatcher",
    "SessionLifecycleManager": "ecoute.relay.lifecycle",
    "LivenessSupervisor": "ecoute.relay.liveness",
    "BackgroundWriter": "ecoute.relay.writer",
}


def __getattr__(name: str):
    """Lazy import — avoids circular import with ecoute.transport."""
    if name in _LAZY:
        import importlib

        module = importlib.import_module(_LAZY[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["Role", *_LAZY]
