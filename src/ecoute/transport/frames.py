"""
Wire frames — the tagged variants the relay core understands.

Every inbound WebSocket message goes through parse_frame() exactly once and
comes out as one of the dataclasses below. The dispatcher never looks at raw
JSON fields; anything that doesn't match a known shape becomes an
UnknownFrame and is answered with a debug frame.

Identity claims arrive in four historical encodings, all folded into a
single IdentityClaim:

    listener                                    (bare role name)
    {"type": "connect", "user": "listener"}
    {"action": "identify", "device": "listener"}
    {"type": "identify", "role": "listener"}

Server → client frames are plain dicts built by server_frame(); each carries
an ISO-8601 UTC timestamp.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from ecoute.relay.roles import Role

AUDIO_FRAME_TYPES = ("audio_data", "audio_chunk")

# Filled in on relayed audio when the sender omits them
DEFAULT_SAMPLE_RATE = 44100
DEFAULT_AUDIO_FORMAT = "PCM_16BIT"
DEFAULT_CHANNELS = 1

DEBUG_ECHO_LIMIT = 100

EXPECTED_FORMATS = [
    Role.LISTENER.value,
    Role.SOURCE.value,
    '{"type":"connect","user":"listener"}',
    '{"action":"identify","device":"listener"}',
    '{"type":"identify","role":"listener"}',
]


class ControlKind(str, Enum):
    """Session control frames handled by the lifecycle manager."""

    START_LISTENING = "start_listening"
    STOP_LISTENING = "stop_listening"
    START_RECORDING = "start_recording"
    BATTERY_UPDATE = "battery_update"


_CONTROL_TYPES = frozenset(kind.value for kind in ControlKind)


# ─── Inbound variants ────────────────────────────────────────────


@dataclass(frozen=True)
class IdentityClaim:
    """A connection asking to become the holder of a role."""

    role: Role


@dataclass(frozen=True)
class AudioFrame:
    """Audio payload to relay to the peer (and maybe persist)."""

    raw: dict[str, Any]
    data: str = ""
    sender: str | None = None
    target: str | None = None
    session_id: str | None = None
    order: int | None = None

    @property
    def frame_type(self) -> str:
        return self.raw.get("type", AUDIO_FRAME_TYPES[0])


@dataclass(frozen=True)
class PingFrame:
    """Application-level keep-alive from the client."""


@dataclass(frozen=True)
class StatusRequest:
    """Client asking for the current role connectivity."""


@dataclass(frozen=True)
class ListeningIndicator:
    """Listener telling the source whether someone is listening right now."""

    listening: bool


@dataclass(frozen=True)
class ControlFrame:
    """start/stop listening, start recording, battery updates."""

    kind: ControlKind
    session_id: str | None = None
    battery_level: Any = None


@dataclass(frozen=True)
class UnknownFrame:
    """Anything that didn't parse into a known shape."""

    text: str
    reason: str = "unrecognized format"


InboundFrame = Union[
    IdentityClaim,
    AudioFrame,
    PingFrame,
    StatusRequest,
    ListeningIndicator,
    ControlFrame,
    UnknownFrame,
]


# ─── Parsing ─────────────────────────────────────────────────────


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def _claimed_name(data: dict[str, Any]) -> Any:
    """Return the role name from any of the JSON identity encodings, else None."""
    if data.get("type") == "connect" and data.get("user"):
        return data["user"]
    if data.get("action") == "identify" and data.get("device"):
        return data["device"]
    if data.get("type") == "identify" and data.get("role"):
        return data["role"]
    return None


def parse_frame(text: str) -> InboundFrame:
    """Classify one inbound message. Never raises."""
    stripped = text.strip()
    try:
        data: Any = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        data = stripped
    except RecursionError:
        return UnknownFrame(text=text, reason="frame is nested too deeply")

    if isinstance(data, str):
        role = Role.parse(data)
        if role is not None:
            return IdentityClaim(role=role)
        return UnknownFrame(text=text, reason="unrecognized text message")

    if not isinstance(data, dict):
        return UnknownFrame(text=text, reason="frame is not a JSON object")

    msg_type = data.get("type")
    if msg_type is not None and not isinstance(msg_type, str):
        return UnknownFrame(text=text, reason="frame type is not a string")

    if msg_type in AUDIO_FRAME_TYPES:
        payload = data.get("data")
        return AudioFrame(
            raw=data,
            data=payload if isinstance(payload, str) else "",
            sender=_as_str(data.get("from")),
            target=_as_str(data.get("to")),
            session_id=_as_str(data.get("session_id")),
            order=_as_int(data.get("order")),
        )

    if msg_type == "ping":
        return PingFrame()

    if msg_type == "status_request":
        return StatusRequest()

    if msg_type == "bernard_listening":
        listening = data.get("listening")
        if not isinstance(listening, bool):
            return UnknownFrame(text=text, reason="listening must be true or false")
        return ListeningIndicator(listening=listening)

    if msg_type in _CONTROL_TYPES:
        return ControlFrame(
            kind=ControlKind(msg_type),
            session_id=_as_str(data.get("session_id")),
            battery_level=data.get("battery_level"),
        )

    name = _claimed_name(data)
    if name is not None:
        role = Role.parse(name)
        if role is not None:
            return IdentityClaim(role=role)
        return UnknownFrame(text=text, reason=f"unknown role {name!r}")

    return UnknownFrame(text=text, reason=f"unknown frame type {msg_type!r}")


# ─── Outbound ────────────────────────────────────────────────────


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def server_frame(frame_type: str, **fields: Any) -> dict[str, Any]:
    """Build a server → client frame stamped with the current UTC time."""
    return {"type": frame_type, **fields, "timestamp": utc_now_iso()}


def debug_frame(received: str, reason: str = "unrecognized format") -> dict[str, Any]:
    return server_frame(
        "debug",
        received=received[:DEBUG_ECHO_LIMIT],
        reason=reason,
        message="Message received but format not recognized. "
        "Send 'listener' or 'source' to identify.",
        expectedFormats=EXPECTED_FORMATS,
    )


def error_frame(message: str, code: str = "protocol_error", **fields: Any) -> dict[str, Any]:
    return server_frame("error", code=code, message=message, **fields)


def delivery_failed_frame(target: str | None, reason: str) -> dict[str, Any]:
    return server_frame("delivery_failed", target=target, reason=reason)


def user_status_frame(users: dict[str, str]) -> dict[str, Any]:
    return server_frame("user_status", users=users)


def relay_audio_frame(frame: AudioFrame, sender: Role) -> dict[str, Any]:
    """The frame as forwarded to the peer: verbatim, plus defaults and a server stamp."""
    relayed = dict(frame.raw)
    relayed["from"] = sender.value
    relayed.setdefault("sampleRate", DEFAULT_SAMPLE_RATE)
    relayed.setdefault("format", DEFAULT_AUDIO_FORMAT)
    relayed.setdefault("channels", DEFAULT_CHANNELS)
    relayed["timestamp"] = utc_now_iso()
    return relayed


def encode(frame: dict[str, Any]) -> str:
    return json.dumps(frame)
