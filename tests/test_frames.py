"""Tests for wire frame parsing and server frame builders."""

import json
from datetime import datetime

import pytest

from ecoute.relay.roles import Role
from ecoute.transport.frames import (
    AudioFrame,
    ControlFrame,
    ControlKind,
    IdentityClaim,
    ListeningIndicator,
    PingFrame,
    StatusRequest,
    UnknownFrame,
    debug_frame,
    encode,
    parse_frame,
    relay_audio_frame,
    server_frame,
)


# ── Identity ─────────────────────────────────────────────────────


class TestIdentityParsing:
    @pytest.mark.parametrize(
        "text",
        [
            "source",
            "  source\n",
            '"source"',
            '{"type": "connect", "user": "source"}',
            '{"action": "identify", "device": "source"}',
            '{"type": "identify", "role": "source"}',
        ],
    )
    def test_all_encodings(self, text):
        assert parse_frame(text) == IdentityClaim(role=Role.SOURCE)

    def test_unknown_bare_name(self):
        frame = parse_frame("liliann")
        assert isinstance(frame, UnknownFrame)
        assert frame.text == "liliann"

    def test_unknown_role_in_json(self):
        frame = parse_frame('{"type": "identify", "role": "admin"}')
        assert isinstance(frame, UnknownFrame)
        assert "admin" in frame.reason

    def test_connect_without_user(self):
        assert isinstance(parse_frame('{"type": "connect"}'), UnknownFrame)


# ── Other inbound variants ───────────────────────────────────────


class TestFrameParsing:
    def test_ping(self):
        assert parse_frame('{"type": "ping"}') == PingFrame()

    def test_status_request(self):
        assert parse_frame('{"type": "status_request"}') == StatusRequest()

    def test_listening_indicator(self):
        assert parse_frame(
            '{"type": "bernard_listening", "listening": true}'
        ) == ListeningIndicator(listening=True)
        assert parse_frame(
            '{"type": "bernard_listening", "listening": false}'
        ) == ListeningIndicator(listening=False)

    @pytest.mark.parametrize(
        "value", ['"false"', '"true"', "0", "1", "null", "[]"]
    )
    def test_listening_indicator_requires_boolean(self, value):
        frame = parse_frame(f'{{"type": "bernard_listening", "listening": {value}}}')
        assert isinstance(frame, UnknownFrame)
        assert "true or false" in frame.reason

    def test_listening_indicator_missing_value(self):
        assert isinstance(parse_frame('{"type": "bernard_listening"}'), UnknownFrame)

    def test_audio_fields(self):
        frame = parse_frame(
            json.dumps(
                {
                    "type": "audio_data",
                    "from": "source",
                    "to": "listener",
                    "data": "AAA=",
                    "session_id": "s1",
                    "order": "4",
                }
            )
        )
        assert isinstance(frame, AudioFrame)
        assert frame.frame_type == "audio_data"
        assert frame.sender == "source"
        assert frame.target == "listener"
        assert frame.data == "AAA="
        assert frame.session_id == "s1"
        assert frame.order == 4

    def test_audio_non_string_data_is_empty(self):
        frame = parse_frame('{"type": "audio_chunk", "data": 12}')
        assert isinstance(frame, AudioFrame)
        assert frame.data == ""
        assert frame.order is None

    @pytest.mark.parametrize("kind", list(ControlKind))
    def test_control_frames(self, kind):
        frame = parse_frame(json.dumps({"type": kind.value, "session_id": "abc"}))
        assert frame == ControlFrame(kind=kind, session_id="abc")

    def test_battery_level_passed_through_raw(self):
        frame = parse_frame('{"type": "battery_update", "battery_level": "high"}')
        assert isinstance(frame, ControlFrame)
        assert frame.battery_level == "high"

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "[1, 2]",
            "42",
            "{not json",
            '{"type": "dance"}',
            '{"type": ["x"]}',
            '{"type": {}}',
            '{"type": 7}',
        ],
    )
    def test_malformed_never_raises(self, text):
        assert isinstance(parse_frame(text), UnknownFrame)

    @pytest.mark.parametrize("text", ['{"type": ["x"]}', '{"type": {"a": 1}}'])
    def test_non_string_type(self, text):
        frame = parse_frame(text)
        assert isinstance(frame, UnknownFrame)
        assert frame.reason == "frame type is not a string"

    def test_deeply_nested_json(self):
        frame = parse_frame("[" * 100_000)
        assert isinstance(frame, UnknownFrame)


# ── Outbound ─────────────────────────────────────────────────────


class TestServerFrames:
    def test_timestamp_is_iso_utc(self):
        frame = server_frame("pong")
        assert frame["type"] == "pong"
        parsed = datetime.fromisoformat(frame["timestamp"])
        assert parsed.utcoffset().total_seconds() == 0

    def test_debug_frame_truncates(self):
        frame = debug_frame("y" * 250)
        assert len(frame["received"]) == 100
        assert '{"type":"connect","user":"listener"}' in frame["expectedFormats"]

    def test_relay_fills_defaults(self):
        audio = AudioFrame(raw={"type": "audio_data", "to": "listener", "data": "AAA="}, data="AAA=")
        relayed = relay_audio_frame(audio, Role.SOURCE)

        assert relayed["from"] == "source"
        assert relayed["sampleRate"] == 44100
        assert relayed["format"] == "PCM_16BIT"
        assert relayed["channels"] == 1
        assert "timestamp" in relayed
        # The parsed frame is not mutated
        assert "from" not in audio.raw

    def test_relay_restamps_client_timestamp(self):
        audio = AudioFrame(
            raw={"type": "audio_data", "data": "AAA=", "timestamp": "client-time"},
            data="AAA=",
        )
        relayed = relay_audio_frame(audio, Role.LISTENER)
        assert relayed["timestamp"] != "client-time"

    def test_encode_is_json(self):
        assert json.loads(encode({"type": "pong"})) == {"type": "pong"}
