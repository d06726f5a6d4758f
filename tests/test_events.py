"""Tests for the voxrelay event model."""

import pytest

from voxrelay.core.events import (
    AudioFrame,
    CallEnded,
    CallStarted,
    Codec,
    CustomEvent,
    EventType,
    FramingStyle,
    OperatingMode,
    SessionConfig,
)


class TestEventModel:
    """Test the Pydantic event models."""

    def test_audio_frame_defaults(self):
        frame = AudioFrame()
        assert frame.event_type == EventType.AUDIO_FRAME
        assert frame.codec == Codec.PCM16
        assert frame.sample_rate == 8000
        assert frame.sequence_number is None
        assert frame.data == b""
        assert frame.stream_sid == ""

    def test_audio_frame_with_data(self):
        frame = AudioFrame(stream_sid="s-1", codec=Codec.MULAW, data=b"\xff\x00\x01")
        assert frame.stream_sid == "s-1"
        assert frame.codec == Codec.MULAW
        assert frame.data == b"\xff\x00\x01"

    def test_call_started(self):
        event = CallStarted(stream_sid="s-1", call_sid="c-1", metadata={"from": "+15551234567"})
        assert event.event_type == EventType.CALL_STARTED
        assert event.metadata["from"] == "+15551234567"

    def test_call_ended_default_reason(self):
        assert CallEnded().reason == "stop"
        assert CallEnded().event_type == EventType.CALL_ENDED

    def test_custom_event(self):
        event = CustomEvent(custom_type="mark", payload={"name": "x"})
        assert event.event_type == EventType.CUSTOM
        assert event.payload == {"name": "x"}

    def test_timestamp_populated(self):
        assert AudioFrame().timestamp > 0


class TestSessionConfig:

    def test_defaults(self):
        config = SessionConfig()
        assert config.framing_style == FramingStyle.JSON
        assert config.caller_sample_rate == 8000
        assert config.assistant_sample_rate == 16000
        assert config.caller_codec == Codec.PCM16
        assert config.mode == OperatingMode.BRIDGE

    def test_frozen(self):
        config = SessionConfig()
        with pytest.raises(Exception):
            config.caller_sample_rate = 16000

    def test_to_query(self):
        config = SessionConfig(framing_style=FramingStyle.BINARY, mode=OperatingMode.PASSIVE_LISTEN)
        assert config.to_query() == {
            "fmt": "bin",
            "mode": "passiveListen",
            "vapiSr": "16000",
            "frejunSr": "8000",
            "frejunFmt": "pcm",
        }

    def test_enum_values(self):
        assert Codec("mulaw") is Codec.MULAW
        assert FramingStyle("bin") is FramingStyle.BINARY
        assert OperatingMode("passiveListen") is OperatingMode.PASSIVE_LISTEN
