"""Unified event model for voxrelay.

Telephony serializers convert the provider's wire messages into these
canonical events. The bridge session routes events between the telephony
leg and the assistant leg using this common language.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Codec(str, Enum):
    PCM16 = "pcm"
    MULAW = "mulaw"


class FramingStyle(str, Enum):
    JSON = "json"
    BINARY = "bin"


class OperatingMode(str, Enum):
    BRIDGE = "bridge"
    ECHO = "echo"
    TONE = "tone"
    PASSIVE_LISTEN = "passiveListen"


class SessionState(str, Enum):
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class SessionConfig(BaseModel):
    """Per-connection audio format parameters.

    Derived once when the telephony upgrade is accepted and never mutated
    afterwards (the model is frozen).
    """

    model_config = ConfigDict(frozen=True)

    framing_style: FramingStyle = FramingStyle.JSON
    caller_sample_rate: int = 8000
    assistant_sample_rate: int = 16000
    caller_codec: Codec = Codec.PCM16
    mode: OperatingMode = OperatingMode.BRIDGE

    def to_query(self) -> dict[str, str]:
        """Render the config back into bridge URL query parameters."""
        return {
            "fmt": self.framing_style.value,
            "mode": self.mode.value,
            "vapiSr": str(self.assistant_sample_rate),
            "frejunSr": str(self.caller_sample_rate),
            "frejunFmt": self.caller_codec.value,
        }


class EventType(str, Enum):
    AUDIO_FRAME = "audio_frame"
    CALL_STARTED = "call_started"
    CALL_ENDED = "call_ended"
    CUSTOM = "custom"


class Event(BaseModel):
    """Base event that all voxrelay events inherit from."""

    event_type: EventType
    stream_sid: str = ""
    timestamp: float = Field(default_factory=time.time)


class AudioFrame(Event):
    """A chunk of audio data flowing through the bridge."""

    event_type: EventType = EventType.AUDIO_FRAME
    codec: Codec = Codec.PCM16
    sample_rate: int = 8000
    sequence_number: int | None = None
    data: bytes = b""


class CallStarted(Event):
    """Fired when the telephony leg announces the stream."""

    event_type: EventType = EventType.CALL_STARTED
    call_sid: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class CallEnded(Event):
    """Fired when the telephony leg asks to terminate the stream."""

    event_type: EventType = EventType.CALL_ENDED
    reason: str = "stop"


class CustomEvent(Event):
    """Provider messages that don't map to standard events."""

    event_type: EventType = EventType.CUSTOM
    custom_type: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


AnyEvent = AudioFrame | CallStarted | CallEnded | CustomEvent
