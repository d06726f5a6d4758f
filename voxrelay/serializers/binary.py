"""Raw binary serializer.

Binary frames carry PCM16 or mu-law bytes directly. Text frames are still
accepted for control: ``{"event": "stop"}`` (or ``{"type": "stop"}``) ends
the call, anything else is ignored.
"""

from __future__ import annotations

import json

from voxrelay.core.errors import MalformedFrame
from voxrelay.core.events import AnyEvent, AudioFrame, CallEnded, Codec
from voxrelay.serializers.base import BaseSerializer


class BinarySerializer(BaseSerializer):
    """Serializer for raw binary audio frames."""

    @property
    def name(self) -> str:
        return "bin"

    async def deserialize(self, raw: bytes | str | dict) -> list[AnyEvent]:
        if isinstance(raw, (bytes, bytearray, memoryview)):
            data = bytes(raw)
            if self._codec == Codec.PCM16 and len(data) % 2:
                raise MalformedFrame(f"Truncated PCM16 frame ({len(data)} bytes)")
            return [
                AudioFrame(
                    stream_sid=self.stream_sid,
                    codec=self._codec,
                    sample_rate=self._rate,
                    data=data,
                )
            ]

        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise MalformedFrame(f"Unparsable control frame: {e}") from e

        if isinstance(raw, dict):
            kind = raw.get("event") or raw.get("type")
            if kind == "stop":
                return [CallEnded(stream_sid=self.stream_sid, reason="stop")]
        return []

    async def serialize_audio(self, data: bytes) -> bytes:
        return bytes(data)
