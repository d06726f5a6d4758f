"""Exotel / FreJun style JSON media-stream serializer.

The telephony leg sends JSON text frames carrying base64 audio::

    {"event": "media", "sequence_number": 7, "stream_sid": "abc",
     "media": {"payload": "<base64>"}}

and expects the same envelope back (without the bookkeeping fields).
``{"event": "stop"}`` asks the bridge to terminate the call.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from voxrelay.core.errors import MalformedFrame
from voxrelay.core.events import (
    AnyEvent,
    AudioFrame,
    CallEnded,
    CallStarted,
    CustomEvent,
)
from voxrelay.serializers.base import BaseSerializer


class JsonMediaSerializer(BaseSerializer):
    """Serializer for JSON/base64 media envelopes.

    Message types handled:
        * ``connected`` -- handshake acknowledgement (ignored).
        * ``start``     -- stream metadata; produces :class:`CallStarted`.
        * ``media``     -- audio payload; produces :class:`AudioFrame`.
        * ``stop``      -- stream ended; produces :class:`CallEnded`.

    Any other event is surfaced as a :class:`CustomEvent`.
    """

    @property
    def name(self) -> str:
        return "json"

    # ------------------------------------------------------------------
    # Deserialization (telephony -> voxrelay events)
    # ------------------------------------------------------------------

    async def deserialize(self, raw: bytes | str | dict) -> list[AnyEvent]:
        msg = self._parse_message(raw)
        event_type = msg.get("event", "")

        sid = msg.get("stream_sid") or msg.get("streamSid")
        if sid:
            self.stream_sid = str(sid)

        if event_type == "connected":
            return []

        if event_type == "start":
            return self._handle_start(msg)

        if event_type == "media":
            return self._handle_media(msg)

        if event_type == "stop":
            return [CallEnded(stream_sid=self.stream_sid, reason="stop")]

        return [
            CustomEvent(
                stream_sid=self.stream_sid,
                custom_type=str(event_type),
                payload=msg,
            )
        ]

    # ------------------------------------------------------------------
    # Serialization (audio -> telephony wire format)
    # ------------------------------------------------------------------

    async def serialize_audio(self, data: bytes) -> str:
        payload_b64 = base64.b64encode(data).decode("ascii")
        return json.dumps({"event": "media", "media": {"payload": payload_b64}})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_message(raw: bytes | str | dict) -> dict[str, Any]:
        """Normalise the raw WebSocket frame into a dict."""
        if isinstance(raw, dict):
            return raw
        try:
            if isinstance(raw, (bytes, bytearray)):
                raw = bytes(raw).decode("utf-8")
            msg = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedFrame(f"Unparsable JSON frame: {e}") from e
        if not isinstance(msg, dict):
            raise MalformedFrame(f"Expected a JSON object, got {type(msg).__name__}")
        return msg

    def _handle_start(self, msg: dict) -> list[AnyEvent]:
        start_data = msg.get("start") or {}
        if not isinstance(start_data, dict):
            start_data = {}
        sid = start_data.get("stream_sid") or start_data.get("streamSid")
        if sid:
            self.stream_sid = str(sid)
        return [
            CallStarted(
                stream_sid=self.stream_sid,
                call_sid=str(start_data.get("call_sid") or start_data.get("callSid") or ""),
                metadata=start_data,
            )
        ]

    def _handle_media(self, msg: dict) -> list[AnyEvent]:
        media = msg.get("media")
        if not isinstance(media, dict):
            raise MalformedFrame("Media event without a media object")
        payload_b64 = media.get("payload") or ""
        try:
            audio_bytes = base64.b64decode(payload_b64, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise MalformedFrame(f"Invalid base64 payload: {e}") from e

        sequence = msg.get("sequence_number")
        return [
            AudioFrame(
                stream_sid=self.stream_sid,
                codec=self._codec,
                sample_rate=self._rate,
                sequence_number=sequence if isinstance(sequence, int) else None,
                data=audio_bytes,
            )
        ]
