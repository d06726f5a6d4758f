"""Base serializer interface for voxrelay.

Every telephony framing style implements this interface. Serializers are
pure message translators with no I/O - they convert between the telephony
leg's wire format and voxrelay's unified event model.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from voxrelay.core.events import AnyEvent, Codec


class BaseSerializer(ABC):
    """Abstract base class for telephony framing serializers.

    Key principles:
    - Serializers do NO I/O (no network calls, no file access)
    - Stream state (stream_sid) is the only thing they remember
    - Unparsable input raises :class:`~voxrelay.core.errors.MalformedFrame`
    """

    def __init__(self, codec: Codec = Codec.PCM16, sample_rate: int = 8000) -> None:
        self._codec = codec
        self._rate = sample_rate
        self.stream_sid: str = ""

    @abstractmethod
    async def deserialize(self, raw: bytes | str | dict) -> list[AnyEvent]:
        """Parse a raw message from the telephony leg into voxrelay events.

        Args:
            raw: The raw WebSocket message (binary frame, JSON text, or an
                already-parsed dict).

        Returns:
            List of events. Empty list if the message should be ignored.

        Raises:
            MalformedFrame: If the message cannot be parsed.
        """
        ...

    @abstractmethod
    async def serialize_audio(self, data: bytes) -> bytes | str:
        """Wrap one outbound audio frame in the telephony wire format."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of this serializer (e.g., 'json', 'bin')."""
        ...

    @property
    def audio_codec(self) -> Codec:
        """The codec the telephony leg speaks."""
        return self._codec

    @property
    def sample_rate(self) -> int:
        """The telephony leg's sample rate in Hz."""
        return self._rate
