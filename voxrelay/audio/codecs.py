"""G.711 mu-law companding and the codec table used by bridge sessions.

Encoding and decoding are table lookups, so a 20 ms frame costs a few
hundred list indexings. Everything converts through PCM16.
"""

from __future__ import annotations

import struct
from typing import TYPE_CHECKING, Callable

from voxrelay.core.events import Codec

if TYPE_CHECKING:
    from voxrelay.audio.resampler import Resampler

# ---------------------------------------------------------------------------
# G.711 mu-law
# ---------------------------------------------------------------------------

MULAW_BIAS = 0x84
MULAW_CLIP = 32635


def linear_to_mulaw(sample: int) -> int:
    """Encode a single 16-bit PCM sample to a mu-law byte (ITU-T G.711)."""
    if sample < 0:
        sign = 0x80
        sample = -sample
    else:
        sign = 0

    if sample > MULAW_CLIP:
        sample = MULAW_CLIP

    sample = sample + MULAW_BIAS

    # Exponent is the position of the highest set bit above bit 7
    exponent = 7
    exp_mask = 0x4000
    while exponent > 0 and not (sample & exp_mask):
        exponent -= 1
        exp_mask >>= 1

    mantissa = (sample >> (exponent + 3)) & 0x0F

    return ~(sign | (exponent << 4) | mantissa) & 0xFF


def mulaw_to_linear(code: int) -> int:
    """Decode a mu-law byte to the reconstruction level of its bucket."""
    v = ~code & 0xFF
    sign = v & 0x80
    exponent = (v >> 4) & 0x07
    mantissa = v & 0x0F
    sample = (((mantissa << 3) + MULAW_BIAS) << exponent) - MULAW_BIAS
    return -sample if sign else sample


def mulaw_step(code: int) -> int:
    """Width of the quantization bucket a mu-law byte stands for."""
    exponent = ((~code & 0xFF) >> 4) & 0x07
    return 1 << (exponent + 3)


# mu-law byte -> PCM16 sample
_MULAW_DECODE_TABLE: list[int] = [mulaw_to_linear(_i) for _i in range(256)]

# 16-bit unsigned index -> mu-law byte
_MULAW_ENCODE_TABLE: bytes = bytes(
    linear_to_mulaw(_i if _i < 32768 else _i - 65536) for _i in range(65536)
)


def mulaw_decode(data: bytes) -> bytes:
    """Decode mu-law bytes to PCM16 little-endian bytes."""
    if not data:
        return b""
    samples = [_MULAW_DECODE_TABLE[b] for b in data]
    return struct.pack(f"<{len(samples)}h", *samples)


def mulaw_encode(data: bytes) -> bytes:
    """Encode PCM16 little-endian bytes to mu-law bytes.

    A trailing odd byte is ignored.
    """
    n_samples = len(data) // 2
    if n_samples == 0:
        return b""
    samples = struct.unpack_from(f"<{n_samples}h", data)
    return bytes(_MULAW_ENCODE_TABLE[s & 0xFFFF] for s in samples)


# ---------------------------------------------------------------------------
# Codec table
# ---------------------------------------------------------------------------

# bytes -> bytes
CodecFunc = Callable[[bytes], bytes]


def _pcm16_passthrough(data: bytes) -> bytes:
    # Keep frames sample-aligned
    return bytes(data[: len(data) - (len(data) % 2)])


class CodecRegistry:
    """Table of (decoder, encoder) pairs keyed by codec.

    PCM16 is the working format: decoders produce it, encoders consume it,
    and the resampler only ever sees it.

    Usage:
        pcm = codec_registry.decode(payload, Codec.MULAW)
        wire = codec_registry.transcode(pcm, Codec.PCM16, Codec.MULAW, resampler)
    """

    def __init__(self) -> None:
        self._table: dict[Codec, tuple[CodecFunc, CodecFunc]] = {}
        self.register(Codec.PCM16, _pcm16_passthrough, _pcm16_passthrough)
        self.register(Codec.MULAW, mulaw_decode, mulaw_encode)

    def register(self, codec: Codec, decoder: CodecFunc, encoder: CodecFunc) -> None:
        self._table[codec] = (decoder, encoder)

    def _pair(self, codec: Codec) -> tuple[CodecFunc, CodecFunc]:
        try:
            return self._table[codec]
        except KeyError:
            raise ValueError(f"Unsupported codec: {codec}") from None

    def decode(self, data: bytes, codec: Codec) -> bytes:
        """Payload in ``codec`` -> PCM16."""
        return self._pair(codec)[0](data)

    def encode(self, pcm: bytes, codec: Codec) -> bytes:
        """PCM16 -> payload in ``codec``."""
        return self._pair(codec)[1](pcm)

    def transcode(
        self,
        data: bytes,
        src: Codec,
        dst: Codec,
        resampler: Resampler | None = None,
    ) -> bytes:
        """Decode from ``src``, optionally resample, then encode to ``dst``."""
        pcm = self.decode(data, src)
        if resampler is not None and resampler.needs_resample:
            pcm = resampler.process(pcm)
        return self.encode(pcm, dst)

    @property
    def supported_codecs(self) -> list[Codec]:
        return list(self._table)


codec_registry = CodecRegistry()
