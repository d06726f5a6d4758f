"""Frame chunking for the paced telephony leg."""

from __future__ import annotations

from typing import Iterator

from voxrelay.core.events import Codec

FRAME_MS = 20


def bytes_per_sample(codec: Codec) -> int:
    return 1 if codec == Codec.MULAW else 2


def frame_bytes(sample_rate: int, codec: Codec = Codec.PCM16, frame_ms: int = FRAME_MS) -> int:
    """Size in bytes of one frame of ``frame_ms`` milliseconds.

    8 kHz PCM16 at 20 ms is 320 bytes; 8 kHz mu-law is 160 bytes.
    """
    samples = sample_rate * frame_ms // 1000
    return max(1, samples * bytes_per_sample(codec))


def chunk(buffer: bytes, frame_size: int) -> Iterator[memoryview]:
    """Lazily split ``buffer`` into ``frame_size`` byte slices.

    Slices are views into ``buffer``, not copies. The final slice may be
    shorter than ``frame_size`` and is still yielded.
    """
    if frame_size <= 0:
        raise ValueError(f"Frame size must be positive, got {frame_size}")
    view = memoryview(buffer)
    for offset in range(0, len(view), frame_size):
        yield view[offset:offset + frame_size]
