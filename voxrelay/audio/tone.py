"""Synthetic test tone used by the ``tone`` operating mode."""

from __future__ import annotations

import math
import struct

from voxrelay.audio.chunker import FRAME_MS


class ToneGenerator:
    """Phase-continuous sine generator producing PCM16 frames.

    Usage:
        tone = ToneGenerator(sample_rate=8000)
        frame = tone.next_frame()  # 20ms, 320 bytes
    """

    def __init__(
        self,
        sample_rate: int,
        frequency: float = 440.0,
        amplitude: float = 0.3,
        frame_ms: int = FRAME_MS,
    ) -> None:
        self.sample_rate = sample_rate
        self.frequency = frequency
        self.amplitude = amplitude
        self.samples_per_frame = max(1, sample_rate * frame_ms // 1000)
        self._position = 0

    def next_frame(self) -> bytes:
        step = 2 * math.pi * self.frequency / self.sample_rate
        peak = self.amplitude * 32767
        samples = [
            int(peak * math.sin(step * (self._position + i)))
            for i in range(self.samples_per_frame)
        ]
        self._position = (self._position + self.samples_per_frame) % self.sample_rate
        return struct.pack(f"<{len(samples)}h", *samples)
