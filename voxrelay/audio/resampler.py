"""Audio sample rate conversion for voxrelay.

Telephony legs run at 8 kHz and assistant legs at 16 kHz, so the common
path is an exact 2x conversion: linear-interpolation upsampling and
pair-average downsampling. Arbitrary ratios fall back to generic linear
interpolation. All audio is PCM16 little-endian mono.
"""

from __future__ import annotations

import math
import struct


def _unpack(data: bytes) -> tuple[int, ...]:
    n_samples = len(data) // 2
    if n_samples == 0:
        return ()
    return struct.unpack_from(f"<{n_samples}h", data)


def _pack(samples: list[int]) -> bytes:
    return struct.pack(f"<{len(samples)}h", *samples)


def _round(value: float) -> int:
    """Round half away from zero and clamp to the int16 range."""
    rounded = int(math.floor(abs(value) + 0.5))
    if value < 0:
        rounded = -rounded
    return max(-32768, min(32767, rounded))


def upsample_linear(data: bytes, factor: int = 2) -> bytes:
    """Upsample PCM16 by an integer factor using linear interpolation.

    Each sample ``a`` is emitted followed by ``factor - 1`` points
    interpolated towards its successor ``b``; the last sample is its own
    successor. The output holds exactly ``factor`` times as many samples.
    """
    if factor < 1:
        raise ValueError(f"Factor must be positive, got {factor}")
    samples = _unpack(data)
    if not samples or factor == 1:
        return _pack(list(samples))

    out: list[int] = []
    last = len(samples) - 1
    for i, a in enumerate(samples):
        b = samples[i + 1] if i < last else a
        out.append(a)
        for k in range(1, factor):
            out.append(_round(a + (b - a) * k / factor))
    return _pack(out)


def downsample_average(data: bytes, factor: int = 2) -> bytes:
    """Downsample PCM16 by an integer factor by averaging groups of samples.

    A trailing group with fewer than ``factor`` samples is dropped.
    """
    if factor < 1:
        raise ValueError(f"Factor must be positive, got {factor}")
    samples = _unpack(data)
    if factor == 1:
        return _pack(list(samples))

    usable = len(samples) - (len(samples) % factor)
    out = [
        _round(sum(samples[i:i + factor]) / factor)
        for i in range(0, usable, factor)
    ]
    return _pack(out)


def _interpolate(data: bytes, from_rate: int, to_rate: int) -> bytes:
    samples = _unpack(data)
    n_samples = len(samples)
    if n_samples == 0:
        return b""

    ratio = from_rate / to_rate
    out_len = int(n_samples / ratio)

    out: list[int] = []
    for i in range(out_len):
        src_pos = i * ratio
        src_idx = int(src_pos)
        frac = src_pos - src_idx

        if src_idx + 1 < n_samples:
            sample = samples[src_idx] * (1.0 - frac) + samples[src_idx + 1] * frac
        else:
            sample = samples[min(src_idx, n_samples - 1)]
        out.append(_round(sample))

    return _pack(out)


def resample(data: bytes, from_rate: int, to_rate: int) -> bytes:
    """Resample PCM16 little-endian audio from one sample rate to another.

    Integer ratios use :func:`upsample_linear` / :func:`downsample_average`;
    anything else uses plain linear interpolation.

    Args:
        data: PCM16 little-endian audio bytes.
        from_rate: Source sample rate in Hz.
        to_rate: Target sample rate in Hz.

    Returns:
        Resampled PCM16 little-endian audio bytes.
    """
    if from_rate <= 0 or to_rate <= 0:
        raise ValueError(f"Sample rates must be positive, got {from_rate} -> {to_rate}")
    if from_rate == to_rate:
        return data
    if to_rate % from_rate == 0:
        return upsample_linear(data, to_rate // from_rate)
    if from_rate % to_rate == 0:
        return downsample_average(data, from_rate // to_rate)
    return _interpolate(data, from_rate, to_rate)


class Resampler:
    """Resampler bound to a fixed source/target rate pair.

    Usage:
        resampler = Resampler(from_rate=8000, to_rate=16000)
        upsampled = resampler.process(audio_8k)
    """

    def __init__(self, from_rate: int, to_rate: int) -> None:
        self.from_rate = from_rate
        self.to_rate = to_rate

    def process(self, data: bytes) -> bytes:
        """Resample a chunk of PCM16 audio."""
        return resample(data, self.from_rate, self.to_rate)

    @property
    def needs_resample(self) -> bool:
        """Whether this resampler actually changes the sample rate."""
        return self.from_rate != self.to_rate
