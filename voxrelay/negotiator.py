"""Per-connection format negotiation.

Turns the query parameters of the telephony upgrade request into a frozen
:class:`SessionConfig`. Negotiation never fails: every missing or malformed
parameter falls back to its default so a healthy telephony leg is never
rejected over format details.

Recognised parameters:
    fmt        json | bin                              (framing style)
    mode       bridge | echo | tone | passiveListen    (operating mode)
    vapiSr     integer Hz                              (assistant rate)
    frejunSr   integer Hz                              (caller rate)
    frejunFmt  pcm | mulaw                             (caller codec)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, TypeVar

from loguru import logger

from voxrelay.core.events import Codec, FramingStyle, OperatingMode, SessionConfig

MIN_SAMPLE_RATE = 4000
MAX_SAMPLE_RATE = 48000

DEFAULT_CONFIG = SessionConfig()

E = TypeVar("E", bound=Enum)

# Accepted spellings beyond the enum values
_ALIASES: dict[str, str] = {
    "binary": FramingStyle.BINARY.value,
    "pcm16": Codec.PCM16.value,
    "linear16": Codec.PCM16.value,
    "ulaw": Codec.MULAW.value,
    "passive": OperatingMode.PASSIVE_LISTEN.value,
    "passivelisten": OperatingMode.PASSIVE_LISTEN.value,
    "passive_listen": OperatingMode.PASSIVE_LISTEN.value,
}


def _choice(params: Mapping[str, Any], key: str, enum_cls: type[E], default: E) -> E:
    raw = params.get(key)
    if raw is None or raw == "":
        return default
    value = str(raw).strip()
    value = _ALIASES.get(value.lower(), value)
    for member in enum_cls:
        if member.value == value or member.value.lower() == value.lower():
            return member
    logger.debug(f"Ignoring malformed {key}={raw!r}, using {default.value}")
    return default


def _rate(params: Mapping[str, Any], key: str, default: int) -> int:
    raw = params.get(key)
    if raw is None or raw == "":
        return default
    try:
        rate = int(str(raw).strip())
    except ValueError:
        logger.debug(f"Ignoring malformed {key}={raw!r}, using {default}")
        return default
    if not MIN_SAMPLE_RATE <= rate <= MAX_SAMPLE_RATE:
        logger.debug(f"Ignoring out-of-range {key}={rate}, using {default}")
        return default
    return rate


def negotiate(
    params: Mapping[str, Any] | None = None,
    assistant_sample_rate: int = DEFAULT_CONFIG.assistant_sample_rate,
) -> SessionConfig:
    """Resolve a SessionConfig from upgrade-request query parameters.

    ``assistant_sample_rate`` is the fallback for a missing or malformed
    ``vapiSr``; the relay passes its configured upstream rate here.
    """
    params = params or {}
    config = SessionConfig(
        framing_style=_choice(params, "fmt", FramingStyle, DEFAULT_CONFIG.framing_style),
        caller_sample_rate=_rate(params, "frejunSr", DEFAULT_CONFIG.caller_sample_rate),
        assistant_sample_rate=_rate(params, "vapiSr", assistant_sample_rate),
        caller_codec=_choice(params, "frejunFmt", Codec, DEFAULT_CONFIG.caller_codec),
        mode=_choice(params, "mode", OperatingMode, DEFAULT_CONFIG.mode),
    )
    logger.debug(f"Negotiated session config: {config.to_query()}")
    return config
