"""voxrelay - Real-time audio bridge between telephony media streams and
voice-assistant WebSockets.

Connects a telephony provider's media-streaming WebSocket (Exotel, FreJun)
to a Vapi assistant call, converting sample rate, codec and framing in both
directions and pacing audio back to the caller at real-time cadence.

Quick start:
    $ pip install voxrelay
    $ voxrelay init           # generates relay.yaml
    $ VAPI_API_KEY=... VAPI_ASSISTANT_ID=... voxrelay run --config relay.yaml

Programmatic:
    from voxrelay import VoxRelay
    from voxrelay.server import create_app

    relay = VoxRelay({"vapi_api_key": "...", "vapi_assistant_id": "..."})

    @relay.on_session_end
    async def done(session):
        print(session.stats())

    app = create_app(relay)
"""

__version__ = "0.1.0"

# Core
from voxrelay.bridge import VoxRelay
from voxrelay.config import RelayConfig, load_config
from voxrelay.session import BridgeSession, SessionStore
from voxrelay.tokens import TokenRegistry
from voxrelay.provisioner import VapiProvisioner
from voxrelay.negotiator import negotiate
from voxrelay.pacing import PacedDeliveryQueue

# Events and errors
from voxrelay.core.events import (
    AudioFrame,
    CallEnded,
    CallStarted,
    Codec,
    FramingStyle,
    OperatingMode,
    SessionConfig,
    SessionState,
)
from voxrelay.core.errors import (
    MalformedFrame,
    SignatureMismatch,
    TransportError,
    UpstreamProvisionError,
    VoxRelayError,
)

# Audio
from voxrelay.audio.codecs import CodecRegistry, codec_registry
from voxrelay.audio.resampler import Resampler
from voxrelay.audio.chunker import chunk

__all__ = [
    # Core
    "VoxRelay",
    "RelayConfig",
    "load_config",
    "BridgeSession",
    "SessionStore",
    "TokenRegistry",
    "VapiProvisioner",
    "negotiate",
    "PacedDeliveryQueue",
    # Events
    "AudioFrame",
    "CallEnded",
    "CallStarted",
    "Codec",
    "FramingStyle",
    "OperatingMode",
    "SessionConfig",
    "SessionState",
    # Errors
    "VoxRelayError",
    "UpstreamProvisionError",
    "MalformedFrame",
    "TransportError",
    "SignatureMismatch",
    # Audio
    "CodecRegistry",
    "codec_registry",
    "Resampler",
    "chunk",
]
