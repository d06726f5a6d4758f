"""Bridge session management for voxrelay.

Each call gets a BridgeSession that owns the telephony leg, the assistant
leg (bridge mode only), the paced outbound queue and the transcoding
between them. The session is an explicit state machine::

    PROVISIONING -> ACTIVE -> CLOSING -> CLOSED
         \\____________________________^

The SessionStore tracks all live sessions.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Callable

from loguru import logger

from voxrelay.audio.chunker import FRAME_MS, chunk, frame_bytes
from voxrelay.audio.codecs import CodecRegistry, codec_registry
from voxrelay.audio.resampler import Resampler
from voxrelay.audio.tone import ToneGenerator
from voxrelay.core.errors import MalformedFrame, TransportError
from voxrelay.core.events import (
    AudioFrame,
    CallEnded,
    CallStarted,
    Codec,
    CustomEvent,
    OperatingMode,
    SessionConfig,
    SessionState,
)
from voxrelay.pacing import PacedDeliveryQueue
from voxrelay.serializers.base import BaseSerializer
from voxrelay.serializers.registry import serializer_registry
from voxrelay.transports.base import BaseTransport

# Frames kept queued ahead of the tick in tone mode
TONE_LEAD_FRAMES = 3

# Log the first malformed frame, then every Nth
MALFORMED_LOG_EVERY = 50

CloseCallback = Callable[["BridgeSession"], Any]


class BridgeSession:
    """The live pairing of one telephony leg and one assistant leg.

    Three activities run concurrently once the session is active: the
    telephony reader, the assistant reader and the delivery tick. They
    coordinate only through the outbound queue and the session state;
    :meth:`close` is idempotent and safe to trigger from any of them.
    """

    def __init__(
        self,
        telephony: BaseTransport,
        config: SessionConfig,
        serializer: BaseSerializer | None = None,
        tick_interval: float = 0.02,
        max_queue_frames: int = 500,
        frame_ms: int = FRAME_MS,
        token: str | None = None,
        codecs: CodecRegistry = codec_registry,
    ) -> None:
        self.session_id = str(uuid.uuid4())
        self.telephony = telephony
        self.assistant: BaseTransport | None = None
        self.config = config
        self.serializer = serializer or serializer_registry.for_config(config)
        self.token = token
        self.codecs = codecs

        self.state = SessionState.PROVISIONING
        self.close_reason = ""
        self.started_at = time.time()
        self.ended_at: float | None = None

        self.frame_size = frame_bytes(config.caller_sample_rate, config.caller_codec, frame_ms)
        self._inbound_resampler = Resampler(config.caller_sample_rate, config.assistant_sample_rate)
        self._outbound_resampler = Resampler(config.assistant_sample_rate, config.caller_sample_rate)

        self.queue = PacedDeliveryQueue(
            send=self._send_to_telephony,
            is_open=self._telephony_open,
            tick_interval=tick_interval,
            max_frames=max_queue_frames,
            on_error=self._on_tick_error,
        )

        # Counters
        self.frames_in = 0
        self.frames_out = 0
        self.frames_upstream = 0
        self.frames_downstream = 0
        self.bytes_in = 0
        self.bytes_out = 0
        self.malformed_frames = 0

        self._close_lock = asyncio.Lock()
        self._closed_event = asyncio.Event()
        self._close_callbacks: list[CloseCallback] = []
        self._readers: list[asyncio.Task] = []
        self._feeders: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self.state in (SessionState.CLOSING, SessionState.CLOSED)

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    @property
    def duration_ms(self) -> int:
        """Session duration in milliseconds."""
        end = self.ended_at or time.time()
        return int((end - self.started_at) * 1000)

    def add_close_callback(self, fn: CloseCallback) -> None:
        """Run ``fn(session)`` once the session reaches CLOSED."""
        self._close_callbacks.append(fn)

    def activate(self, assistant: BaseTransport | None = None) -> None:
        """PROVISIONING -> ACTIVE: attach the assistant leg and start the tick."""
        if self.state != SessionState.PROVISIONING:
            raise RuntimeError(f"Cannot activate session in state {self.state.value}")
        if self.config.mode == OperatingMode.BRIDGE and assistant is None:
            raise ValueError("Bridge mode requires an assistant transport")

        self.assistant = assistant
        self.state = SessionState.ACTIVE
        self.queue.start()
        if self.config.mode == OperatingMode.TONE:
            self._feeders.append(asyncio.create_task(self._tone_loop()))
        logger.info(
            f"Session active: {self.session_id} "
            f"(mode={self.config.mode.value}, framing={self.config.framing_style.value}, "
            f"caller={self.config.caller_sample_rate}Hz/{self.config.caller_codec.value}, "
            f"assistant={self.config.assistant_sample_rate}Hz)"
        )

    async def fail(self, reason: str) -> None:
        """PROVISIONING -> CLOSED: the upstream could not be established."""
        async with self._close_lock:
            if self.state != SessionState.PROVISIONING:
                return
            self.state = SessionState.CLOSING
            self.close_reason = reason
        logger.error(f"Session {self.session_id} failed before activation: {reason}")
        await self._teardown()

    async def close(self, reason: str = "closed") -> bool:
        """Close both legs and retire the tick.

        Returns True for the call that actually performed the close; any
        concurrent or later call is a no-op returning False.
        """
        async with self._close_lock:
            if self.closed:
                return False
            self.state = SessionState.CLOSING
            self.close_reason = reason
        logger.info(f"Closing session {self.session_id}: {reason}")
        await self._teardown()
        return True

    async def wait_closed(self) -> None:
        await self._closed_event.wait()

    async def _teardown(self) -> None:
        await self.queue.stop()

        current = asyncio.current_task()
        for task in self._feeders + self._readers:
            if task is not current and not task.done():
                task.cancel()

        if self.assistant is not None:
            try:
                await self.assistant.disconnect()
            except Exception as e:
                logger.warning(f"Assistant disconnect error on {self.session_id}: {e}")
        try:
            await self.telephony.disconnect()
        except Exception as e:
            logger.warning(f"Telephony disconnect error on {self.session_id}: {e}")

        self.state = SessionState.CLOSED
        self.ended_at = time.time()
        self._closed_event.set()

        for fn in self._close_callbacks:
            try:
                result = fn(self)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Close callback error on {self.session_id}: {e}")

        logger.info(f"Session closed: {self.session_id} {self.stats()}")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> str:
        """Pump both legs until either ends, then close. Returns the close reason."""
        if self.state != SessionState.ACTIVE:
            raise RuntimeError(f"Cannot run session in state {self.state.value}")

        self._readers.append(asyncio.create_task(self._telephony_loop()))
        if self.assistant is not None:
            self._readers.append(asyncio.create_task(self._assistant_loop()))

        reason = "closed"
        try:
            done, _ = await asyncio.wait(self._readers, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is None:
                    reason = task.result()
                elif not task.cancelled():
                    logger.error(f"Bridge error for session {self.session_id}: {task.exception()}")
                    reason = "error"
                break
        finally:
            await self.close(reason)
        return self.close_reason

    # ------------------------------------------------------------------
    # Telephony -> assistant
    # ------------------------------------------------------------------

    async def _telephony_loop(self) -> str:
        while not self.closed:
            try:
                raw = await self.telephony.recv()
            except TransportError as e:
                logger.info(f"Telephony leg ended for {self.session_id}: {e}")
                return "telephony closed"

            try:
                events = await self.serializer.deserialize(raw)
            except MalformedFrame as e:
                self._note_malformed(e)
                continue

            for event in events:
                if isinstance(event, AudioFrame):
                    try:
                        await self.handle_caller_audio(event.data)
                    except TransportError as e:
                        logger.info(f"Assistant leg ended for {self.session_id}: {e}")
                        return "assistant closed"
                elif isinstance(event, CallEnded):
                    await self._send_hangup()
                    return "stop"
                elif isinstance(event, CallStarted):
                    logger.info(
                        f"Telephony stream started on {self.session_id} "
                        f"(stream={event.stream_sid or '-'}, call={event.call_sid or '-'})"
                    )
                elif isinstance(event, CustomEvent):
                    logger.debug(f"Ignoring telephony event '{event.custom_type}'")
        return self.close_reason or "closed"

    async def handle_caller_audio(self, data: bytes) -> None:
        """Route one inbound caller frame according to the operating mode."""
        self.frames_in += 1
        self.bytes_in += len(data)
        mode = self.config.mode

        if mode == OperatingMode.BRIDGE:
            pcm = self.codecs.transcode(
                data, self.config.caller_codec, Codec.PCM16, self._inbound_resampler
            )
            if pcm and self.assistant is not None and self.assistant.is_connected():
                await self.assistant.send(pcm)
                self.frames_upstream += 1
        elif mode == OperatingMode.ECHO:
            self._enqueue(data)
        # passiveListen and tone discard caller audio

    async def _send_hangup(self) -> None:
        if self.assistant is None or not self.assistant.is_connected():
            return
        try:
            await self.assistant.send_json({"type": "hangup"})
        except TransportError as e:
            logger.debug(f"Hangup not delivered on {self.session_id}: {e}")

    # ------------------------------------------------------------------
    # Assistant -> telephony
    # ------------------------------------------------------------------

    async def _assistant_loop(self) -> str:
        if self.assistant is None:
            raise RuntimeError(f"Session {self.session_id} has no assistant leg")
        while not self.closed:
            try:
                raw = await self.assistant.recv()
            except TransportError as e:
                logger.info(f"Assistant leg ended for {self.session_id}: {e}")
                return "assistant closed"

            if isinstance(raw, (bytes, bytearray, memoryview)):
                self.handle_assistant_audio(bytes(raw))
            else:
                logger.debug(f"Assistant control message on {self.session_id}: {raw[:200]}")
        return self.close_reason or "closed"

    def handle_assistant_audio(self, data: bytes) -> None:
        """Transcode assistant audio to the caller format and queue it."""
        self.frames_downstream += 1
        encoded = self.codecs.transcode(
            data, Codec.PCM16, self.config.caller_codec, self._outbound_resampler
        )
        self._enqueue(encoded)

    def _enqueue(self, data: bytes) -> None:
        if self.closed:
            return
        for frame in chunk(data, self.frame_size):
            self.queue.put(frame)

    async def _tone_loop(self) -> None:
        tone = ToneGenerator(self.config.caller_sample_rate)
        while not self.closed:
            while len(self.queue) < TONE_LEAD_FRAMES:
                frame = self.codecs.encode(tone.next_frame(), self.config.caller_codec)
                self.queue.put(frame)
            await asyncio.sleep(self.queue.tick_interval)

    # ------------------------------------------------------------------
    # Paced delivery hooks
    # ------------------------------------------------------------------

    def _telephony_open(self) -> bool:
        return not self.closed and self.telephony.is_connected()

    async def _send_to_telephony(self, frame: bytes) -> None:
        wire = await self.serializer.serialize_audio(frame)
        await self.telephony.send(wire)
        self.frames_out += 1
        self.bytes_out += len(frame)

    async def _on_tick_error(self, error: Exception) -> None:
        await self.close(f"telephony send failed: {error}")

    def _note_malformed(self, error: MalformedFrame) -> None:
        self.malformed_frames += 1
        if self.malformed_frames == 1 or self.malformed_frames % MALFORMED_LOG_EVERY == 0:
            logger.warning(
                f"Malformed frame on {self.session_id} "
                f"({self.malformed_frames} so far): {error}"
            )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "mode": self.config.mode.value,
            "duration_ms": self.duration_ms,
            "frames_in": self.frames_in,
            "frames_out": self.frames_out,
            "frames_upstream": self.frames_upstream,
            "frames_downstream": self.frames_downstream,
            "frames_dropped": self.queue.dropped,
            "malformed_frames": self.malformed_frames,
            "bytes_in": self.bytes_in,
            "bytes_out": self.bytes_out,
        }


class SessionStore:
    """Registry of live bridge sessions, keyed by session_id."""

    def __init__(self) -> None:
        self._sessions: dict[str, BridgeSession] = {}

    def add(self, session: BridgeSession) -> BridgeSession:
        """Track a session until it closes."""
        self._sessions[session.session_id] = session
        session.add_close_callback(lambda s: self.remove(s.session_id))
        logger.info(f"Session created: {session.session_id}")
        return session

    def get(self, session_id: str) -> BridgeSession | None:
        """Get a session by session_id."""
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> None:
        """Stop tracking a session."""
        self._sessions.pop(session_id, None)

    @property
    def active_count(self) -> int:
        """Number of sessions not yet closed."""
        return sum(1 for s in self._sessions.values() if not s.closed)

    @property
    def all_sessions(self) -> list[BridgeSession]:
        return list(self._sessions.values())
