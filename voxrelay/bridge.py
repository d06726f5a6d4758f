"""voxrelay - Connection router.

The VoxRelay class accepts telephony WebSocket upgrades and turns each one
into a BridgeSession. It wires together:
- Path resolution (direct endpoint or one-time ``/ws/<token>`` URLs)
- Format negotiation from the upgrade's query parameters
- Upstream provisioning against the assistant control API
- The assistant WebSocket connection
- Session lifecycle hooks

Two variants are supported side by side:
1. direct: ``/frejun?fmt=...`` negotiates and provisions during the upgrade.
2. token: ``POST /exotel/stream-endpoint`` provisions ahead of time and
   returns ``/ws/<token>``; the upgrade consumes the token exactly once.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from voxrelay.config import RelayConfig, load_config
from voxrelay.core.errors import TransportError, UpstreamProvisionError
from voxrelay.core.events import OperatingMode
from voxrelay.negotiator import negotiate
from voxrelay.provisioner import VapiProvisioner
from voxrelay.session import BridgeSession, SessionStore
from voxrelay.tokens import TokenRegistry
from voxrelay.transports.base import BaseTransport
from voxrelay.transports.websocket import WebSocketClientTransport

# Type for session hook callbacks
SessionHandler = Callable[[BridgeSession], Awaitable[Any]]
AssistantFactory = Callable[[str], BaseTransport]

DIRECT = "direct"
TOKEN = "token"


class VoxRelay:
    """Telephony <-> assistant audio relay.

    Usage:
        relay = VoxRelay("relay.yaml")

        @relay.on_session_start
        async def started(session):
            print(f"Bridging {session.session_id}")

        app = create_app(relay)
    """

    def __init__(
        self,
        config: RelayConfig | dict | str | Path | None = None,
        provisioner: VapiProvisioner | None = None,
        tokens: TokenRegistry | None = None,
        assistant_factory: AssistantFactory | None = None,
    ) -> None:
        self.config = load_config(config)
        self.sessions = SessionStore()
        self.tokens = tokens or TokenRegistry(ttl_seconds=self.config.tokens.ttl_seconds)
        self.provisioner = provisioner or VapiProvisioner(
            api_key=self.config.vapi.api_key,
            assistant_id=self.config.vapi.assistant_id,
            api_url=self.config.vapi.api_url,
            sample_rate=self.config.vapi.sample_rate,
            timeout=self.config.vapi.provision_timeout_seconds,
        )
        self._assistant_factory = assistant_factory or WebSocketClientTransport

        self._handlers: dict[str, list[SessionHandler]] = {
            "on_session_start": [],
            "on_session_end": [],
        }

    # ------------------------------------------------------------------
    # Decorator API for session hooks
    # ------------------------------------------------------------------

    def on_session_start(self, fn: SessionHandler) -> SessionHandler:
        """Register a handler called once a session becomes active."""
        self._handlers["on_session_start"].append(fn)
        return fn

    def on_session_end(self, fn: SessionHandler) -> SessionHandler:
        """Register a handler called after a session has closed."""
        self._handlers["on_session_end"].append(fn)
        return fn

    async def _dispatch(self, name: str, session: BridgeSession) -> None:
        for handler in self._handlers[name]:
            try:
                await handler(session)
            except Exception as e:
                logger.error(f"{name} handler error: {e}")

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def resolve_route(self, path: str) -> tuple[str, str | None] | None:
        """Classify an upgrade path.

        Returns ``("direct", None)``, ``("token", token)`` or None when the
        path is not a bridge endpoint.
        """
        server = self.config.server
        normalized = path.rstrip("/") or "/"
        if normalized == server.listen_path.rstrip("/"):
            return DIRECT, None
        prefix = server.token_path_prefix
        if path.startswith(prefix):
            token = path[len(prefix):].strip("/")
            if token and "/" not in token:
                return TOKEN, token
        return None

    async def provision_token(self) -> tuple[str, str]:
        """Provision an upstream call ahead of the upgrade.

        Returns:
            ``(token, upstream_url)``; the token is valid for one upgrade.

        Raises:
            UpstreamProvisionError: If the control API call fails.
        """
        sample_rate = self.config.vapi.sample_rate
        upstream_url = await self.provisioner.provision(sample_rate=sample_rate)
        token = self.tokens.insert(upstream_url, sample_rate=sample_rate)
        return token, upstream_url

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def handle_connection(
        self,
        transport: BaseTransport,
        path: str,
        query: Mapping[str, Any] | None = None,
    ) -> BridgeSession | None:
        """Handle one inbound telephony upgrade for its whole lifetime.

        Returns the session (closed by the time this returns), or None when
        the upgrade was rejected before a session was created.
        """
        route = self.resolve_route(path)
        if route is None:
            logger.warning(f"Rejected upgrade to {path}")
            await transport.disconnect()
            return None

        kind, token = route
        upstream_url: str | None = None
        upstream_rate = self.config.vapi.sample_rate
        if kind == TOKEN:
            pending = self.tokens.consume(token) if token else None
            if pending is None:
                logger.warning("Rejected upgrade with unknown or already used token")
                await transport.disconnect()
                return None
            upstream_url = pending.upstream_url
            if pending.sample_rate:
                upstream_rate = pending.sample_rate

        config = negotiate(query, assistant_sample_rate=upstream_rate)
        if kind == TOKEN and config.assistant_sample_rate != upstream_rate:
            # The upstream call already exists; its rate wins over the query
            logger.warning(
                f"Ignoring vapiSr={config.assistant_sample_rate}, "
                f"upstream was provisioned at {upstream_rate} Hz"
            )
            config = config.model_copy(update={"assistant_sample_rate": upstream_rate})
        pacing = self.config.pacing
        session = BridgeSession(
            transport,
            config,
            tick_interval=pacing.tick_ms / 1000.0,
            max_queue_frames=pacing.max_queue_frames,
            frame_ms=pacing.frame_ms,
            token=token,
        )
        self.sessions.add(session)
        if token:
            session.add_close_callback(lambda s: self.tokens.evict(token))

        assistant: BaseTransport | None = None
        if config.mode == OperatingMode.BRIDGE:
            try:
                if upstream_url is None:
                    upstream_url = await self.provisioner.provision(
                        sample_rate=config.assistant_sample_rate
                    )
                assistant = self._assistant_factory(upstream_url)
                await assistant.connect()
            except (UpstreamProvisionError, TransportError) as e:
                await session.fail(str(e))
                await self._dispatch("on_session_end", session)
                return session

        try:
            await transport.connect()
        except Exception as e:
            logger.error(f"Could not accept telephony upgrade: {e}")
            if assistant is not None:
                session.assistant = assistant
            await session.fail(f"accept failed: {e}")
            await self._dispatch("on_session_end", session)
            return session

        session.activate(assistant)
        await self._dispatch("on_session_start", session)
        try:
            await session.run()
        finally:
            await self._dispatch("on_session_end", session)
        return session

    async def close(self) -> None:
        """Close every live session and the control-plane client."""
        for session in self.sessions.all_sessions:
            await session.close("shutdown")
        await self.provisioner.close()
