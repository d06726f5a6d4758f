"""HTTP/WebSocket server for voxrelay.

Provides a FastAPI application that accepts inbound telephony WebSocket
connections and routes them to the relay. Also exposes discovery, token
provisioning, webhook and health endpoints:

    GET  /health                      liveness
    GET  /status                      live sessions
    GET|POST /ws-entry                where to open the media stream
    POST /exotel/stream-endpoint      provision upstream, return /ws/<token>
    POST /webhook                     signed provider callbacks
    WS   /frejun                      direct bridge endpoint
    WS   /ws/{token}                  token bridge endpoint
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from urllib.parse import urlencode

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse
from loguru import logger

from voxrelay import __version__
from voxrelay.bridge import VoxRelay
from voxrelay.config import RelayConfig, load_config
from voxrelay.core.errors import SignatureMismatch, UpstreamProvisionError
from voxrelay.negotiator import negotiate
from voxrelay.transports.websocket import StarletteWebSocketTransport
from voxrelay.webhooks import verify_signature

# Advertised to the telephony provider by /ws-entry
STREAM_CHUNK_SIZE = 1000


def create_app(config: VoxRelay | RelayConfig | dict | str | Path | None = None) -> FastAPI:
    """Create a FastAPI application with the voxrelay endpoints.

    Args:
        config: An existing VoxRelay, or anything :func:`load_config` accepts.

    Returns:
        A FastAPI application instance.
    """
    relay = config if isinstance(config, VoxRelay) else VoxRelay(load_config(config))
    relay_config = relay.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await relay.close()

    app = FastAPI(
        title="voxrelay",
        description="Telephony to voice-assistant audio bridge",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.relay = relay

    def ws_base(request: Request) -> str:
        host = relay_config.server.public_host or request.headers.get("host", "localhost")
        proto = request.headers.get("x-forwarded-proto", request.url.scheme)
        scheme = "wss" if relay_config.server.public_host or proto == "https" else "ws"
        return f"{scheme}://{host}"

    @app.get("/health")
    async def health():
        return JSONResponse({"ok": True, "active_sessions": relay.sessions.active_count})

    @app.get("/status")
    async def status():
        sessions = [
            {"session_id": s.session_id, **s.stats()}
            for s in relay.sessions.all_sessions
        ]
        return JSONResponse({
            "active_sessions": relay.sessions.active_count,
            "pending_tokens": len(relay.tokens),
            "sessions": sessions,
        })

    @app.api_route("/ws-entry", methods=["GET", "POST"])
    async def ws_entry(request: Request):
        session_config = negotiate(
            request.query_params, assistant_sample_rate=relay_config.vapi.sample_rate
        )
        query = urlencode(session_config.to_query())
        ws_url = f"{ws_base(request)}{relay_config.server.listen_path}?{query}"
        return JSONResponse({
            "action": "Stream",
            "ws_url": ws_url,
            "chunk_size": STREAM_CHUNK_SIZE,
        })

    @app.post("/exotel/stream-endpoint")
    async def stream_endpoint(request: Request):
        try:
            token, _ = await relay.provision_token()
        except UpstreamProvisionError as e:
            logger.error(f"Stream endpoint provisioning failed: {e}")
            return JSONResponse({"error": str(e)}, status_code=502)
        url = f"{ws_base(request)}{relay_config.server.token_path_prefix}{token}"
        return JSONResponse({"url": url})

    @app.post("/webhook")
    async def webhook(request: Request):
        body = await request.body()
        signature = request.headers.get(relay_config.webhook.signature_header)
        try:
            verify_signature(body, signature, relay_config.webhook.secret)
        except SignatureMismatch as e:
            logger.warning(f"Rejected webhook: {e}")
            return JSONResponse({"error": "invalid signature"}, status_code=401)
        return JSONResponse({"ok": True})

    async def bridge_endpoint(websocket: WebSocket):
        transport = StarletteWebSocketTransport(websocket)
        try:
            await relay.handle_connection(
                transport,
                websocket.url.path,
                dict(websocket.query_params),
            )
        except Exception as e:
            logger.error(f"WebSocket handler error: {e}")
            await transport.disconnect()

    app.add_api_websocket_route(relay_config.server.listen_path, bridge_endpoint)
    app.add_api_websocket_route(
        f"{relay_config.server.token_path_prefix.rstrip('/')}/{{token}}", bridge_endpoint
    )

    return app


def run_server(config: RelayConfig | dict | str | Path | None = None, host: str | None = None, port: int | None = None):
    """Run the voxrelay server with uvicorn.

    Args:
        config: Relay configuration.
        host: Override the listen host.
        port: Override the listen port.
    """
    import uvicorn

    relay_config = load_config(config)
    app = create_app(relay_config)

    uvicorn.run(
        app,
        host=host or relay_config.server.host,
        port=port or relay_config.server.port,
        log_level=relay_config.logging.level.lower(),
    )
