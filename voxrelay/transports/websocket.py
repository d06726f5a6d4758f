"""WebSocket transports for voxrelay.

The assistant leg is an outbound ``websockets`` client connection to the
per-call media URL returned by provisioning. The telephony leg is an
inbound connection accepted by the FastAPI server and wrapped by
:class:`StarletteWebSocketTransport`.
"""

from __future__ import annotations

from typing import Any

import websockets
import websockets.asyncio.client
from loguru import logger
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from websockets.protocol import State

from voxrelay.core.errors import TransportError
from voxrelay.transports.base import BaseTransport


class WebSocketClientTransport(BaseTransport):
    """WebSocket client transport for connecting to a remote endpoint.

    Used for the assistant-side connection: voxrelay connects as a client
    to the media WebSocket of the provisioned call.
    """

    def __init__(self, url: str | None = None, **ws_kwargs: Any) -> None:
        self._url = url
        self._ws: Any | None = None
        self._ws_kwargs = ws_kwargs

    async def connect(self, **kwargs) -> None:
        url = kwargs.get("url", self._url)
        if not url:
            raise ValueError("WebSocket URL is required")
        self._url = url
        logger.info(f"Connecting to assistant WebSocket: {_redact(url)}")
        try:
            self._ws = await websockets.asyncio.client.connect(
                url,
                **self._ws_kwargs,
            )
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise TransportError(f"Could not connect to {_redact(url)}: {e}") from e
        logger.info("Assistant WebSocket connected")

    async def send(self, data: bytes | str) -> None:
        if not self._ws:
            raise TransportError("Not connected")
        try:
            await self._ws.send(data)
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportError(f"Assistant connection closed: {e}") from e

    async def recv(self) -> bytes | str:
        if not self._ws:
            raise TransportError("Not connected")
        try:
            return await self._ws.recv()
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportError(f"Assistant connection closed: {e}") from e

    async def disconnect(self) -> None:
        if self._ws:
            ws, self._ws = self._ws, None
            await ws.close()
            logger.info("Assistant WebSocket disconnected")

    def is_connected(self) -> bool:
        return self._ws is not None and self._ws.state is State.OPEN


class StarletteWebSocketTransport(BaseTransport):
    """Wraps an inbound Starlette/FastAPI WebSocket as a transport.

    Used for the telephony-side connection: the telephony provider connects
    to voxrelay's server, and this transport wraps that WebSocket.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket
        self._closed = False

    async def connect(self, **kwargs) -> None:
        if self._ws.client_state == WebSocketState.CONNECTING:
            await self._ws.accept()
        logger.info(f"Telephony WebSocket accepted: {self._ws.client}")

    async def send(self, data: bytes | str) -> None:
        if not self.is_connected():
            raise TransportError("Telephony connection closed")
        try:
            if isinstance(data, (bytes, bytearray, memoryview)):
                await self._ws.send_bytes(bytes(data))
            else:
                await self._ws.send_text(data)
        except (WebSocketDisconnect, RuntimeError) as e:
            self._closed = True
            raise TransportError(f"Telephony send failed: {e}") from e

    async def recv(self) -> bytes | str:
        if self._closed:
            raise TransportError("Telephony connection closed")
        try:
            msg = await self._ws.receive()
        except RuntimeError as e:
            self._closed = True
            raise TransportError(f"Telephony receive failed: {e}") from e
        if msg["type"] == "websocket.disconnect":
            self._closed = True
            raise TransportError(f"Telephony disconnected (code={msg.get('code')})")
        if msg.get("text") is not None:
            return msg["text"]
        if msg.get("bytes") is not None:
            return msg["bytes"]
        return b""

    async def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self._ws.close()
        except RuntimeError as e:
            logger.debug(f"Telephony close after disconnect: {e}")
        logger.info("Telephony WebSocket disconnected")

    def is_connected(self) -> bool:
        return (
            not self._closed
            and self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )


def _redact(url: str) -> str:
    """Drop the query string, which may carry call credentials."""
    return url.split("?", 1)[0]
