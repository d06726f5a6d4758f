"""Assistant control-plane client.

Creates a Vapi call bound to a raw WebSocket media transport and returns
the per-call media WebSocket address the bridge should connect to.

Usage:
    provisioner = VapiProvisioner(api_key="...", assistant_id="...")
    ws_url = await provisioner.provision()
    await provisioner.close()
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
from loguru import logger

from voxrelay.core.errors import UpstreamProvisionError

DEFAULT_API_URL = "https://api.vapi.ai"


class VapiProvisioner:
    """Issues one authenticated ``POST /call`` per bridge session.

    Failures of any kind (non-2xx status, undecodable body, missing
    ``transport.websocketCallUrl``, network error or timeout) surface as
    :class:`UpstreamProvisionError`. Nothing is retried here; the caller
    decides whether a new connection attempt is worthwhile.
    """

    def __init__(
        self,
        api_key: str,
        assistant_id: str = "",
        api_url: str = DEFAULT_API_URL,
        sample_rate: int = 16000,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.api_key = api_key
        self.assistant_id = assistant_id
        self.api_url = api_url.rstrip("/")
        self.sample_rate = sample_rate
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Content-Type": "application/json"},
            )
            self._owns_session = True
        return self._session

    def build_request(self, assistant_id: str | None = None, sample_rate: int | None = None) -> dict[str, Any]:
        """Body of the call-creation request."""
        return {
            "assistantId": assistant_id or self.assistant_id,
            "transport": {
                "provider": "vapi.websocket",
                "audioFormat": {
                    "format": "pcm_s16le",
                    "container": "raw",
                    "sampleRate": sample_rate or self.sample_rate,
                },
            },
        }

    async def provision(self, assistant_id: str | None = None, sample_rate: int | None = None) -> str:
        """Create an upstream call and return its media WebSocket URL.

        Raises:
            UpstreamProvisionError: If the control API call fails.
        """
        assistant = assistant_id or self.assistant_id
        if not assistant:
            raise UpstreamProvisionError("No assistant id configured")

        body = self.build_request(assistant, sample_rate)
        logger.info(f"Provisioning upstream call for assistant {assistant}")
        try:
            session = await self._get_session()
            async with asyncio.timeout(self.timeout):
                async with session.post(
                    f"{self.api_url}/call",
                    json=body,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                ) as resp:
                    if resp.status < 200 or resp.status >= 300:
                        text = await resp.text()
                        raise UpstreamProvisionError(
                            f"Call create failed: {resp.status} {text[:200]}",
                            status=resp.status,
                        )
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as e:
                        raise UpstreamProvisionError(
                            f"Call create returned invalid JSON: {e}", status=resp.status
                        ) from e
        except UpstreamProvisionError:
            raise
        except TimeoutError as e:
            raise UpstreamProvisionError(
                f"Call create timed out after {self.timeout}s"
            ) from e
        except aiohttp.ClientError as e:
            raise UpstreamProvisionError(f"Could not reach control API: {e}") from e

        ws_url = extract_websocket_url(data)
        if not ws_url:
            raise UpstreamProvisionError("No websocketCallUrl in call create response")
        logger.info(f"Upstream call provisioned (call={_call_id(data)})")
        return ws_url

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()


def extract_websocket_url(data: Any) -> str | None:
    """Read ``transport.websocketCallUrl`` from a call-create response."""
    if not isinstance(data, dict):
        return None
    transport = data.get("transport")
    if not isinstance(transport, dict):
        return None
    url = transport.get("websocketCallUrl")
    return url if isinstance(url, str) and url else None


def _call_id(data: dict) -> str:
    return str(data.get("id", "?"))
