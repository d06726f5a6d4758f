"""Tests for the FastAPI surface of voxrelay."""

import base64
import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from voxrelay.bridge import VoxRelay
from voxrelay.config import RelayConfig
from voxrelay.server import create_app


@pytest.fixture
def build_client(stub_provisioner):
    def build(error=None, **config):
        provisioner = stub_provisioner(error=error)
        relay = VoxRelay(RelayConfig.from_dict(config, env={}), provisioner=provisioner)
        return TestClient(create_app(relay)), relay, provisioner

    return build


class TestHttpEndpoints:

    def test_health(self, build_client):
        client, _, _ = build_client()
        with client:
            resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "active_sessions": 0}

    def test_status(self, build_client):
        client, _, _ = build_client()
        with client:
            data = client.get("/status").json()
        assert data["active_sessions"] == 0
        assert data["pending_tokens"] == 0
        assert data["sessions"] == []

    def test_ws_entry_echoes_negotiated_format(self, build_client):
        client, _, _ = build_client()
        with client:
            resp = client.get("/ws-entry", params={"fmt": "bin", "mode": "echo"})
        data = resp.json()
        assert data["action"] == "Stream"
        assert data["chunk_size"] == 1000
        assert data["ws_url"] == (
            "ws://testserver/frejun?fmt=bin&mode=echo&vapiSr=16000&frejunSr=8000&frejunFmt=pcm"
        )

    def test_ws_entry_defaults_to_configured_assistant_rate(self, build_client):
        client, _, _ = build_client(vapi={"sample_rate": 24000})
        with client:
            resp = client.get("/ws-entry")
        assert "vapiSr=24000" in resp.json()["ws_url"]

    def test_ws_entry_post_behind_tls_proxy(self, build_client):
        client, _, _ = build_client()
        with client:
            resp = client.post("/ws-entry", headers={"x-forwarded-proto": "https"})
        assert resp.json()["ws_url"].startswith("wss://testserver/frejun?")

    def test_ws_entry_public_host(self, build_client):
        client, _, _ = build_client(public_host="relay.example.com")
        with client:
            resp = client.get("/ws-entry")
        assert resp.json()["ws_url"].startswith("wss://relay.example.com/frejun?fmt=json")

    def test_stream_endpoint_returns_token_url(self, build_client):
        client, relay, provisioner = build_client()
        with client:
            resp = client.post("/exotel/stream-endpoint")
        assert resp.status_code == 200
        url = resp.json()["url"]
        assert url.startswith("ws://testserver/ws/")
        token = url.rsplit("/", 1)[1]
        assert token in relay.tokens
        assert provisioner.calls == 1

    def test_stream_endpoint_provisioning_failure(self, build_client):
        client, relay, _ = build_client(error="upstream refused")
        with client:
            resp = client.post("/exotel/stream-endpoint")
        assert resp.status_code == 502
        assert "upstream refused" in resp.json()["error"]
        assert len(relay.tokens) == 0

    def test_lifespan_closes_provisioner(self, build_client):
        client, _, provisioner = build_client()
        with client:
            pass
        assert provisioner.closed is True


class TestWebhook:

    def _sign(self, body: bytes, secret: str) -> str:
        return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    def test_valid_signature(self, build_client):
        client, _, _ = build_client(webhook_secret="s3cret")
        body = json.dumps({"message": {"type": "status-update"}}).encode()
        with client:
            resp = client.post("/webhook", content=body, headers={"x-vapi-signature": self._sign(body, "s3cret")})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    def test_tampered_body_rejected(self, build_client):
        client, _, _ = build_client(webhook_secret="s3cret")
        body = b'{"message": {"type": "status-update"}}'
        signature = self._sign(body, "s3cret")
        with client:
            resp = client.post("/webhook", content=body + b" ", headers={"x-vapi-signature": signature})
        assert resp.status_code == 401
        assert resp.json() == {"error": "invalid signature"}

    @pytest.mark.parametrize("signature", ["é", "é" * 64])
    def test_non_ascii_signature_rejected(self, build_client, signature):
        client, _, _ = build_client(webhook_secret="s3cret")
        with client:
            resp = client.post(
                "/webhook",
                content=b"{}",
                headers={"x-vapi-signature": signature.encode("utf-8")},
            )
        assert resp.status_code == 401
        assert resp.json() == {"error": "invalid signature"}

    def test_missing_signature_rejected(self, build_client):
        client, _, _ = build_client(webhook_secret="s3cret")
        with client:
            resp = client.post("/webhook", content=b"{}")
        assert resp.status_code == 401

    def test_no_secret_accepts_everything(self, build_client):
        client, _, _ = build_client()
        with client:
            resp = client.post("/webhook", content=b"anything")
        assert resp.status_code == 200


class TestWebSocketEndpoints:

    def test_echo_round_trip(self, build_client):
        client, relay, provisioner = build_client()
        with client:
            with client.websocket_connect("/frejun?mode=echo&fmt=bin") as ws:
                ws.send_bytes(b"\x01\x00" * 160)
                assert ws.receive_bytes() == b"\x01\x00" * 160
                ws.send_text('{"event": "stop"}')
        assert provisioner.calls == 0

    def test_echo_round_trip_json(self, build_client):
        client, _, _ = build_client()
        payload = base64.b64encode(b"\x01\x00" * 160).decode()
        with client:
            with client.websocket_connect("/frejun?mode=echo") as ws:
                ws.send_text(json.dumps({"event": "connected"}))
                ws.send_text(json.dumps({"event": "media", "media": {"payload": payload}}))
                msg = json.loads(ws.receive_text())
                assert msg["event"] == "media"
                ws.send_text('{"event": "stop"}')

    def test_unknown_token_rejected(self, build_client):
        client, _, _ = build_client()
        with client:
            with pytest.raises(WebSocketDisconnect):
                with client.websocket_connect("/ws/not-a-token") as ws:
                    ws.receive_bytes()

    def test_provisioning_failure_rejects_upgrade(self, build_client):
        client, _, _ = build_client(error="control API down")
        with client:
            with pytest.raises(WebSocketDisconnect):
                with client.websocket_connect("/frejun") as ws:
                    ws.receive_bytes()
