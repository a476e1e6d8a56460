"""Integration tests for the HTTP and WebSocket surface using FastAPI TestClient."""

from __future__ import annotations

import base64
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from journal_gateway.application.services import JournalAIService
from journal_gateway.config import get_settings
from journal_gateway.dependencies import build_gateways
from journal_gateway.domain.enums import GatewayErrorKind
from journal_gateway.domain.exceptions import AdapterError, GatewayError
from journal_gateway.main import create_app
from journal_gateway.ports.outbound import (
    AudioAnalysisPort,
    ImageGenerationPort,
    TextAnalysisPort,
    VisionAnalysisPort,
)
from journal_gateway.shared.errors import register_exception_handlers

ADMIN_TOKEN = "test-admin-token"


class StubAI(TextAnalysisPort, AudioAnalysisPort, VisionAnalysisPort, ImageGenerationPort):
    def __init__(self) -> None:
        self.vision_down = False

    async def analyze_text(self, prompt, *, system_prompt=None, options=None) -> dict[str, Any]:
        return {"reflection": f"noted: {prompt}"}

    async def analyze_audio(self, audio, mime_type, prompt) -> dict[str, Any]:
        return {"bytes": len(audio), "prompt": prompt}

    async def analyze_image(self, image, *, mime_type="image/jpeg", on_progress=None) -> dict[str, Any]:
        if on_progress:
            on_progress("Sending image to AI", 20)
        if self.vision_down:
            raise AdapterError("HTTP 503 unavailable", retryable=True, status_code=503)
        if on_progress:
            on_progress("Analysis complete", 100)
        return {"stress_level": 4}

    async def generate_image(self, prompt, base_image=None) -> dict[str, Any]:
        return {"url": "https://img.test/1.png"}


@pytest.fixture
def settings():
    return get_settings(breaker_failure_threshold=2, admin_token=ADMIN_TOKEN)


@pytest.fixture
def stub_ai() -> StubAI:
    return StubAI()


@pytest.fixture
def app(settings, stub_ai):
    gateways = build_gateways(settings)
    service = JournalAIService(gateways, text=stub_ai, audio=stub_ai, vision=stub_ai, image=stub_ai)
    return create_app(settings, gateways=gateways, ai_service=service)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def take_down_vision(client: TestClient, stub_ai: StubAI) -> None:
    stub_ai.vision_down = True
    for _ in range(2):
        resp = client.post("/api/v1/ai/vision", json={"image_b64": b64(b"frame")})
        assert resp.status_code == 502
        assert resp.json()["code"] == "PROVIDER_ERROR"


class TestHealthEndpoints:
    def test_health_check(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "version" in data
        assert data["providers"] == {
            "text": "closed",
            "audio": "closed",
            "vision": "closed",
            "image": "closed",
            "live": "closed",
        }

    def test_degraded_when_a_breaker_is_open(self, client, stub_ai):
        take_down_vision(client, stub_ai)
        data = client.get("/api/v1/health").json()
        assert data["status"] == "degraded"
        assert data["providers"]["vision"] == "open"
        assert data["providers"]["text"] == "closed"

    def test_metrics_endpoint(self, client):
        client.post("/api/v1/ai/text", json={"prompt": "hello"})
        resp = client.get("/api/v1/metrics")
        assert resp.status_code == 200
        assert b"gateway_calls_total" in resp.content
        assert b"http_requests_total" in resp.content

    def test_request_id_is_echoed(self, client):
        resp = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"


class TestProviderEndpoints:
    def test_provider_health_lists_every_provider(self, client):
        resp = client.get("/api/v1/providers/health")
        assert resp.status_code == 200
        ids = [p["provider_id"] for p in resp.json()]
        assert ids == ["text", "audio", "vision", "image", "live"]

    def test_reset_requires_admin_token(self, client):
        resp = client.post("/api/v1/providers/vision/reset")
        assert resp.status_code == 403

    def test_reset_closes_open_breaker(self, client, stub_ai):
        take_down_vision(client, stub_ai)
        resp = client.post(
            "/api/v1/providers/vision/reset", headers={"X-Admin-Token": ADMIN_TOKEN}
        )
        assert resp.status_code == 200
        assert resp.json()["circuit_state"] == "closed"
        assert client.get("/api/v1/health").json()["status"] == "ok"

    def test_reset_unknown_provider_is_404(self, client):
        resp = client.post("/api/v1/providers/fax/reset", headers={"X-Admin-Token": ADMIN_TOKEN})
        assert resp.status_code == 404
        assert resp.json()["code"] == "UNKNOWN_PROVIDER"


class TestAIEndpoints:
    def test_analyze_text(self, client):
        resp = client.post("/api/v1/ai/text", json={"prompt": "slept well"})
        assert resp.status_code == 200
        assert resp.json() == {
            "provider": "text",
            "result": {"reflection": "noted: slept well"},
            "progress": [],
        }

    def test_vision_returns_progress(self, client):
        resp = client.post("/api/v1/ai/vision", json={"image_b64": b64(b"frame")})
        assert resp.status_code == 200
        data = resp.json()
        assert data["result"] == {"stress_level": 4}
        assert [s["percent"] for s in data["progress"]] == [20, 100]

    def test_audio_and_image(self, client):
        audio = client.post("/api/v1/ai/audio", json={"audio_b64": b64(b"abc")})
        assert audio.status_code == 200
        assert audio.json()["result"]["bytes"] == 3
        image = client.post("/api/v1/ai/image", json={"prompt": "a quiet beach"})
        assert image.status_code == 200

    def test_open_circuit_is_503_with_retry_after(self, client, stub_ai):
        take_down_vision(client, stub_ai)
        resp = client.post("/api/v1/ai/vision", json={"image_b64": b64(b"frame")})
        assert resp.status_code == 503
        assert resp.json()["code"] == "CIRCUIT_OPEN"
        assert int(resp.headers["Retry-After"]) >= 1

        other = client.post("/api/v1/ai/text", json={"prompt": "still here"})
        assert other.status_code == 200

    def test_blank_prompt_is_a_validation_error(self, client):
        resp = client.post("/api/v1/ai/text", json={"prompt": "   "})
        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize(
        ("path", "body"),
        [
            ("/api/v1/ai/vision", {"image_b64": "not base64!"}),
            ("/api/v1/ai/audio", {"audio_b64": "not base64!"}),
            ("/api/v1/ai/image", {"prompt": "beach", "base_image_b64": "not base64!"}),
        ],
    )
    def test_bad_base64_is_rejected(self, client, path, body):
        resp = client.post(path, json=body)
        assert resp.status_code == 422


class TestBreakerStream:
    def test_stream_sends_snapshot_then_transitions(self, client, stub_ai):
        with client.websocket_connect("/ws/v1/breakers") as ws:
            initial = [ws.receive_json() for _ in range(5)]
            assert {m["provider"]: m["state"] for m in initial}["vision"] == "closed"

            take_down_vision(client, stub_ai)
            assert ws.receive_json() == {"provider": "vision", "state": "open"}

    def test_disconnect_releases_subscriptions(self, client, app):
        with client.websocket_connect("/ws/v1/breakers") as ws:
            for _ in range(5):
                ws.receive_json()
            assert app.state.gateways.vision.breaker.subscriber_count == 1
        assert app.state.gateways.vision.breaker.subscriber_count == 0


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("kind", "status"),
        [
            (GatewayErrorKind.CIRCUIT_OPEN, 503),
            (GatewayErrorKind.TIMEOUT, 504),
            (GatewayErrorKind.CANCELLED, 499),
            (GatewayErrorKind.PROVIDER_ERROR, 502),
            (GatewayErrorKind.UNKNOWN, 502),
        ],
    )
    def test_gateway_error_status(self, kind, status):
        bare = FastAPI()
        register_exception_handlers(bare)

        @bare.get("/boom")
        async def boom():
            raise GatewayError(kind, "boom", provider="text", retry_after=3.2)

        resp = TestClient(bare).get("/boom")
        assert resp.status_code == status
        assert resp.json()["code"] == kind.value
        if kind is GatewayErrorKind.CIRCUIT_OPEN:
            assert resp.headers["Retry-After"] == "4"
        else:
            assert "Retry-After" not in resp.headers
