"""JSON-over-HTTP provider adapter — talks to the app's AI proxy.

Each port method is a single pure HTTP call with no retry logic; the
gateway wrapping it owns deadlines, cancellation and circuit breaking.
HTTP failures are converted into ``AdapterError`` with ``retryable`` set
from the status code, so validation rejections (4xx) never trip a breaker.
"""

from __future__ import annotations

import base64
import json
from typing import Any

import httpx
import structlog

from journal_gateway.domain.exceptions import AdapterError
from journal_gateway.ports.outbound import (
    AudioAnalysisPort,
    ImageGenerationPort,
    ProgressCallback,
    TextAnalysisPort,
    VisionAnalysisPort,
)
from journal_gateway.shared.providers.classification import is_transient_status

logger = structlog.get_logger(__name__)

DEFAULT_PATHS: dict[str, str] = {
    "text": "/ai/text",
    "audio": "/ai/audio",
    "vision": "/ai/vision",
    "image": "/ai/image",
}


class ProxyAIAdapter(TextAnalysisPort, AudioAnalysisPort, VisionAnalysisPort, ImageGenerationPort):
    """Provider adapter for the journaling app's AI proxy endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = 120.0,
        paths: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        provider_id: str = "proxy",
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)
        self._owns_client = client is None
        self._paths = {**DEFAULT_PATHS, **(paths or {})}
        self._provider_id = provider_id

    # ── Ports ────────────────────────────────────────────────
    async def analyze_text(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"prompt": prompt, **(options or {})}
        if system_prompt:
            body["system"] = system_prompt
        data = await self._post("text", body)
        if isinstance(data.get("text"), str):
            return self._parse_json(data["text"])
        return data

    async def analyze_audio(self, audio: bytes, mime_type: str, prompt: str) -> dict[str, Any]:
        return await self._post(
            "audio",
            {"audio": _b64(audio), "mimeType": mime_type, "prompt": prompt},
        )

    async def analyze_image(
        self,
        image: bytes,
        *,
        mime_type: str = "image/jpeg",
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        _progress(on_progress, "Preparing analysis request", 10)
        body = {"image": _b64(image), "mimeType": mime_type}
        _progress(on_progress, "Sending image to AI", 20)
        data = await self._post("vision", body)
        _progress(on_progress, "Parsing results", 90)
        _progress(on_progress, "Analysis complete", 100)
        return data

    async def generate_image(self, prompt: str, base_image: bytes | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"prompt": prompt}
        if base_image is not None:
            body["image"] = _b64(base_image)
        return await self._post("image", body)

    # ── HTTP ─────────────────────────────────────────────────
    async def _post(self, operation: str, body: dict[str, Any]) -> dict[str, Any]:
        path = self._paths[operation]
        try:
            response = await self._client.post(path, json=body)
        except httpx.TimeoutException:
            raise  # classified as TIMEOUT by the gateway
        except httpx.TransportError as exc:
            raise AdapterError(
                f"{operation}: transport error {type(exc).__name__}: {exc}",
                retryable=True,
                provider=self._provider_id,
            ) from exc

        if response.is_error:
            status = response.status_code
            logger.debug("proxy_http_error", provider=self._provider_id, operation=operation, status=status)
            raise AdapterError(
                f"{operation}: HTTP {status} {_error_detail(response)}",
                retryable=is_transient_status(status),
                status_code=status,
                provider=self._provider_id,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AdapterError(
                f"{operation}: malformed JSON response",
                retryable=True,
                status_code=response.status_code,
                provider=self._provider_id,
            ) from exc
        if not isinstance(data, dict):
            return {"result": data}
        return data

    @staticmethod
    def _parse_json(text: str) -> dict[str, Any]:
        """Parse model text as a JSON object, tolerating markdown fences.

        Unparseable text comes back as ``raw_text`` rather than raising, so
        a badly formatted reply never counts against the provider.
        """
        for candidate in (text, _fenced_body(text)):
            if candidate is None:
                continue
            try:
                data = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            return data if isinstance(data, dict) else {"result": data}
        return {"raw_text": text, "confidence": 0.0}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _fenced_body(text: str) -> str | None:
    marker = "```json" if "```json" in text else "```"
    _, found, rest = text.partition(marker)
    if not found:
        return None
    # An unterminated fence runs to the end of the text
    body, _, _ = rest.partition("```")
    return body.strip()


def _progress(callback: ProgressCallback | None, stage: str, percent: float) -> None:
    if callback is not None:
        callback(stage, percent)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("error") or payload.get("message") or payload)[:200]
    return str(payload)[:200]
