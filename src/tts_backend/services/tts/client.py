"""HTTP client for a remote ``/api/tts`` endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ...schemas.tts import GeneratedAudio
from .errors import SpeechProviderError

logger = logging.getLogger(__name__)


class HttpSpeechClient:
    """Speech provider backed by another instance of this service.

    Lets the segment dispatcher run in a process that holds no provider
    API keys. Non-2xx responses raise ``SpeechProviderError`` with the
    status code and the ``detail`` (or ``error``) field of the body.
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/api/tts"
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers or {}

    async def generate(
        self,
        text: str,
        voice: str | None = None,
        provider: str | None = None,
        *,
        mode: str | None = None,
        segment_count: int | None = None,
    ) -> GeneratedAudio:
        payload: dict[str, Any] = {"text": text}
        if voice:
            payload["voice"] = voice
        if provider:
            payload["provider_preference"] = provider
        if mode:
            payload["mode"] = mode
        if segment_count:
            payload["segment_count"] = segment_count

        try:
            response = await self._client.post(
                self._endpoint, json=payload, headers=self._headers
            )
        except httpx.HTTPError as exc:
            raise SpeechProviderError(f"TTS request failed: {exc}") from exc

        if response.status_code >= 400:
            raise SpeechProviderError(
                f"TTS service error ({response.status_code}): {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            return GeneratedAudio.model_validate(response.json())
        except ValueError as exc:
            raise SpeechProviderError(f"Invalid TTS response: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpSpeechClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        message = body.get("detail") or body.get("error")
        if message:
            return str(message)
    return response.text


__all__ = ["HttpSpeechClient"]
