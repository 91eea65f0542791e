import json

import httpx
import pytest

from tts_backend.services.tts import HttpSpeechClient
from tts_backend.services.tts.errors import SpeechProviderError


def _client(handler) -> HttpSpeechClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSpeechClient("http://tts.local/", http_client=http_client)


@pytest.mark.asyncio
async def test_generate_posts_to_tts_endpoint():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "audio_url": "http://tts.local/audio/abc.mp3",
                "cached": True,
                "provider": "openai",
            },
        )

    audio = await _client(handler).generate("Hello.", "nova", "openai")

    assert captured["url"] == "http://tts.local/api/tts"
    assert captured["body"] == {
        "text": "Hello.",
        "voice": "nova",
        "provider_preference": "openai",
    }
    assert audio.audio_url == "http://tts.local/audio/abc.mp3"
    assert audio.cached is True


@pytest.mark.asyncio
async def test_error_detail_is_surfaced():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"detail": "No TTS provider configured"})

    with pytest.raises(SpeechProviderError) as exc_info:
        await _client(handler).generate("Hello.")

    assert exc_info.value.status_code == 503
    assert "No TTS provider configured" in str(exc_info.value)


@pytest.mark.asyncio
async def test_error_field_and_plain_text_bodies():
    def json_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "synthesis failed"})

    def text_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(SpeechProviderError, match="synthesis failed"):
        await _client(json_handler).generate("Hello.")
    with pytest.raises(SpeechProviderError, match="bad gateway"):
        await _client(text_handler).generate("Hello.")


@pytest.mark.asyncio
async def test_invalid_response_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(SpeechProviderError, match="Invalid TTS response"):
        await _client(handler).generate("Hello.")


@pytest.mark.asyncio
async def test_owned_client_is_closed():
    async with HttpSpeechClient("http://tts.local") as client:
        assert not client._client.is_closed

    assert client._client.is_closed


@pytest.mark.asyncio
async def test_mode_and_segment_count_are_forwarded():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"audio_url": "http://tts.local/audio/b.mp3", "provider": "openai"})

    await _client(handler).generate("Part one.", mode="full", segment_count=2)

    assert captured["body"] == {"text": "Part one.", "mode": "full", "segment_count": 2}
