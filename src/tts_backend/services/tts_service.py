import logging
from typing import Optional

import httpx

from ..config import Settings
from .tts.errors import ProviderUnavailableError, SpeechProviderError

logger = logging.getLogger(__name__)

MP3_CONTENT_TYPE = "audio/mpeg"


class TTSService:
    """
    Service for Text-to-Speech synthesis against third-party providers.

    Supports ElevenLabs and OpenAI. Both return MP3 audio for the whole
    input in one response. Uses a shared httpx.AsyncClient for connection
    pooling across requests.

    Provider failures raise SpeechProviderError with the HTTP status and the
    provider's error text; nothing is swallowed, because the segment
    dispatcher must know a clip is missing.
    """

    # Shared HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self._settings = settings
        self._client = http_client

        self.elevenlabs_api_key = (
            settings.elevenlabs_api_key.get_secret_value()
            if settings.elevenlabs_api_key else None
        )
        self.elevenlabs_base_url = "https://api.elevenlabs.io/v1/text-to-speech"

        self.openai_api_key = (
            settings.openai_api_key.get_secret_value()
            if settings.openai_api_key else None
        )
        self.openai_base_url = "https://api.openai.com/v1/audio/speech"

        providers = self.available_providers
        if not providers:
            logger.warning("No TTS API keys configured. TTS will not be available.")
        else:
            logger.info(f"TTS providers available: {', '.join(providers)}")

    @property
    def available_providers(self) -> list[str]:
        providers = []
        if self.elevenlabs_api_key:
            providers.append("elevenlabs")
        if self.openai_api_key:
            providers.append("openai")
        return providers

    def select_provider(self, preference: Optional[str] = None) -> str:
        """Pick the preferred provider, or whichever one has an API key."""
        providers = self.available_providers
        if not providers:
            raise ProviderUnavailableError("No TTS provider configured")
        if preference in providers:
            return preference
        if preference:
            logger.info(f"TTS provider {preference} not configured, using {providers[0]}")
        return providers[0]

    def default_voice(self, provider: str) -> str:
        if provider == "elevenlabs":
            return self._settings.elevenlabs_default_voice
        return self._settings.openai_default_voice

    @classmethod
    def get_http_client(cls) -> httpx.AsyncClient:
        """Get shared HTTP client for connection pooling."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(timeout=30.0)
            logger.info("Created shared httpx.AsyncClient for TTS")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed TTS HTTP client")

    def _client_for_request(self) -> httpx.AsyncClient:
        return self._client or self.get_http_client()

    async def synthesize(self, text: str, provider: str, voice: Optional[str] = None) -> bytes:
        """
        Synthesize text (or SSML) to MP3 audio with the given provider.
        Returns the encoded audio bytes.
        """
        voice = voice or self.default_voice(provider)
        if provider == "elevenlabs":
            return await self._synthesize_elevenlabs(text, voice)
        elif provider == "openai":
            return await self._synthesize_openai(text, voice)
        raise ProviderUnavailableError(f"Unknown TTS provider: {provider}")

    async def _post(self, provider_label: str, url: str, headers: dict, payload: dict) -> bytes:
        try:
            response = await self._client_for_request().post(
                url,
                headers=headers,
                json=payload,
                timeout=self._settings.tts_request_timeout,
            )
        except httpx.HTTPError as exc:
            raise SpeechProviderError(f"{provider_label} request failed: {exc}") from exc

        if response.status_code >= 400:
            raise SpeechProviderError(
                f"{provider_label} API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        return response.content

    async def _synthesize_elevenlabs(self, text: str, voice_id: str) -> bytes:
        """Synthesize using ElevenLabs."""
        if not self.elevenlabs_api_key:
            raise ProviderUnavailableError("ElevenLabs API key not configured")

        headers = {
            "Accept": MP3_CONTENT_TYPE,
            "xi-api-key": self.elevenlabs_api_key,
            "Content-Type": "application/json",
        }

        payload = {
            "text": text,
            "model_id": self._settings.elevenlabs_model_id,
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.5,
            },
        }

        audio_data = await self._post(
            "ElevenLabs", f"{self.elevenlabs_base_url}/{voice_id}", headers, payload
        )
        logger.info(f"ElevenLabs TTS synthesized {len(audio_data)} bytes for text: {text[:50]}...")
        return audio_data

    async def _synthesize_openai(self, text: str, voice: str) -> bytes:
        """Synthesize using OpenAI TTS."""
        if not self.openai_api_key:
            raise ProviderUnavailableError("OpenAI API key not configured")

        headers = {
            "Authorization": f"Bearer {self.openai_api_key}",
            "Content-Type": "application/json",
        }

        payload = {
            "model": self._settings.openai_tts_model,
            "input": text,
            "voice": voice,
            "response_format": "mp3",
        }

        audio_data = await self._post("OpenAI", self.openai_base_url, headers, payload)
        logger.info(f"OpenAI TTS synthesized {len(audio_data)} bytes for text: {text[:50]}...")
        return audio_data
