"""
Text-to-speech clients for the synthetic caller's voice.

Each synthesizer returns audio already encoded in the format the agent under
test expects, so the session can hand the bytes straight to the channel.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from openai import AsyncOpenAI

from voiceqa.audio.codec import transcode
from voiceqa.config.constants import (
    DEFAULT_TTS_MODEL_ID,
    DEFAULT_TTS_VOICE_ID,
    ELEVENLABS_API_BASE,
    LOGGER_NAME,
)
from voiceqa.models.conversation import AudioFormat

logger = logging.getLogger(LOGGER_NAME)

TTS_TIMEOUT = 30.0  # seconds

# Output formats ElevenLabs can render natively
ELEVENLABS_NATIVE_FORMATS = {
    "ulaw_8000", "pcm_8000", "pcm_16000", "pcm_22050", "pcm_24000", "pcm_44100",
}

OPENAI_PCM_FORMAT = AudioFormat(encoding="pcm", sample_rate=24000)


class SpeechSynthesisError(Exception):
    """Raised when a TTS request fails."""


class SpeechSynthesizer(ABC):
    """Renders caller text as audio."""

    @abstractmethod
    async def synthesize(self, text: str, audio_format: AudioFormat) -> bytes:
        """Return ``text`` spoken, encoded in ``audio_format``."""

    async def close(self) -> None:
        """Release network resources."""


class ElevenLabsSpeechSynthesizer(SpeechSynthesizer):
    """ElevenLabs text-to-speech over HTTP."""

    def __init__(self, api_key: str, voice_id: str = DEFAULT_TTS_VOICE_ID,
                 model_id: str = DEFAULT_TTS_MODEL_ID, base_url: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.base_url = (base_url or ELEVENLABS_API_BASE).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=TTS_TIMEOUT)

    async def synthesize(self, text: str, audio_format: AudioFormat) -> bytes:
        native = audio_format.tag in ELEVENLABS_NATIVE_FORMATS
        request_format = audio_format if native else AudioFormat(encoding="pcm", sample_rate=16000)
        url = f"{self.base_url}/v1/text-to-speech/{self.voice_id}"
        try:
            response = await self._client.post(
                url,
                params={"output_format": request_format.tag},
                headers={"xi-api-key": self.api_key, "Content-Type": "application/json"},
                json={
                    "text": text,
                    "model_id": self.model_id,
                    "voice_settings": {"stability": 0.5, "similarity_boost": 0.75, "speed": 1.0},
                },
            )
        except httpx.HTTPError as e:
            raise SpeechSynthesisError(f"TTS request failed: {e}") from e
        if response.status_code != 200:
            raise SpeechSynthesisError(f"TTS generation failed ({response.status_code}): {response.text}")
        audio = response.content
        logger.debug(f"Synthesized {len(audio)} bytes of {request_format.tag} for {len(text)} chars")
        return transcode(audio, request_format, audio_format)

    async def close(self) -> None:
        await self._client.aclose()


class OpenAISpeechSynthesizer(SpeechSynthesizer):
    """OpenAI speech endpoint; raw 24 kHz PCM is transcoded to the channel format."""

    def __init__(self, api_key: Optional[str] = None, voice: str = "coral",
                 model: str = "gpt-4o-mini-tts", client: Optional[AsyncOpenAI] = None):
        self.voice = voice
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def synthesize(self, text: str, audio_format: AudioFormat) -> bytes:
        try:
            response = await self._client.audio.speech.create(
                model=self.model,
                voice=self.voice,
                input=text,
                response_format="pcm",
            )
        except Exception as e:
            raise SpeechSynthesisError(f"OpenAI speech failed: {e}") from e
        return transcode(response.content, OPENAI_PCM_FORMAT, audio_format)


def create_speech_synthesizer(tts_provider: str = "elevenlabs", elevenlabs_api_key: Optional[str] = None,
                              voice_id: str = DEFAULT_TTS_VOICE_ID,
                              openai_api_key: Optional[str] = None) -> SpeechSynthesizer:
    """
    Build the caller's synthesizer.

    Raises:
        ValueError: For an unknown provider or a missing ElevenLabs key
    """
    if tts_provider == "elevenlabs":
        if not elevenlabs_api_key:
            raise ValueError("ELEVENLABS_API_KEY is required for ElevenLabs text-to-speech")
        return ElevenLabsSpeechSynthesizer(api_key=elevenlabs_api_key, voice_id=voice_id)
    if tts_provider == "openai":
        return OpenAISpeechSynthesizer(api_key=openai_api_key)
    raise ValueError(f"Unsupported TTS provider: {tts_provider}")
