"""
Unit tests for the text-to-speech clients.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from voiceqa.models.conversation import PCM_16000, ULAW_8000, AudioFormat
from voiceqa.services.tts import (
    ElevenLabsSpeechSynthesizer,
    OpenAISpeechSynthesizer,
    SpeechSynthesisError,
    create_speech_synthesizer,
)


def synthesizer(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ElevenLabsSpeechSynthesizer(api_key="xi-key", voice_id="voice-1", client=client)


@pytest.mark.asyncio
async def test_elevenlabs_requests_native_format():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, content=b"\xff" * 800)

    audio = await synthesizer(handler).synthesize("Hello?", ULAW_8000)

    assert audio == b"\xff" * 800
    request = requests[0]
    assert request.url.path == "/v1/text-to-speech/voice-1"
    assert request.url.params["output_format"] == "ulaw_8000"
    assert request.headers["xi-api-key"] == "xi-key"
    assert json.loads(request.content)["text"] == "Hello?"


@pytest.mark.asyncio
async def test_elevenlabs_transcodes_unsupported_format():
    def handler(request):
        assert request.url.params["output_format"] == "pcm_16000"
        return httpx.Response(200, content=b"\x00\x00" * 1600)

    audio = await synthesizer(handler).synthesize("Hi", AudioFormat(encoding="ulaw", sample_rate=16000))

    assert audio == b"\xff" * 1600


@pytest.mark.asyncio
async def test_elevenlabs_error_status_raises():
    def handler(request):
        return httpx.Response(429, text="quota exceeded")

    with pytest.raises(SpeechSynthesisError, match="429"):
        await synthesizer(handler).synthesize("Hi", PCM_16000)


@pytest.mark.asyncio
async def test_openai_speech_is_transcoded_from_24k():
    speech = MagicMock()
    speech.content = b"\x00\x00" * 2400
    client = MagicMock()
    client.audio.speech.create = AsyncMock(return_value=speech)

    audio = await OpenAISpeechSynthesizer(client=client).synthesize("Hi", ULAW_8000)

    assert audio == b"\xff" * 800
    assert client.audio.speech.create.call_args.kwargs["response_format"] == "pcm"


@pytest.mark.asyncio
async def test_openai_speech_failure_raises():
    client = MagicMock()
    client.audio.speech.create = AsyncMock(side_effect=RuntimeError("down"))

    with pytest.raises(SpeechSynthesisError):
        await OpenAISpeechSynthesizer(client=client).synthesize("Hi", PCM_16000)


def test_factory():
    assert isinstance(create_speech_synthesizer("elevenlabs", elevenlabs_api_key="k"), ElevenLabsSpeechSynthesizer)
    assert isinstance(create_speech_synthesizer("openai", openai_api_key="sk"), OpenAISpeechSynthesizer)
    with pytest.raises(ValueError, match="ELEVENLABS_API_KEY"):
        create_speech_synthesizer("elevenlabs")
    with pytest.raises(ValueError, match="Unsupported"):
        create_speech_synthesizer("festival")
