"""
Unit tests for the provider signaling adapters.

These tests verify that each provider's wire messages are reduced to the
abstract channel events, that outbound audio and pongs are encoded the way
each provider expects, and that setup failures surface as ChannelSetupError.
"""

import asyncio
import base64
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from voiceqa.models.conversation import PCM_16000, ULAW_8000, ProviderCredentials
from voiceqa.models.events import AudioDelta, ChannelClosed, ChannelReady, ControlPing, TextDelta
from voiceqa.signaling.base import ChannelSetupError
from voiceqa.signaling.elevenlabs import ElevenLabsChannel, ElevenLabsSignalingClient
from voiceqa.signaling.factory import create_signaling_client
from voiceqa.signaling.retell import RetellChannel, RetellSignalingClient
from voiceqa.signaling.vapi import VapiChannel, VapiSignalingClient


def credentials(provider):
    return ProviderCredentials(provider=provider, agent_id="agent-1", api_key="secret")


def mock_http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def collect(channel):
    return [event async for event in channel.events()]


# ElevenLabs


@pytest.fixture
def elevenlabs_channel():
    return ElevenLabsChannel(AsyncMock(), credentials("elevenlabs"))


def test_elevenlabs_initiation_metadata(elevenlabs_channel):
    message = json.dumps({
        "type": "conversation_initiation_metadata",
        "conversation_initiation_metadata_event": {
            "conversation_id": "conv_123",
            "user_input_audio_format": "ulaw_8000",
            "agent_output_audio_format": "pcm_16000",
        },
    })
    events = elevenlabs_channel.translate(message)

    assert events == [ChannelReady(call_id="conv_123", audio_format=ULAW_8000, output_format=PCM_16000)]
    assert elevenlabs_channel.call_id == "conv_123"


def test_elevenlabs_missing_formats_default_to_pcm(elevenlabs_channel):
    events = elevenlabs_channel.translate(json.dumps({"type": "conversation_initiation_metadata"}))
    assert events[0].audio_format == PCM_16000
    assert events[0].output_format == PCM_16000


def test_elevenlabs_agent_response(elevenlabs_channel):
    message = json.dumps({
        "type": "agent_response",
        "agent_response_event": {"agent_response": "Hi, how can I help?"},
    })
    assert elevenlabs_channel.translate(message) == [TextDelta(text="Hi, how can I help?")]


def test_elevenlabs_audio_is_decoded(elevenlabs_channel):
    audio = b"\x01\x02\x03"
    message = json.dumps({
        "type": "audio",
        "audio_event": {"audio_base_64": base64.b64encode(audio).decode()},
    })
    assert elevenlabs_channel.translate(message) == [AudioDelta(data=audio)]


def test_elevenlabs_binary_frame_is_audio(elevenlabs_channel):
    assert elevenlabs_channel.translate(b"\x00\x01") == [AudioDelta(data=b"\x00\x01")]


def test_elevenlabs_ping_and_pong(elevenlabs_channel):
    message = json.dumps({"type": "ping", "ping_event": {"event_id": 7}})
    assert elevenlabs_channel.translate(message) == [ControlPing(ping_id="7")]
    assert json.loads(elevenlabs_channel.encode_pong("7")) == {"type": "pong", "event_id": 7}


def test_elevenlabs_ignored_messages(elevenlabs_channel):
    for message_type in ("user_transcript", "interruption", "vad_score", "something_new"):
        assert elevenlabs_channel.translate(json.dumps({"type": message_type})) == []


def test_elevenlabs_encode_audio(elevenlabs_channel):
    payload = json.loads(elevenlabs_channel.encode_audio(b"\xff\xfe"))
    assert base64.b64decode(payload["user_audio_chunk"]) == b"\xff\xfe"


@pytest.mark.asyncio
async def test_elevenlabs_setup_rejected():
    def handler(request):
        return httpx.Response(401, json={"detail": "invalid api key"})

    client = ElevenLabsSignalingClient(http_client=mock_http(handler))
    with pytest.raises(ChannelSetupError, match="401"):
        await client.open_channel("agent-1", credentials("elevenlabs"))


@pytest.mark.asyncio
async def test_elevenlabs_setup_unexpected_response():
    def handler(request):
        return httpx.Response(200, json={"url": "wss://example"})

    client = ElevenLabsSignalingClient(http_client=mock_http(handler))
    with pytest.raises(ChannelSetupError, match="unexpected response"):
        await client.open_channel("agent-1", credentials("elevenlabs"))


@pytest.mark.asyncio
async def test_elevenlabs_websocket_failure():
    def handler(request):
        assert request.url.params["agent_id"] == "agent-1"
        assert request.headers["xi-api-key"] == "secret"
        return httpx.Response(200, json={"signed_url": "wss://example/convai"})

    client = ElevenLabsSignalingClient(http_client=mock_http(handler))
    with patch("websockets.connect", side_effect=OSError("refused")):
        with pytest.raises(ChannelSetupError, match="Failed to connect"):
            await client.open_channel("agent-1", credentials("elevenlabs"))


@pytest.mark.asyncio
async def test_elevenlabs_fetch_recording():
    def handler(request):
        assert request.url.path == "/v1/convai/conversations/conv_9"
        return httpx.Response(200, json={"metadata": {"recording_url": "https://cdn/rec.mp3"}})

    channel = ElevenLabsChannel(AsyncMock(), credentials("elevenlabs"), http_client=mock_http(handler))
    channel.call_id = "conv_9"
    channel.recording_fetch_delay = 0

    recording = await channel.fetch_recording()
    assert recording.url == "https://cdn/rec.mp3"


@pytest.mark.asyncio
async def test_fetch_recording_failure_yields_none():
    def handler(request):
        return httpx.Response(404)

    channel = ElevenLabsChannel(AsyncMock(), credentials("elevenlabs"), http_client=mock_http(handler))
    channel.call_id = "conv_9"
    channel.recording_fetch_delay = 0
    assert await channel.fetch_recording() is None


# Shared websocket transport


@pytest.mark.asyncio
async def test_receive_loop_ends_with_single_channel_closed():
    ws = AsyncMock()
    ws.recv.side_effect = [
        json.dumps({"type": "agent_response", "agent_response_event": {"agent_response": "Hello"}}),
        "{not json",
        ConnectionClosedOK(rcvd=Close(1000, "bye"), sent=None),
    ]
    channel = ElevenLabsChannel(ws, credentials("elevenlabs"))
    channel.start()

    events = await asyncio.wait_for(collect(channel), timeout=1)

    assert events == [TextDelta(text="Hello"), ChannelClosed(code=1000, reason="bye")]
    assert channel.message_count == 2


@pytest.mark.asyncio
async def test_abnormal_close_is_reported():
    ws = AsyncMock()
    ws.recv.side_effect = ConnectionClosedError(rcvd=None, sent=None)
    channel = ElevenLabsChannel(ws, credentials("elevenlabs"))
    channel.start()

    events = await asyncio.wait_for(collect(channel), timeout=1)

    assert len(events) == 1
    assert events[0].code == 1006
    assert not events[0].is_normal


@pytest.mark.asyncio
async def test_send_after_close_is_dropped():
    ws = AsyncMock()
    channel = ElevenLabsChannel(ws, credentials("elevenlabs"))

    await channel.close()
    await channel.send_audio(b"\x00")

    ws.close.assert_awaited_once()
    ws.send.assert_not_called()
    assert await asyncio.wait_for(collect(channel), timeout=1) == [
        ChannelClosed(code=1000, reason="closed by caller")
    ]


# Retell


def test_retell_translate():
    channel = RetellChannel(AsyncMock(), credentials("retell"), call_id="call_1")
    assert channel.translate(json.dumps({"response_type": "agent_response", "content": "Hi"})) == [
        TextDelta(text="Hi")
    ]
    assert channel.translate(json.dumps({"response_type": "ping_pong", "timestamp": 123})) == [
        ControlPing(ping_id="123")
    ]
    assert channel.translate(b"\x01\x00") == [AudioDelta(data=b"\x01\x00")]
    assert channel.translate(json.dumps({"response_type": "update"})) == []
    assert json.loads(channel.encode_pong("123")) == {"response_type": "ping_pong", "timestamp": 123}
    assert channel.encode_audio(b"\x01") == b"\x01"


def test_retell_audio_starting_with_brace_is_audio():
    channel = RetellChannel(AsyncMock(), credentials("retell"), call_id="call_1")
    frame = b"{\x00\x10\x80\xf3\x22"
    assert channel.translate(frame) == [AudioDelta(data=frame)]


def test_retell_snapshots_emit_only_new_text():
    channel = RetellChannel(AsyncMock(), credentials("retell"), call_id="call_1")

    def update(content):
        return channel.translate(json.dumps({"response_type": "agent_response", "content": content}))

    assert update("Hi") == [TextDelta(text="Hi")]
    assert update("Hi there, how can I help?") == [
        TextDelta(text=" there, how can I help?", continues=True)
    ]
    assert update("Hi there, how can I help?") == []
    assert channel.translate(json.dumps({"response_type": "turn_end"})) == []
    assert update("Hi again") == [TextDelta(text="Hi again")]


@pytest.mark.asyncio
async def test_retell_open_channel():
    def handler(request):
        assert request.url.path == "/v2/create-web-call"
        assert request.headers["authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"agent_id": "agent-1"}
        return httpx.Response(201, json={"call_id": "call_42", "access_token": "tok"})

    ws = AsyncMock()
    ws.recv.side_effect = ConnectionClosedOK(rcvd=Close(1000, ""), sent=None)
    client = RetellSignalingClient(http_client=mock_http(handler))

    with patch("websockets.connect", new=AsyncMock(return_value=ws)) as connect:
        channel = await client.open_channel("agent-1", credentials("retell"))
        events = await asyncio.wait_for(collect(channel), timeout=1)

    assert connect.call_args.args[0].endswith("/call_42")
    assert connect.call_args.kwargs["additional_headers"] == {"Authorization": "Bearer tok"}
    assert json.loads(ws.send.call_args.args[0])["response_type"] == "config"
    assert events[0] == ChannelReady(call_id="call_42", audio_format=PCM_16000, output_format=PCM_16000)
    assert isinstance(events[-1], ChannelClosed)


@pytest.mark.asyncio
async def test_retell_network_error():
    def handler(request):
        raise httpx.ConnectError("unreachable")

    client = RetellSignalingClient(http_client=mock_http(handler))
    with pytest.raises(ChannelSetupError, match="setup request failed"):
        await client.open_channel("agent-1", credentials("retell"))


# VAPI


def test_vapi_translate():
    channel = VapiChannel(AsyncMock(), credentials("vapi"), call_id="v1")
    final = {"type": "transcript", "role": "assistant", "transcriptType": "final", "transcript": "Hello!"}
    partial = dict(final, transcriptType="partial")
    user = dict(final, role="user")

    assert channel.translate(json.dumps(final)) == [TextDelta(text="Hello!")]
    assert channel.translate(json.dumps(partial)) == []
    assert channel.translate(json.dumps(user)) == []
    assert channel.translate(json.dumps({"type": "status-update"})) == []
    assert channel.translate(b"\x00\x00") == [AudioDelta(data=b"\x00\x00")]
    frame = b"{\x00\x10\x80"
    assert channel.translate(frame) == [AudioDelta(data=frame)]


@pytest.mark.asyncio
async def test_vapi_open_channel_and_pong_is_noop():
    def handler(request):
        body = json.loads(request.content)
        assert body["assistantId"] == "agent-1"
        assert body["transport"]["provider"] == "vapi.websocket"
        return httpx.Response(201, json={
            "id": "vcall", "transport": {"websocketCallUrl": "wss://vapi/ws/vcall"},
        })

    ws = AsyncMock()
    ws.recv.side_effect = ConnectionClosedOK(rcvd=Close(1000, ""), sent=None)
    client = VapiSignalingClient(http_client=mock_http(handler))

    with patch("websockets.connect", new=AsyncMock(return_value=ws)):
        channel = await client.open_channel("agent-1", credentials("vapi"))
        await channel.send_pong("1")
        events = await asyncio.wait_for(collect(channel), timeout=1)

    ws.send.assert_not_called()
    assert channel.call_id == "vcall"
    assert events[0].audio_format == PCM_16000


# Factory


def test_factory_returns_provider_clients():
    assert isinstance(create_signaling_client("elevenlabs"), ElevenLabsSignalingClient)
    assert isinstance(create_signaling_client("retell"), RetellSignalingClient)
    assert isinstance(create_signaling_client("vapi"), VapiSignalingClient)


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError, match="Unsupported provider"):
        create_signaling_client("twilio")
