"""
ElevenLabs Conversational AI adapter.

Setup fetches a signed websocket URL for the agent; the channel then speaks
the ElevenLabs event protocol (``conversation_initiation_metadata``,
``agent_response``, ``audio``, ``ping`` ...).
"""

import base64
import json
import logging
from typing import List, Optional, Union

from voiceqa.config.constants import (
    AUDIO_FORMAT_PCM_16000,
    ELEVENLABS_API_BASE,
    LOGGER_NAME,
    MESSAGE_TYPE_AGENT_RESPONSE,
    MESSAGE_TYPE_AUDIO,
    MESSAGE_TYPE_INITIATION_METADATA,
    MESSAGE_TYPE_PING,
    PROVIDER_ELEVENLABS,
)
from voiceqa.models.conversation import AudioFormat, ProviderCredentials, RecordingArtifact
from voiceqa.models.events import AudioDelta, ChannelEvent, ChannelReady, ControlPing, TextDelta
from voiceqa.models.provider_schemas import (
    ElevenLabsAgentResponse,
    ElevenLabsAudio,
    ElevenLabsInitiationMetadata,
    ElevenLabsPing,
    ElevenLabsPong,
    ElevenLabsUserAudioChunk,
    SignedUrlResponse,
)
from voiceqa.signaling.base import ChannelHandle, SignalingClient, WebSocketChannel, parse_json

logger = logging.getLogger(LOGGER_NAME)

# Message types that carry nothing the session needs
IGNORED_MESSAGE_TYPES = {
    "user_transcript",
    "interruption",
    "agent_response_correction",
    "internal_tentative_agent_response",
    "vad_score",
    "client_tool_call",
}

END_MESSAGE_TYPES = {"conversation_ended", "end", "session_end", "call_ended"}


class ElevenLabsChannel(WebSocketChannel):
    """Live channel speaking the ElevenLabs Conversational AI protocol."""

    provider = PROVIDER_ELEVENLABS

    def translate(self, message: Union[str, bytes]) -> List[ChannelEvent]:
        data = parse_json(message)
        if data is None:
            # Raw binary is agent audio
            return [AudioDelta(data=message)]

        message_type = data.get("type")
        if message_type == MESSAGE_TYPE_INITIATION_METADATA:
            metadata = ElevenLabsInitiationMetadata(**data)
            self.call_id = metadata.call_id
            input_format = AudioFormat.parse(
                metadata.metadata.user_input_audio_format, AUDIO_FORMAT_PCM_16000
            )
            output_format = AudioFormat.parse(
                metadata.metadata.agent_output_audio_format, input_format.tag
            )
            logger.info(
                f"Conversation started: {self.call_id} "
                f"(input {input_format.tag}, output {output_format.tag})"
            )
            return [ChannelReady(call_id=self.call_id, audio_format=input_format,
                                 output_format=output_format)]
        elif message_type == MESSAGE_TYPE_AGENT_RESPONSE:
            text = ElevenLabsAgentResponse(**data).content
            return [TextDelta(text=text)] if text else []
        elif message_type in (MESSAGE_TYPE_AUDIO, "audio_event"):
            audio = ElevenLabsAudio(**data).audio
            return [AudioDelta(data=audio)] if audio else []
        elif message_type == MESSAGE_TYPE_PING:
            return [ControlPing(ping_id=ElevenLabsPing(**data).ping_id)]
        elif message_type in END_MESSAGE_TYPES:
            logger.info(f"Conversation end event received: {message_type}")
        elif message_type in IGNORED_MESSAGE_TYPES:
            logger.debug(f"Ignoring {message_type}: {json.dumps(data)[:200]}")
        else:
            logger.debug(f"Unknown message type: {message_type}")
        return []

    def encode_audio(self, audio: bytes) -> str:
        encoded = base64.b64encode(audio).decode("utf-8")
        return ElevenLabsUserAudioChunk(user_audio_chunk=encoded).model_dump_json()

    def encode_pong(self, ping_id: Optional[str]) -> str:
        event_id = int(ping_id) if ping_id is not None and ping_id.isdigit() else ping_id
        return ElevenLabsPong(event_id=event_id).model_dump_json()

    async def fetch_recording(self) -> Optional[RecordingArtifact]:
        if not self.call_id:
            return None
        base = (self.credentials.base_url or ELEVENLABS_API_BASE).rstrip("/")
        data = await self._get_json(
            f"{base}/v1/convai/conversations/{self.call_id}",
            headers={"xi-api-key": self.credentials.api_key},
        )
        url = ((data or {}).get("metadata") or {}).get("recording_url")
        return RecordingArtifact(content_type="audio/mpeg", url=url) if url else None


class ElevenLabsSignalingClient(SignalingClient):
    """Opens ElevenLabs Conversational AI channels."""

    provider = PROVIDER_ELEVENLABS

    async def open_channel(self, agent_id: str, credentials: ProviderCredentials) -> ChannelHandle:
        base = (credentials.base_url or ELEVENLABS_API_BASE).rstrip("/")
        logger.info(f"Getting signed URL for agent: {agent_id}")
        data = await self._request_json(
            "GET",
            f"{base}/v1/convai/conversation/get_signed_url",
            params={"agent_id": agent_id},
            headers={"xi-api-key": credentials.api_key},
        )
        signed = self._parse(SignedUrlResponse, data)
        ws = await self._connect(signed.signed_url)
        channel = ElevenLabsChannel(ws, credentials, http_client=self.http_client())
        channel.start()
        return channel
