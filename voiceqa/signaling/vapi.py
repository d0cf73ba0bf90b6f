"""
VAPI adapter.

Setup creates a call with a websocket transport; the socket carries raw
16 kHz PCM both ways and JSON status/transcript messages.
"""

import logging
from typing import List, Optional, Union

from voiceqa.config.constants import LOGGER_NAME, PROVIDER_VAPI, VAPI_API_BASE
from voiceqa.models.conversation import PCM_16000, ProviderCredentials, RecordingArtifact
from voiceqa.models.events import AudioDelta, ChannelEvent, ChannelReady, TextDelta
from voiceqa.models.provider_schemas import VapiCreateCallResponse, VapiTranscript
from voiceqa.signaling.base import ChannelHandle, SignalingClient, WebSocketChannel, parse_json

logger = logging.getLogger(LOGGER_NAME)


class VapiChannel(WebSocketChannel):
    """Live channel on a VAPI websocket transport."""

    provider = PROVIDER_VAPI

    async def on_open(self) -> List[ChannelEvent]:
        return [ChannelReady(call_id=self.call_id, audio_format=PCM_16000, output_format=PCM_16000)]

    def translate(self, message: Union[str, bytes]) -> List[ChannelEvent]:
        data = parse_json(message)
        if data is None:
            return [AudioDelta(data=message)]

        if data.get("type") == "transcript":
            transcript = VapiTranscript(**data)
            if transcript.is_final_assistant and transcript.transcript:
                return [TextDelta(text=transcript.transcript)]
        else:
            logger.debug(f"Ignoring VAPI message: {data.get('type')}")
        return []

    def encode_audio(self, audio: bytes) -> bytes:
        return audio

    def encode_pong(self, ping_id: Optional[str]) -> bytes:
        # VAPI keeps the socket alive with protocol-level pings only
        return b""

    async def send_pong(self, ping_id: Optional[str]) -> None:
        logger.debug("VAPI does not use application pings")

    async def fetch_recording(self) -> Optional[RecordingArtifact]:
        base = (self.credentials.base_url or VAPI_API_BASE).rstrip("/")
        data = await self._get_json(
            f"{base}/call/{self.call_id}",
            headers={"Authorization": f"Bearer {self.credentials.api_key}"},
        ) or {}
        url = data.get("recordingUrl") or (data.get("artifact") or {}).get("recordingUrl")
        return RecordingArtifact(content_type="audio/wav", url=url) if url else None


class VapiSignalingClient(SignalingClient):
    """Opens VAPI calls over the websocket transport."""

    provider = PROVIDER_VAPI

    async def open_channel(self, agent_id: str, credentials: ProviderCredentials) -> ChannelHandle:
        base = (credentials.base_url or VAPI_API_BASE).rstrip("/")
        data = await self._request_json(
            "POST",
            f"{base}/call",
            headers={"Authorization": f"Bearer {credentials.api_key}"},
            json={
                "assistantId": agent_id,
                "transport": {
                    "provider": "vapi.websocket",
                    "audioFormat": {"format": "pcm_s16le", "container": "raw", "sampleRate": 16000},
                },
            },
        )
        call = self._parse(VapiCreateCallResponse, data)
        ws = await self._connect(call.transport.websocketCallUrl)
        channel = VapiChannel(ws, credentials, http_client=self.http_client(), call_id=call.id)
        channel.start()
        return channel
