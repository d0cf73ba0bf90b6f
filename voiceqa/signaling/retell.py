"""
Retell adapter.

Setup creates a web call over REST; the audio websocket then carries raw PCM
frames in both directions and JSON control messages keyed by ``response_type``.
"""

import json
import logging
from typing import List, Optional, Union

from voiceqa.config.constants import (
    LOGGER_NAME,
    PROVIDER_RETELL,
    RETELL_API_BASE,
    RETELL_WS_BASE,
)
from voiceqa.models.conversation import PCM_16000, ProviderCredentials, RecordingArtifact
from voiceqa.models.events import AudioDelta, ChannelEvent, ChannelReady, ControlPing, TextDelta
from voiceqa.models.provider_schemas import (
    RetellAgentResponse,
    RetellConfig,
    RetellCreateCallResponse,
    RetellPingPong,
)
from voiceqa.signaling.base import ChannelHandle, SignalingClient, WebSocketChannel, parse_json

logger = logging.getLogger(LOGGER_NAME)

TURN_END_TYPES = {"turn_end", "agent_turn_end"}


class RetellChannel(WebSocketChannel):
    """Live channel on Retell's audio websocket."""

    provider = PROVIDER_RETELL

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Latest snapshot of the utterance the agent is speaking
        self._utterance = ""

    async def on_open(self) -> List[ChannelEvent]:
        await self.ws.send(RetellConfig().model_dump_json())
        logger.info(f"Connected to Retell: {self.call_id}")
        return [ChannelReady(call_id=self.call_id, audio_format=PCM_16000, output_format=PCM_16000)]

    def translate(self, message: Union[str, bytes]) -> List[ChannelEvent]:
        data = parse_json(message)
        if data is None:
            return [AudioDelta(data=message)]

        response_type = data.get("response_type")
        if response_type == "agent_response":
            return self._utterance_update(RetellAgentResponse(**data).content)
        elif response_type in TURN_END_TYPES:
            self._utterance = ""
            return []
        elif response_type == "ping_pong":
            timestamp = RetellPingPong(**data).timestamp
            return [ControlPing(ping_id=None if timestamp is None else str(timestamp))]
        logger.debug(f"Ignoring Retell message: {response_type}")
        return []

    def _utterance_update(self, content: str) -> List[ChannelEvent]:
        """
        Reduce a content snapshot to the text not yet emitted.

        Retell resends the whole utterance on every update; a snapshot that
        does not extend the previous one starts a new utterance.
        """
        previous, self._utterance = self._utterance, content
        if not content or content == previous:
            return []
        if previous and content.startswith(previous):
            return [TextDelta(text=content[len(previous):], continues=True)]
        return [TextDelta(text=content)]

    def encode_audio(self, audio: bytes) -> bytes:
        return audio

    def encode_pong(self, ping_id: Optional[str]) -> str:
        timestamp = int(ping_id) if ping_id and ping_id.isdigit() else ping_id
        return json.dumps({"response_type": "ping_pong", "timestamp": timestamp})

    async def fetch_recording(self) -> Optional[RecordingArtifact]:
        base = (self.credentials.base_url or RETELL_API_BASE).rstrip("/")
        data = await self._get_json(
            f"{base}/v2/get-call/{self.call_id}",
            headers={"Authorization": f"Bearer {self.credentials.api_key}"},
        )
        url = (data or {}).get("recording_url")
        return RecordingArtifact(content_type="audio/wav", url=url) if url else None


class RetellSignalingClient(SignalingClient):
    """Opens Retell web calls."""

    provider = PROVIDER_RETELL

    async def open_channel(self, agent_id: str, credentials: ProviderCredentials) -> ChannelHandle:
        base = (credentials.base_url or RETELL_API_BASE).rstrip("/")
        data = await self._request_json(
            "POST",
            f"{base}/v2/create-web-call",
            headers={"Authorization": f"Bearer {credentials.api_key}"},
            json={"agent_id": agent_id},
        )
        call = self._parse(RetellCreateCallResponse, data)
        ws = await self._connect(
            f"{RETELL_WS_BASE}/{call.call_id}",
            headers={"Authorization": f"Bearer {call.access_token}"},
        )
        channel = RetellChannel(ws, credentials, http_client=self.http_client(), call_id=call.call_id)
        channel.start()
        return channel
