"""
Live channel abstraction shared by all provider adapters.

A ``SignalingClient`` opens a channel to the agent under test and returns a
``ChannelHandle``. The handle normalizes every provider message into the five
abstract events of ``voiceqa.models.events`` and accepts outbound audio and
pongs. ``WebSocketChannel`` implements the transport once; adapters only
translate messages.
"""

import asyncio
import json
import logging
import time
import traceback
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx
import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from voiceqa.config.constants import CLOSE_CODE_ABNORMAL, CLOSE_CODE_NORMAL, LOGGER_NAME
from voiceqa.models.conversation import ProviderCredentials, RecordingArtifact
from voiceqa.models.events import ChannelClosed, ChannelEvent

logger = logging.getLogger(LOGGER_NAME)

CONNECTION_TIMEOUT = 30  # seconds
HTTP_TIMEOUT = 30.0  # seconds
RECORDING_FETCH_DELAY = 2.0  # seconds, lets the provider finish processing the call

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32
WS_PING_INTERVAL = 20
EVENT_QUEUE_SIZE = 256


class ChannelSetupError(Exception):
    """Raised when a channel to the agent cannot be established."""


class ChannelHandle(ABC):
    """A live duplex channel to the agent under test."""

    call_id: str = ""

    @abstractmethod
    def events(self) -> AsyncIterator[ChannelEvent]:
        """Yield normalized events; the last one is always ``ChannelClosed``."""

    @abstractmethod
    async def send_audio(self, audio: bytes) -> None:
        """Send one frame of caller audio."""

    @abstractmethod
    async def send_pong(self, ping_id: Optional[str]) -> None:
        """Answer a ``ControlPing``."""

    @abstractmethod
    async def close(self) -> None:
        """Close the channel; a ``ChannelClosed`` event follows."""

    async def fetch_recording(self) -> Optional[RecordingArtifact]:
        """Fetch the provider-hosted recording, if the provider offers one."""
        return None


class SignalingClient(ABC):
    """Opens live channels for one provider."""

    provider: str = ""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http = http_client
        self._owns_http = http_client is None

    def http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if this signaling client created it."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    @abstractmethod
    async def open_channel(self, agent_id: str, credentials: ProviderCredentials) -> ChannelHandle:
        """
        Open a live channel to ``agent_id``.

        Raises:
            ChannelSetupError: If credentials or signaling are rejected
        """

    async def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Perform a setup request, mapping every failure to ChannelSetupError."""
        try:
            response = await self.http_client().request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ChannelSetupError(f"{self.provider} setup request failed: {e}") from e
        if response.status_code >= 400:
            raise ChannelSetupError(
                f"{self.provider} setup rejected ({response.status_code}): {response.text}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise ChannelSetupError(f"{self.provider} returned invalid JSON") from e

    def _parse(self, model, data: Dict[str, Any]):
        """Validate a setup response, mapping schema errors to ChannelSetupError."""
        try:
            return model(**data)
        except ValidationError as e:
            raise ChannelSetupError(f"{self.provider} returned an unexpected response: {e}") from e

    async def _connect(self, url: str, headers: Optional[Dict[str, str]] = None):
        """Open the websocket with the low-latency settings used for audio."""
        try:
            connection_start = time.time()
            ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=CONNECTION_TIMEOUT,
            )
        except asyncio.TimeoutError as e:
            raise ChannelSetupError(
                f"Timeout while connecting to {self.provider} (after {CONNECTION_TIMEOUT}s)"
            ) from e
        except Exception as e:
            logger.debug(f"Connection error details: {traceback.format_exc()}")
            raise ChannelSetupError(f"Failed to connect to {self.provider}: {e}") from e
        logger.debug(f"WebSocket connection established in {time.time() - connection_start:.2f} seconds")
        return ws


class WebSocketChannel(ChannelHandle):
    """
    Channel over a websocket connection.

    Subclasses implement ``translate`` (incoming message → events),
    ``encode_audio`` and ``encode_pong``.
    """

    provider = ""

    def __init__(self, ws, credentials: ProviderCredentials,
                 http_client: Optional[httpx.AsyncClient] = None, call_id: str = ""):
        self.ws = ws
        self.credentials = credentials
        self.call_id = call_id
        self._http = http_client
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)
        self._recv_task: Optional[asyncio.Task] = None
        self._is_closing = False
        self._closed_emitted = False
        self.message_count = 0
        self.recording_fetch_delay = RECORDING_FETCH_DELAY

    def start(self) -> None:
        """Start the receive loop; called by the client once setup succeeded."""
        self._recv_task = asyncio.create_task(self._recv_loop())

    async def on_open(self) -> List[ChannelEvent]:
        """Hook for providers that need a handshake message; returns initial events."""
        return []

    @abstractmethod
    def translate(self, message: Union[str, bytes]) -> List[ChannelEvent]:
        """Map one raw provider message to zero or more abstract events."""

    @abstractmethod
    def encode_audio(self, audio: bytes) -> Union[str, bytes]:
        """Wire form of one outbound audio frame."""

    @abstractmethod
    def encode_pong(self, ping_id: Optional[str]) -> Union[str, bytes]:
        """Wire form of a pong."""

    async def events(self) -> AsyncIterator[ChannelEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, ChannelClosed):
                return

    async def send_audio(self, audio: bytes) -> None:
        await self._send(self.encode_audio(audio))

    async def send_pong(self, ping_id: Optional[str]) -> None:
        await self._send(self.encode_pong(ping_id))

    async def _send(self, payload: Union[str, bytes]) -> None:
        if self._is_closing:
            logger.debug("Dropping outbound message - channel is closing")
            return
        try:
            await asyncio.wait_for(self.ws.send(payload), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout while sending to {self.provider}")
        except ConnectionClosed as e:
            logger.warning(f"Connection closed while sending to {self.provider}: {e}")

    async def close(self) -> None:
        if self._is_closing:
            return
        logger.info(f"Closing {self.provider} channel {self.call_id}")
        self._is_closing = True
        try:
            await self.ws.close()
        except Exception as e:
            logger.warning(f"Error closing {self.provider} websocket: {e}")
        if self._recv_task is None or self._recv_task.done():
            await self._emit_closed(CLOSE_CODE_NORMAL, "closed by caller")

    async def _emit_closed(self, code: int, reason: str) -> None:
        if self._closed_emitted:
            return
        self._closed_emitted = True
        await self._queue.put(ChannelClosed(code=code, reason=reason))

    async def _recv_loop(self) -> None:
        """Receive provider messages and queue their normalized events."""
        code, reason = CLOSE_CODE_NORMAL, ""
        try:
            for event in await self.on_open():
                await self._queue.put(event)
            while True:
                message = await self.ws.recv()
                self.message_count += 1
                try:
                    events = self.translate(message)
                except (ValidationError, ValueError) as e:
                    logger.warning(f"Dropping malformed {self.provider} message: {e}")
                    continue
                for event in events:
                    await self._queue.put(event)
        except ConnectionClosedOK as e:
            logger.info(f"{self.provider} connection closed normally")
            code, reason = _close_details(e, CLOSE_CODE_NORMAL)
        except ConnectionClosed as e:
            code, reason = _close_details(e, CLOSE_CODE_ABNORMAL)
            logger.warning(f"{self.provider} connection closed unexpectedly: {code} {reason}")
        except asyncio.CancelledError:
            code, reason = CLOSE_CODE_NORMAL, "receive loop cancelled"
            raise
        except Exception as e:
            logger.error(f"Error in {self.provider} receive loop: {e}")
            logger.debug(f"Receive loop error details: {traceback.format_exc()}")
            code, reason = CLOSE_CODE_ABNORMAL, str(e)
        finally:
            if not self._closed_emitted:
                self._closed_emitted = True
                self._queue.put_nowait(ChannelClosed(code=code, reason=reason))
            logger.info(f"{self.provider} receive loop exited after {self.message_count} messages")

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._http

    async def _get_json(self, url: str, headers: Dict[str, str]) -> Optional[Dict[str, Any]]:
        """Best-effort GET used after the call; failures yield None."""
        try:
            await asyncio.sleep(self.recording_fetch_delay)
            response = await self._http_client().get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {self.provider} call data: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Failed to fetch {self.provider} call data: {response.status_code}")
            return None
        try:
            return response.json()
        except ValueError:
            return None


def _close_details(error: ConnectionClosed, default_code: int):
    frame = getattr(error, "rcvd", None)
    if frame is None:
        return default_code, ""
    return frame.code, frame.reason


def parse_json(message: Union[str, bytes]) -> Optional[Dict[str, Any]]:
    """Decode a text frame; returns None for binary payloads that are not a JSON object."""
    if isinstance(message, bytes):
        if not message.startswith(b"{"):
            return None
        try:
            data = json.loads(message.decode("utf-8"))
        except ValueError:
            # Raw audio that happens to start with "{"
            return None
        return data if isinstance(data, dict) else None
    data = json.loads(message)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data
