"""
Provider tag → signaling client.
"""

from typing import Optional

import httpx

from voiceqa.config.constants import PROVIDER_ELEVENLABS, PROVIDER_RETELL, PROVIDER_VAPI
from voiceqa.signaling.base import SignalingClient
from voiceqa.signaling.elevenlabs import ElevenLabsSignalingClient
from voiceqa.signaling.retell import RetellSignalingClient
from voiceqa.signaling.vapi import VapiSignalingClient

SIGNALING_CLIENTS = {
    PROVIDER_ELEVENLABS: ElevenLabsSignalingClient,
    PROVIDER_RETELL: RetellSignalingClient,
    PROVIDER_VAPI: VapiSignalingClient,
}


def create_signaling_client(provider: str,
                            http_client: Optional[httpx.AsyncClient] = None) -> SignalingClient:
    """Return the signaling client for ``provider``."""
    client_class = SIGNALING_CLIENTS.get(provider)
    if client_class is None:
        raise ValueError(f"Unsupported provider: {provider}")
    return client_class(http_client=http_client)
