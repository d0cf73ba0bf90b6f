"""
Signaling module: live channels to the voice agent under test.

Every provider reduces its own message set to the same five abstract events
(``ChannelReady``, ``TextDelta``, ``AudioDelta``, ``ControlPing``,
``ChannelClosed``) so the conversation session never sees provider details.

Key components:
- base: ChannelHandle / SignalingClient interfaces, the shared websocket
  transport and ChannelSetupError.
- elevenlabs, retell, vapi: One adapter per provider.
- factory: Maps a provider tag to its signaling client.

Usage examples:
```python
from voiceqa.signaling import create_signaling_client

client = create_signaling_client(credentials.provider)
channel = await client.open_channel(credentials.agent_id, credentials)
async for event in channel.events():
    ...
```
"""

from voiceqa.signaling.base import ChannelHandle, ChannelSetupError, SignalingClient
from voiceqa.signaling.factory import create_signaling_client

__all__ = ["ChannelHandle", "ChannelSetupError", "SignalingClient", "create_signaling_client"]
