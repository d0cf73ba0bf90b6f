"""
Audio module: codec and pacing helpers for telephony audio.

Key components:
- codec: μ-law/PCM16 conversion, WAV framing, resampling, transcoding and
  paced delivery of outbound audio frames.
"""

from voiceqa.audio.codec import (
    pcm16_to_ulaw,
    pcm16_to_wav,
    resample_pcm16,
    send_paced,
    transcode,
    ulaw_to_pcm16,
    wav_header,
)

__all__ = [
    "pcm16_to_ulaw",
    "pcm16_to_wav",
    "resample_pcm16",
    "send_paced",
    "transcode",
    "ulaw_to_pcm16",
    "wav_header",
]
