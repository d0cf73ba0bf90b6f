"""
Recording reconstruction from captured audio segments.
"""

import logging
import traceback
from typing import Awaitable, Callable, List, Optional

from voiceqa.audio.codec import pcm16_to_wav, resample_pcm16, to_pcm16
from voiceqa.config.constants import LOGGER_NAME
from voiceqa.models.conversation import AudioSegment, RecordingArtifact

logger = logging.getLogger(LOGGER_NAME)

MAX_RECORDING_BYTES = 10 * 1024 * 1024  # 10MB of raw captured audio

HostedRecordingFetcher = Callable[[], Awaitable[Optional[RecordingArtifact]]]


class RecordingAssembler:
    """Builds one playable WAV from the segments of both parties."""

    def __init__(self, max_bytes: int = MAX_RECORDING_BYTES):
        self.max_bytes = max_bytes

    def assemble(self, segments: List[AudioSegment]) -> Optional[RecordingArtifact]:
        """
        Concatenate segments in capture order into a WAV recording.

        Every segment is decoded to PCM16 and resampled to the rate of the
        first segment.

        Returns:
            RecordingArtifact or None when there is nothing to record or the
            captured audio is too large
        """
        segments = [s for s in segments if s.raw_bytes]
        if not segments:
            return None
        total = sum(len(s.raw_bytes) for s in segments)
        if total > self.max_bytes:
            logger.warning(f"Captured audio too large for a recording ({total} bytes), skipping")
            return None

        sample_rate = segments[0].audio_format.sample_rate
        pcm = b"".join(
            resample_pcm16(to_pcm16(s.raw_bytes, s.audio_format), s.audio_format.sample_rate, sample_rate)
            for s in segments
        )
        agent_bytes = sum(len(s.raw_bytes) for s in segments if s.role == "ai_agent")
        logger.info(
            f"Assembled recording from {len(segments)} segments: {len(pcm)} bytes PCM "
            f"({len(pcm) / 2 / sample_rate:.1f}s, agent {agent_bytes} / caller {total - agent_bytes} raw bytes)"
        )
        return RecordingArtifact(content_type="audio/wav", data=pcm16_to_wav(pcm, sample_rate))

    async def build(self, segments: List[AudioSegment],
                    fetch_hosted: Optional[HostedRecordingFetcher] = None) -> Optional[RecordingArtifact]:
        """Prefer the provider-hosted recording; fall back to assembling segments."""
        if fetch_hosted is not None:
            try:
                hosted = await fetch_hosted()
            except Exception as e:
                logger.warning(f"Hosted recording fetch failed: {e}")
                logger.debug(f"Hosted recording error details: {traceback.format_exc()}")
                hosted = None
            if hosted is not None:
                logger.info("Using provider-hosted recording")
                return hosted
        return self.assemble(segments)
