"""
Audio codec utilities for telephony audio.

This module implements the pure transforms the engine needs: G.711 μ-law
companding in both directions, RIFF/WAVE framing of PCM16, linear resampling,
transcoding between the formats providers negotiate, and the framing and
pacing of outbound caller audio.

All PCM is signed 16-bit little-endian mono.
"""

import logging
import struct
from typing import Awaitable, Callable, Iterator

import numpy as np

from voiceqa.config.constants import LOGGER_NAME
from voiceqa.models.conversation import AudioFormat

logger = logging.getLogger(LOGGER_NAME)

ULAW_BIAS = 0x84
ULAW_CLIP = 32635
WAV_HEADER_SIZE = 44


def _build_decode_table() -> np.ndarray:
    table = np.zeros(256, dtype=np.int16)
    for byte in range(256):
        ulaw = ~byte & 0xFF
        sign = ulaw & 0x80
        exponent = (ulaw >> 4) & 0x07
        mantissa = ulaw & 0x0F
        sample = (((mantissa << 3) + ULAW_BIAS) << exponent) - ULAW_BIAS
        table[byte] = -sample if sign else sample
    return table


def _build_exponent_table() -> np.ndarray:
    # Position of the highest set bit of (biased sample >> 7)
    table = np.zeros(256, dtype=np.int32)
    for value in range(256):
        exponent = 0
        while value >> (exponent + 1):
            exponent += 1
        table[value] = exponent
    return table


ULAW_DECODE_TABLE = _build_decode_table()
ULAW_EXPONENT_TABLE = _build_exponent_table()


def ulaw_to_pcm16(data: bytes) -> bytes:
    """Decode μ-law bytes to PCM16 (two bytes per input byte)."""
    if not data:
        return b""
    codes = np.frombuffer(data, dtype=np.uint8)
    return ULAW_DECODE_TABLE[codes].astype("<i2").tobytes()


def pcm16_to_ulaw(data: bytes) -> bytes:
    """Encode PCM16 to μ-law with the same table geometry used for decoding."""
    if not data:
        return b""
    samples = np.frombuffer(data[: len(data) - len(data) % 2], dtype="<i2").astype(np.int32)
    sign = np.where(samples < 0, 0x80, 0x00)
    magnitude = np.minimum(np.abs(samples), ULAW_CLIP) + ULAW_BIAS
    exponent = ULAW_EXPONENT_TABLE[(magnitude >> 7) & 0xFF]
    mantissa = (magnitude >> (exponent + 3)) & 0x0F
    ulaw = ~(sign | (exponent << 4) | mantissa) & 0xFF
    return ulaw.astype(np.uint8).tobytes()


def wav_header(data_size: int, sample_rate: int = 8000, channels: int = 1,
               bits_per_sample: int = 16) -> bytes:
    """Build the 44-byte RIFF/WAVE header for ``data_size`` bytes of PCM."""
    byte_rate = sample_rate * channels * bits_per_sample // 8
    block_align = channels * bits_per_sample // 8
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,  # fmt chunk size for PCM
        1,  # PCM
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_size,
    )


def pcm16_to_wav(pcm: bytes, sample_rate: int = 8000) -> bytes:
    """Wrap mono PCM16 in a WAV container."""
    return wav_header(len(pcm), sample_rate) + pcm


def resample_pcm16(pcm: bytes, source_rate: int, target_rate: int) -> bytes:
    """Resample mono PCM16 by linear interpolation."""
    if source_rate == target_rate or not pcm:
        return pcm
    samples = np.frombuffer(pcm[: len(pcm) - len(pcm) % 2], dtype="<i2").astype(np.float64)
    if samples.size == 0:
        return b""
    target_length = max(1, int(round(samples.size * target_rate / source_rate)))
    source_positions = np.arange(samples.size)
    target_positions = np.linspace(0, samples.size - 1, target_length)
    resampled = np.interp(target_positions, source_positions, samples)
    return np.clip(np.round(resampled), -32768, 32767).astype("<i2").tobytes()


def to_pcm16(audio: bytes, audio_format: AudioFormat) -> bytes:
    """Decode audio in ``audio_format`` to whole PCM16 samples at the same sample rate."""
    if audio_format.encoding == "ulaw":
        return ulaw_to_pcm16(audio)
    # A trailing odd byte is half a sample
    return audio[: len(audio) - len(audio) % 2]


def transcode(audio: bytes, source: AudioFormat, target: AudioFormat) -> bytes:
    """Convert audio between two formats, resampling when the rates differ."""
    if source == target:
        return audio
    pcm = resample_pcm16(to_pcm16(audio, source), source.sample_rate, target.sample_rate)
    if target.encoding == "ulaw":
        return pcm16_to_ulaw(pcm)
    return pcm


def iter_frames(audio: bytes, frame_size: int) -> Iterator[bytes]:
    """Split audio into consecutive frames of at most ``frame_size`` bytes."""
    if frame_size <= 0:
        raise ValueError("frame_size must be positive")
    for offset in range(0, len(audio), frame_size):
        yield audio[offset:offset + frame_size]


async def send_paced(
    send: Callable[[bytes], Awaitable[None]],
    audio: bytes,
    audio_format: AudioFormat,
    sleep: Callable[[float], Awaitable[None]],
    frame_seconds: float = 1.0,
    frame_interval: float = 0.1,
    trailing_silence: float = 1.5,
) -> int:
    """
    Send audio as fixed-size frames with a small delay between them.

    Silence in ``audio_format`` is appended after the last frame so the remote
    voice-activity detector sees the end of speech.

    Args:
        send: Coroutine function delivering one frame to the channel
        audio: Audio already encoded in ``audio_format``
        audio_format: Format the remote side expects
        sleep: Coroutine function used for pacing (the session clock)
        frame_seconds: Duration of audio per frame
        frame_interval: Delay after each frame
        trailing_silence: Seconds of silence appended at the end

    Returns:
        int: Number of frames sent
    """
    payload = audio + audio_format.silence(trailing_silence)
    frame_size = max(audio_format.sample_width, int(audio_format.bytes_per_second * frame_seconds))
    frame_size -= frame_size % audio_format.sample_width
    frames = 0
    for frame in iter_frames(payload, frame_size):
        await send(frame)
        frames += 1
        await sleep(frame_interval)
    logger.debug(
        f"Sent {frames} frames ({len(audio)} bytes audio + "
        f"{len(payload) - len(audio)} bytes silence, {audio_format.tag})"
    )
    return frames
