"""
Turn-taking state machine for one live conversation.

A ``ConversationSession`` consumes the abstract events of a channel, decides
when the agent has finished speaking (a silence timer re-armed on every
delta), asks the synthetic caller brain for a reply, voices it through TTS and
streams it back at real-time pace. It ends when the agent says goodbye, when
the channel closes, or when a watchdog or the hard session timeout fires, and
is then reduced to exactly one ``ConversationResult``.

All mutation happens on the event loop, either while dispatching a channel
event or inside a timer callback. The brain/TTS/send work of one turn runs as
a single task guarded by ``_processing``.
"""

import asyncio
import logging
import traceback
from typing import Awaitable, Callable, Dict, List, Optional

from voiceqa.audio.codec import send_paced
from voiceqa.brain.caller_brain import ReplyMode, SyntheticCallerBrain
from voiceqa.brain.prompts import FALLBACK_GOODBYE, NEUTRAL_OPENER
from voiceqa.config.constants import LOGGER_NAME, ROLE_AI_AGENT, ROLE_TEST_CALLER
from voiceqa.config.settings import SessionTimings
from voiceqa.models.conversation import (
    PCM_16000,
    AudioFormat,
    AudioSegment,
    ConversationResult,
    ConversationTurn,
    SessionState,
)
from voiceqa.models.events import AudioDelta, ChannelClosed, ChannelReady, ControlPing, TextDelta
from voiceqa.services.tts import SpeechSynthesizer
from voiceqa.session.clock import AsyncioClock, Clock, TimerHandle
from voiceqa.session.recording import RecordingAssembler
from voiceqa.session.termination import TerminationPolicy
from voiceqa.signaling.base import ChannelHandle

logger = logging.getLogger(LOGGER_NAME)

TIMER_GREETING = "greeting"
TIMER_SILENCE = "silence"
TIMER_WATCHDOG = "watchdog"
TIMER_SESSION = "session_timeout"
TIMER_CLOSE = "close"


class ConversationSession:
    """
    Drives one conversation between the synthetic caller and the agent.

    Args:
        channel: Open channel to the agent under test
        brain: Synthetic caller that writes the caller's lines
        tts: Speech synthesizer for the caller's voice
        clock: Time source for every timer and pacing delay
        timings: Timer durations and turn limits
        policy: End-of-call detection; built from ``timings`` when omitted
        assembler: Builds the recording when the provider hosts none
    """

    def __init__(
        self,
        channel: ChannelHandle,
        brain: SyntheticCallerBrain,
        tts: SpeechSynthesizer,
        clock: Optional[Clock] = None,
        timings: Optional[SessionTimings] = None,
        policy: Optional[TerminationPolicy] = None,
        assembler: Optional[RecordingAssembler] = None,
    ):
        self.channel = channel
        self.brain = brain
        self.tts = tts
        self.clock = clock or AsyncioClock()
        self.timings = timings or SessionTimings()
        self.policy = policy or TerminationPolicy(
            min_turns=self.timings.min_turns,
            soft_turns=self.timings.soft_turns,
            max_turns=self.timings.max_turns,
        )
        self.assembler = assembler or RecordingAssembler()

        self.state = SessionState.CONNECTING
        self.call_id = channel.call_id
        self.input_format: AudioFormat = PCM_16000
        self.output_format: AudioFormat = PCM_16000
        self.transcript: List[ConversationTurn] = []
        self.audio_segments: List[AudioSegment] = []
        self.turn_count = 0
        self.close_code: Optional[int] = None
        self.end_reason = ""

        self._text_buffer: List[str] = []
        self._audio_buffer = bytearray()
        self._agent_heard = False
        self._timers: Dict[str, TimerHandle] = {}
        self._processing = False
        self._work_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._terminate = asyncio.Event()
        self._started_ms = 0
        self.result: Optional[ConversationResult] = None

    @property
    def finalized(self) -> bool:
        return self.state == SessionState.FINALIZED

    async def run(self) -> ConversationResult:
        """Run the conversation to completion and return its single result."""
        if self.result is not None:
            return self.result
        self._started_ms = self.clock.now_ms()
        logger.info(f"Starting conversation session {self.call_id or '(pending call id)'}")
        self._arm(TIMER_SESSION, self.timings.session_timeout, self._on_session_timeout)
        self._pump_task = asyncio.create_task(self._pump())
        try:
            await self._terminate.wait()
        finally:
            self.result = await self._finalize()
        return self.result

    # Event handling

    async def _pump(self) -> None:
        try:
            async for event in self.channel.events():
                await self.handle_event(event)
                if self.finalized:
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error while reading channel events: {e}")
            logger.debug(f"Channel event error details: {traceback.format_exc()}")
            self._request_finalize(f"channel error: {e}")
            return
        self._request_finalize("channel event stream ended")

    async def handle_event(self, event) -> None:
        """Apply one abstract channel event to the session."""
        if self.finalized:
            logger.debug(f"Ignoring {event.kind} after finalization")
            return
        if isinstance(event, ChannelReady):
            self._on_channel_ready(event)
        elif isinstance(event, TextDelta):
            self._on_text_delta(event)
        elif isinstance(event, AudioDelta):
            self._on_audio_delta(event)
        elif isinstance(event, ControlPing):
            await self.channel.send_pong(event.ping_id)
        elif isinstance(event, ChannelClosed):
            self._on_channel_closed(event)
        else:
            logger.warning(f"Unknown channel event: {event!r}")

    def _on_channel_ready(self, event: ChannelReady) -> None:
        self.input_format = event.audio_format
        self.output_format = event.output_format or event.audio_format
        if event.call_id:
            self.call_id = event.call_id
        logger.info(
            f"Channel ready: call {self.call_id}, caller audio {self.input_format.tag}, "
            f"agent audio {self.output_format.tag}"
        )
        if self.state == SessionState.CONNECTING:
            self.state = SessionState.AWAITING_GREETING
            self._arm(TIMER_GREETING, self.timings.greeting_grace, self._on_greeting_grace)

    def _accepts_agent_input(self, role: str) -> bool:
        if role != ROLE_AI_AGENT:
            return False
        if self.state == SessionState.CLOSING:
            logger.debug("Ignoring agent input while closing")
            return False
        return True

    def _on_text_delta(self, event: TextDelta) -> None:
        if not self._accepts_agent_input(event.role):
            return
        if event.continues and self._text_buffer:
            self._text_buffer[-1] += event.text
        elif event.text.strip():
            self._text_buffer.append(event.text.strip())
        if event.text.strip():
            # Only a transcript counts as a response to the caller
            self._cancel_timer(TIMER_WATCHDOG)
            self._on_agent_signal(self.timings.text_silence)

    def _on_audio_delta(self, event: AudioDelta) -> None:
        if not self._accepts_agent_input(event.role) or not event.data:
            return
        self._audio_buffer.extend(event.data)
        self._on_agent_signal(self.timings.audio_silence)

    def _on_agent_signal(self, silence: float) -> None:
        self._agent_heard = True
        self._cancel_timer(TIMER_GREETING)
        if not self._processing:
            self.state = SessionState.LISTENING_TO_AGENT
        self._arm(TIMER_SILENCE, silence, self._on_silence)

    def _on_channel_closed(self, event: ChannelClosed) -> None:
        self.close_code = event.code
        if event.is_normal:
            logger.info(f"Channel closed ({event.code}) {event.reason}".rstrip())
        else:
            logger.warning(f"Channel closed abnormally ({event.code}) {event.reason}".rstrip())
        self._request_finalize(f"channel closed ({event.code})")

    # Timers

    def _arm(self, name: str, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        self._cancel_timer(name)
        if self.finalized:
            return
        self._timers[name] = self.clock.call_later(delay, callback, name=name)

    def _cancel_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    async def _on_greeting_grace(self) -> None:
        if self.finalized or self._agent_heard or self._processing:
            return
        logger.info(f"Agent silent for {self.timings.greeting_grace}s, sending opener")
        self._start_work(self._send_opener())

    async def _on_silence(self) -> None:
        self._timers.pop(TIMER_SILENCE, None)
        if self.finalized or self._processing or self.state == SessionState.CLOSING:
            return
        if not self._text_buffer:
            # Audio without transcript is kept for the next turn
            return
        self._start_work(self._process_agent_turn())

    async def _on_watchdog(self) -> None:
        self._timers.pop(TIMER_WATCHDOG, None)
        if self.finalized or self._processing or self._text_buffer:
            return
        logger.warning(f"No agent response for {self.timings.agent_response_timeout}s, closing")
        self.state = SessionState.CLOSING
        self.end_reason = "agent stopped responding"
        await self.channel.close()
        self._request_finalize(self.end_reason)

    async def _on_session_timeout(self) -> None:
        logger.warning(f"Session timeout after {self.timings.session_timeout}s")
        self._request_finalize("session timeout")

    async def _on_close_delay(self) -> None:
        await self.channel.close()
        self._request_finalize("closed after goodbye")

    # Turn processing

    def _start_work(self, coro) -> None:
        self._processing = True
        self._work_task = asyncio.create_task(self._run_work(coro))

    async def _run_work(self, coro) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error while processing turn: {e}")
            logger.debug(f"Turn error details: {traceback.format_exc()}")
        finally:
            self._processing = False
        if self.finalized or self.state == SessionState.CLOSING:
            return
        if self._text_buffer:
            # Agent kept talking while we were busy
            self._arm(TIMER_SILENCE, self.timings.text_silence, self._on_silence)

    async def _send_opener(self) -> None:
        self.state = SessionState.SENDING_CALLER_AUDIO
        await self._speak(NEUTRAL_OPENER)
        if not self.finalized and self.state == SessionState.SENDING_CALLER_AUDIO:
            self.state = SessionState.LISTENING_TO_AGENT

    async def _process_agent_turn(self) -> None:
        self.state = SessionState.PROCESSING_AGENT_TURN
        agent_text = self._flush_agent_buffer()
        logger.info(f"Agent turn {self.turn_count}: {agent_text}")

        if self.policy.should_end(agent_text, self.turn_count):
            self.end_reason = "agent ended the call"
            self.state = SessionState.CLOSING
            goodbye = await self._generate(ReplyMode.CLOSING)
            if self.finalized:
                return
            self._add_turn(ROLE_TEST_CALLER, goodbye)
            await self._speak(goodbye)
            if self.finalized:
                return
            self._arm(TIMER_CLOSE, self.timings.close_delay, self._on_close_delay)
            return

        self.state = SessionState.AWAITING_CALLER_REPLY
        reply = await self._generate(ReplyMode.NORMAL)
        if self.finalized:
            logger.debug("Discarding caller reply generated after finalization")
            return
        self._add_turn(ROLE_TEST_CALLER, reply)
        self.state = SessionState.SENDING_CALLER_AUDIO
        await self._speak(reply)
        if self.finalized:
            return
        self.state = SessionState.LISTENING_TO_AGENT
        self._arm(TIMER_WATCHDOG, self.timings.agent_response_timeout, self._on_watchdog)

    async def _generate(self, mode: ReplyMode) -> str:
        try:
            return await self.brain.generate_reply(mode, self.turn_count)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Caller brain failed: {e}")
            logger.debug(f"Caller brain error details: {traceback.format_exc()}")
            if mode == ReplyMode.CLOSING:
                return FALLBACK_GOODBYE
            return self.brain.fallback_line(self.turn_count)

    async def _speak(self, text: str) -> bool:
        """Synthesize ``text`` and stream it to the agent; False if TTS never succeeded."""
        audio = b""
        attempts = self.timings.max_tts_attempts
        for attempt in range(1, attempts + 1):
            try:
                audio = await self.tts.synthesize(text, self.input_format)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"TTS error (attempt {attempt}/{attempts}): {e}")
                audio = b""
            if audio or self.finalized:
                break
            if attempt < attempts:
                await self.clock.sleep(self.timings.retry_delay)

        if self.finalized:
            return False
        if not audio:
            logger.warning(f"Could not synthesize caller audio, agent will not hear: {text}")
            return False

        self.audio_segments.append(
            AudioSegment(role=ROLE_TEST_CALLER, raw_bytes=audio, audio_format=self.input_format)
        )
        frames = await send_paced(
            self.channel.send_audio,
            audio,
            self.input_format,
            self.clock.sleep,
            frame_seconds=self.timings.frame_seconds,
            frame_interval=self.timings.frame_interval,
            trailing_silence=self.timings.trailing_silence,
        )
        logger.info(f"Sent caller audio in {frames} frames: {text}")
        return True

    # Transcript bookkeeping

    def _flush_agent_buffer(self, skip_repeat: bool = False) -> str:
        """Move buffered agent speech into the transcript and the audio segments."""
        text = " ".join(fragment.strip() for fragment in self._text_buffer).strip()
        audio = bytes(self._audio_buffer)
        self._text_buffer.clear()
        self._audio_buffer.clear()

        duration_ms = None
        if audio:
            self.audio_segments.append(
                AudioSegment(role=ROLE_AI_AGENT, raw_bytes=audio, audio_format=self.output_format)
            )
            duration_ms = int(len(audio) * 1000 / self.output_format.bytes_per_second)
        if not text:
            return text
        if skip_repeat and self.transcript and self.transcript[-1].role == ROLE_AI_AGENT \
                and self.transcript[-1].content == text:
            return text

        self.turn_count += 1
        self._add_turn(ROLE_AI_AGENT, text, duration_ms)
        self.brain.record_agent_line(text)
        return text

    def _add_turn(self, role: str, content: str, duration_ms: Optional[int] = None) -> None:
        self.transcript.append(ConversationTurn(
            role=role,
            content=content,
            timestamp_ms=self.clock.now_ms() - self._started_ms,
            duration_ms=duration_ms,
        ))

    # Finalization

    def _request_finalize(self, reason: str) -> None:
        if self.finalized:
            return
        logger.info(f"Finalizing session {self.call_id}: {reason}")
        if not self.end_reason:
            self.end_reason = reason
        self.state = SessionState.FINALIZED
        for name in list(self._timers):
            self._cancel_timer(name)
        self._terminate.set()

    async def _finalize(self) -> ConversationResult:
        self._request_finalize("session stopped")

        for task in (self._work_task, self._pump_task):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._processing = False
        await self.channel.close()

        self._flush_agent_buffer(skip_repeat=True)
        has_agent = any(t.role == ROLE_AI_AGENT for t in self.transcript)
        has_caller = any(t.role == ROLE_TEST_CALLER for t in self.transcript)
        if has_agent and not has_caller:
            line = await self._generate(ReplyMode.NORMAL)
            self._add_turn(ROLE_TEST_CALLER, line)
            logger.info(f"Added final caller line: {line}")

        recording = await self.assembler.build(self.audio_segments, self.channel.fetch_recording)
        duration_ms = self.clock.now_ms() - self._started_ms
        if not self.transcript:
            logger.warning(f"Session {self.call_id} captured no conversation ({self.end_reason})")
        result = ConversationResult.from_transcript(
            call_id=self.call_id,
            duration_ms=duration_ms,
            transcript=self.transcript,
            recording=recording,
        )
        logger.info(
            f"Session {self.call_id} finished after {duration_ms}ms: {len(self.transcript)} turns, "
            f"{self.turn_count} agent turns, success={result.success} ({self.end_reason})"
        )
        return result
