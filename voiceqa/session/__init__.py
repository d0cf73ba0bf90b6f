"""
Session module: one live conversation from first event to final result.

Key components:
- conversation: ConversationSession, the turn-taking state machine.
- termination: TerminationPolicy, end-of-call detection from the agent's words.
- recording: RecordingAssembler, WAV reconstruction from captured segments.
- clock: Clock interface with asyncio and manual (test) implementations.
"""

from voiceqa.session.clock import AsyncioClock, Clock, ManualClock
from voiceqa.session.conversation import ConversationSession
from voiceqa.session.recording import RecordingAssembler
from voiceqa.session.termination import TerminationPolicy

__all__ = [
    "AsyncioClock",
    "Clock",
    "ConversationSession",
    "ManualClock",
    "RecordingAssembler",
    "TerminationPolicy",
]
