"""
End-of-call detection from the agent's language.

Only the agent can end the conversation: the caller never volunteers a
goodbye. Pattern matching over free LLM text is approximate; false positives
and negatives are an accepted limitation.
"""

import logging
import re
from typing import List, Optional, Pattern

from voiceqa.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

FINAL_FAREWELL_PATTERNS: List[Pattern] = [
    re.compile(r"\bgoodbye\b", re.IGNORECASE),
    re.compile(r"\bbye\s*bye\b", re.IGNORECASE),
    re.compile(r"\bbye[.!]?\s*$", re.IGNORECASE),
    re.compile(r"take care[.!,]?\s*(bye|goodbye)?", re.IGNORECASE),
    re.compile(r"have a (great|good|nice|wonderful) (day|one)[.!]?\s*$", re.IGNORECASE),
    re.compile(r"thank you.*\bbye\b", re.IGNORECASE),
    re.compile(r"thanks.*\bbye\b", re.IGNORECASE),
]

SOFT_WRAP_UP_PATTERNS: List[Pattern] = [
    re.compile(r"is there anything else I can help", re.IGNORECASE),
    re.compile(r"can I help you with anything else", re.IGNORECASE),
    re.compile(r"do you have any other questions", re.IGNORECASE),
    re.compile(r"anything else (you need|I can assist)", re.IGNORECASE),
]


class TerminationPolicy:
    """
    Decides whether the agent's latest utterance ends the call.

    Args:
        min_turns: No ending before this many agent turns
        soft_turns: From this many agent turns, soft wrap-ups also end the call
        max_turns: Safety ceiling; always end once reached
    """

    def __init__(self, min_turns: int = 4, soft_turns: int = 8, max_turns: int = 30):
        self.min_turns = min_turns
        self.soft_turns = soft_turns
        self.max_turns = max_turns

    def ending_reason(self, agent_message: str, turn_count: int) -> Optional[str]:
        """Return why the call should end, or None to keep going."""
        if turn_count >= self.max_turns:
            return f"safety max turns ({self.max_turns}) reached"
        if turn_count < self.min_turns:
            return None
        for pattern in FINAL_FAREWELL_PATTERNS:
            if pattern.search(agent_message):
                return f"agent said final goodbye ({pattern.pattern})"
        if turn_count >= self.soft_turns:
            for pattern in SOFT_WRAP_UP_PATTERNS:
                if pattern.search(agent_message):
                    return f"soft ending after {turn_count} turns ({pattern.pattern})"
        return None

    def should_end(self, agent_message: str, turn_count: int) -> bool:
        reason = self.ending_reason(agent_message, turn_count)
        if reason:
            logger.info(f"Ending conversation: {reason}")
        return reason is not None
