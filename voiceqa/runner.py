"""
Entry point for running conversational tests.

``run_conversational_test`` wires one session together (signaling client,
channel, brain, TTS, clock) and always returns a ``ConversationResult``:
setup failures and unexpected errors become failed results instead of
exceptions. ``run_many`` runs several tests concurrently under a bound.
"""

import asyncio
import logging
import time
import traceback
from typing import List, Optional, Sequence, Tuple

from voiceqa.brain.caller_brain import SyntheticCallerBrain
from voiceqa.brain.llm import ChatCompletionClient, OpenAIChatClient
from voiceqa.config.constants import LOGGER_NAME
from voiceqa.config.settings import Settings
from voiceqa.models.conversation import ConversationResult, ProviderCredentials, TestCaseSpec
from voiceqa.services.tts import SpeechSynthesizer, create_speech_synthesizer
from voiceqa.session.clock import AsyncioClock, Clock
from voiceqa.session.conversation import ConversationSession
from voiceqa.signaling.base import ChannelSetupError, SignalingClient
from voiceqa.signaling.factory import create_signaling_client

logger = logging.getLogger(LOGGER_NAME)

# Sessions currently in flight, reported by the health endpoint
active_sessions = 0


async def run_conversational_test(
    test_case: TestCaseSpec,
    credentials: ProviderCredentials,
    settings: Optional[Settings] = None,
    signaling_client: Optional[SignalingClient] = None,
    llm: Optional[ChatCompletionClient] = None,
    tts: Optional[SpeechSynthesizer] = None,
    clock: Optional[Clock] = None,
) -> ConversationResult:
    """
    Run one test case against a live agent.

    Args:
        test_case: Scenario the synthetic caller plays out
        credentials: Provider, agent id and API key of the agent under test
        settings: Process configuration; read from the environment when omitted
        signaling_client: Overrides the provider's default client
        llm: Overrides the OpenAI chat client used by the caller brain
        tts: Overrides the synthesizer built from ``settings``
        clock: Overrides the asyncio clock

    Returns:
        ConversationResult: Never raises for setup or session failures
    """
    global active_sessions
    settings = settings or Settings.from_env()
    clock = clock or AsyncioClock()
    started = time.time()
    owned_client = signaling_client is None
    owned_tts = tts is None
    client = signaling_client
    logger.info(
        f"Running test case {test_case.id} ({test_case.name}) against "
        f"{credentials.provider} agent {credentials.agent_id}"
    )

    def elapsed_ms() -> int:
        return int((time.time() - started) * 1000)

    active_sessions += 1
    try:
        if client is None:
            client = create_signaling_client(credentials.provider)
        if tts is None:
            tts = create_speech_synthesizer(
                settings.tts_provider,
                elevenlabs_api_key=settings.elevenlabs_api_key,
                voice_id=settings.tts_voice_id,
                openai_api_key=settings.openai_api_key,
            )
        if llm is None:
            llm = OpenAIChatClient(api_key=settings.openai_api_key, model=settings.caller_model)

        channel = await client.open_channel(credentials.agent_id, credentials)
        brain = SyntheticCallerBrain(
            test_case,
            llm,
            max_attempts=settings.timings.max_generation_attempts,
            retry_delay=settings.timings.retry_delay,
            sleep=clock.sleep,
        )
        session = ConversationSession(channel, brain, tts, clock=clock, timings=settings.timings)
        result = await session.run()
        if brain.fallbacks_used:
            logger.warning(f"Test case {test_case.id} used {brain.fallbacks_used} fallback caller lines")
        return result
    except ChannelSetupError as e:
        logger.error(f"Channel setup failed for test case {test_case.id}: {e}")
        return ConversationResult.failed(str(e), duration_ms=elapsed_ms())
    except ValueError as e:
        logger.error(f"Invalid configuration for test case {test_case.id}: {e}")
        return ConversationResult.failed(str(e), duration_ms=elapsed_ms())
    except Exception as e:
        logger.error(f"Unexpected error running test case {test_case.id}: {e}")
        logger.error(traceback.format_exc())
        return ConversationResult.failed(f"Unexpected error: {e}", duration_ms=elapsed_ms())
    finally:
        active_sessions -= 1
        if owned_tts and tts is not None:
            await tts.close()
        if owned_client and client is not None:
            await client.close()


async def run_many(
    cases: Sequence[Tuple[TestCaseSpec, ProviderCredentials]],
    settings: Optional[Settings] = None,
    concurrency: Optional[int] = None,
    **kwargs,
) -> List[ConversationResult]:
    """
    Run several test cases concurrently, at most ``concurrency`` at a time.

    Results are returned in the order of ``cases``. Extra keyword arguments are
    passed to ``run_conversational_test``.
    """
    settings = settings or Settings.from_env()
    limit = concurrency or settings.max_concurrent_sessions
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_one(test_case: TestCaseSpec, credentials: ProviderCredentials) -> ConversationResult:
        async with semaphore:
            return await run_conversational_test(test_case, credentials, settings, **kwargs)

    logger.info(f"Running {len(cases)} test cases with concurrency {limit}")
    return list(await asyncio.gather(*(run_one(tc, creds) for tc, creds in cases)))
