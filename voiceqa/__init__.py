"""
Voice Agent Test Caller - synthetic callers for conversational voice-agent QA

This package places a synthetic caller, driven by an LLM persona, into a live
real-time voice conversation with an AI voice agent (ElevenLabs Conversational
AI, Retell or VAPI). The caller listens, decides when the agent has finished a
turn, replies with synthesized speech, recognizes when the agent ends the
call, and produces a transcript plus a playable recording for evaluation.

Architecture Overview:
- Provider signaling adapters reduce each provider protocol to five abstract
  channel events
- A turn-taking state machine drives each conversation with injected timers
- An LLM caller brain with retries and deterministic fallback lines
- Text-to-speech and G.711/PCM audio handling with real-time pacing
- FastAPI ingress and a concurrent runner for batches of test cases

Key Components:
- audio: Codec, resampling, WAV container and outbound pacing
- brain: Synthetic caller persona and LLM clients
- config: Constants, logging setup and environment-based settings
- models: Test cases, transcript, results, channel events, provider schemas
- services: Text-to-speech clients
- session: Conversation state machine, termination policy, recording, clocks
- signaling: Provider channels
- runner: run_conversational_test / run_many

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Key for the caller brain
   - ELEVENLABS_API_KEY: Key for the caller's voice
   - PORT / HOST / LOG_LEVEL: Server settings

2. Start the server:
   ```bash
   python run.py
   ```

3. POST a test case and the agent's credentials to ``/test-runs``.
"""
