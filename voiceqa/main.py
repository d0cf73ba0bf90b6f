"""
FastAPI server for running conversational tests against voice agents.

This module initializes the FastAPI application that exposes the test-caller
engine over HTTP: a test case and the credentials of the agent under test go
in, the conversation result (transcript and recording) comes out.
"""

import os
from pathlib import Path
from typing import Any, Dict

import dotenv
from fastapi import FastAPI
from pydantic import BaseModel

from voiceqa import runner
from voiceqa.config.logging_config import configure_logging
from voiceqa.config.settings import Settings
from voiceqa.models.conversation import (
    SUPPORTED_PROVIDERS,
    ConversationResult,
    ProviderCredentials,
    TestCaseSpec,
)

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

# Configure logging
logger = configure_logging()

# Get configuration from environment variables
PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")

# Create FastAPI application
app = FastAPI(
    title="Voice Agent Test Caller",
    description="Synthetic caller that runs conversational tests against live voice agents",
    version="1.0.0",
)


class TestRunRequest(BaseModel):
    """Body of ``POST /test-runs``."""

    __test__ = False

    test_case: TestCaseSpec
    credentials: ProviderCredentials


def render_result(result: ConversationResult) -> Dict[str, Any]:
    """JSON form of a result, with the recording as a playable URL."""
    payload = result.model_dump(mode="json", exclude={"recording"})
    payload["recording_url"] = result.recording.data_url() if result.recording else None
    return payload


@app.post("/test-runs")
async def create_test_run(request: TestRunRequest):
    """Run one conversational test and return its result.

    The call blocks until the conversation is finalized (at most the session
    timeout). Setup failures are reported in the result, not as HTTP errors.
    """
    settings = Settings.from_env()
    result = await runner.run_conversational_test(request.test_case, request.credentials, settings)
    return render_result(result)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status information, configured credentials and sessions in flight.
    """
    return {
        "status": "healthy",
        "openai_api_key_configured": bool(os.getenv("OPENAI_API_KEY")),
        "elevenlabs_api_key_configured": bool(os.getenv("ELEVENLABS_API_KEY")),
        "active_sessions": runner.active_sessions,
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API.

    Returns:
        dict: Basic information about the API and its purpose.
    """
    return {
        "name": "Voice Agent Test Caller",
        "description": "Synthetic caller that runs conversational tests against live voice agents",
        "version": "1.0.0",
        "providers": SUPPORTED_PROVIDERS,
        "endpoints": {
            "/test-runs": "POST a test case and agent credentials to run a conversation",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{HOST}:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT, http="h11")
