"""Pytest configuration and fixtures for client tests.

The gateway is faked with a small FastAPI app that records each request and
answers with whatever the test configured on ``app.state``.
"""

import json
import os
import sys
from typing import AsyncGenerator, Generator, Union

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from openrouter_client import AsyncOpenRouterClient, ClientOptions, OpenRouterClient


API_KEY = "sk-or-test-key"
BASE_URL = "http://testserver/api/v1"
TEST_MODEL = "openai/gpt-4o-mini"


def sse(*events: Union[dict, str]) -> str:
    """Frame events as an SSE body; strings are emitted as raw lines."""
    lines = []
    for event in events:
        if isinstance(event, dict):
            lines.append(f"data: {json.dumps(event)}\n\n")
        else:
            lines.append(event)
    return "".join(lines)


def delta_chunk(content: str, finish_reason: str = None, usage: dict = None, **delta) -> dict:
    """Build one streaming chunk."""
    chunk = {
        "id": "gen-123",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": TEST_MODEL,
        "choices": [
            {"index": 0, "delta": {"content": content, **delta}, "finish_reason": finish_reason}
        ],
    }
    if usage is not None:
        chunk["usage"] = usage
    return chunk


COMPLETION = {
    "id": "gen-456",
    "object": "chat.completion",
    "created": 1700000000,
    "model": TEST_MODEL,
    "choices": [
        {
            "index": 0,
            "finish_reason": "stop",
            "message": {"role": "assistant", "content": "Hello there"},
        }
    ],
    "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
}

STREAM_BODY = sse(
    ": OPENROUTER PROCESSING\n\n",
    delta_chunk("Hel", role="assistant"),
    delta_chunk("lo"),
    delta_chunk("", finish_reason="stop", usage={"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}),
    "data: [DONE]\n\n",
)


def create_gateway() -> FastAPI:
    """Create a fake chat completions gateway."""
    app = FastAPI()
    app.state.requests = []
    app.state.completion = COMPLETION
    app.state.stream_body = STREAM_BODY
    app.state.raw_response = None  # (status, body) overrides everything

    @app.post("/api/v1/chat/completions")
    async def chat_completions(request: Request):
        if request.headers.get("authorization") != f"Bearer {API_KEY}":
            return JSONResponse(
                status_code=401,
                content={"error": {"code": 401, "message": "No auth credentials found"}},
            )

        payload = await request.json()
        app.state.requests.append({"headers": dict(request.headers), "payload": payload})

        if app.state.raw_response is not None:
            status, body = app.state.raw_response
            return Response(content=body, status_code=status, media_type="text/plain")

        if payload.get("stream"):
            return StreamingResponse(iter([app.state.stream_body]), media_type="text/event-stream")
        return JSONResponse(app.state.completion)

    return app


@pytest.fixture
def gateway() -> FastAPI:
    return create_gateway()


@pytest.fixture
def options() -> ClientOptions:
    return ClientOptions(api_key=API_KEY, base_url=BASE_URL, default_model=TEST_MODEL)


@pytest.fixture
def client(gateway: FastAPI, options: ClientOptions) -> Generator[OpenRouterClient, None, None]:
    """Synchronous client wired to the fake gateway."""
    with TestClient(gateway) as http:
        yield OpenRouterClient(options, http_client=http)


@pytest_asyncio.fixture
async def async_client(
    gateway: FastAPI, options: ClientOptions
) -> AsyncGenerator[AsyncOpenRouterClient, None]:
    """Async client wired to the fake gateway."""
    transport = httpx.ASGITransport(app=gateway)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield AsyncOpenRouterClient(options, http_client=http)


@pytest.fixture
def last_request(gateway: FastAPI):
    """Return the most recent request the gateway received."""
    return lambda: gateway.state.requests[-1]
