"""Tests for the synchronous client against a fake gateway."""

import json
import threading
import time

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError

from conftest import API_KEY, BASE_URL, TEST_MODEL, delta_chunk, sse

from openrouter_client import (
    ChatCompletionRequest,
    ChatMessage,
    ClientOptions,
    DecodeError,
    ElementDecodeError,
    FinishReason,
    MalformedContent,
    OpenRouterClient,
    RequestCancelled,
    StreamState,
    StreamTransportError,
    TransportError,
    UpstreamError,
    accumulate,
    image,
)
from openrouter_client.models import Prediction


def hello_request(**kwargs) -> ChatCompletionRequest:
    return ChatCompletionRequest(messages=[ChatMessage.user("Say hello")], **kwargs)


class TestRequestConstruction:
    """Test the outbound request."""

    def test_stream_forced_false(self, client: OpenRouterClient, last_request):
        client.send_chat_completion(hello_request(stream=True))
        assert last_request()["payload"]["stream"] is False

    def test_stream_forced_true(self, client: OpenRouterClient, last_request):
        with client.stream_chat_completion(hello_request(stream=False)) as stream:
            list(stream)
        assert last_request()["payload"]["stream"] is True

    def test_caller_request_not_mutated(self, client: OpenRouterClient):
        request = hello_request(stream=True)
        client.send_chat_completion(request)
        assert request.stream is True
        assert request.model is None

    def test_default_model_filled(self, client: OpenRouterClient, last_request):
        client.send_chat_completion(hello_request())
        assert last_request()["payload"]["model"] == TEST_MODEL

    def test_explicit_model_kept(self, client: OpenRouterClient, last_request):
        client.send_chat_completion(hello_request(model="anthropic/claude-3.5-sonnet"))
        assert last_request()["payload"]["model"] == "anthropic/claude-3.5-sonnet"

    def test_payload_shape(self, client: OpenRouterClient, last_request):
        request = ChatCompletionRequest(
            messages=[
                ChatMessage.system("Be brief"),
                ChatMessage.user("Describe:", image("http://x/y.png")),
            ],
            temperature=0.2,
        )
        client.send_chat_completion(request)
        payload = last_request()["payload"]

        assert payload["messages"] == [
            {"role": "system", "content": "Be brief"},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Describe:"},
                    {"type": "image_url", "image_url": {"url": "http://x/y.png"}},
                ],
            },
        ]
        assert payload["temperature"] == 0.2
        assert "max_tokens" not in payload
        assert "tools" not in payload

    def test_prediction_verbosity_and_prompt(self, client: OpenRouterClient, last_request):
        request = ChatCompletionRequest(
            prompt="Once upon a time",
            prediction=Prediction(content="there was a"),
            verbosity="low",
        )
        client.send_chat_completion(request)
        payload = last_request()["payload"]

        assert payload["prompt"] == "Once upon a time"
        assert payload["prediction"] == {"type": "content", "content": "there was a"}
        assert payload["verbosity"] == "low"

    def test_invalid_verbosity_rejected(self):
        with pytest.raises(ValidationError):
            ChatCompletionRequest(verbosity="extreme")

    def test_empty_messages_forwarded(self, client: OpenRouterClient, last_request):
        client.send_chat_completion(ChatCompletionRequest())
        assert last_request()["payload"]["messages"] == []

    def test_headers(self, gateway: FastAPI, options: ClientOptions, last_request):
        options = options.model_copy(update={"user_agent": "my-app/1.0", "referer": "https://example.com"})
        with TestClient(gateway) as http:
            OpenRouterClient(options, http_client=http).send_chat_completion(hello_request())

        headers = last_request()["headers"]
        assert headers["authorization"] == f"Bearer {API_KEY}"
        assert headers["user-agent"] == "my-app/1.0"
        assert headers["http-referer"] == "https://example.com"
        assert headers["content-type"] == "application/json"


class TestNonStreaming:
    """Test non-streaming responses."""

    def test_response_decoded(self, client: OpenRouterClient):
        response = client.send_chat_completion(hello_request())

        assert response.id == "gen-456"
        assert response.model == TEST_MODEL
        assert response.finish_reason is FinishReason.STOP
        assert response.content == "Hello there"
        assert response.choices[0].delta is None
        assert response.usage.total_tokens == 7

    def test_array_content_in_response(self, client: OpenRouterClient, gateway: FastAPI):
        completion = json.loads(json.dumps(gateway.state.completion))
        completion["choices"][0]["message"]["content"] = [
            {"type": "text", "text": "Part one"},
            {"type": "text", "text": "part two"},
        ]
        gateway.state.completion = completion

        response = client.send_chat_completion(hello_request())
        assert response.content == "Part one part two"

    def test_malformed_content_is_fatal(self, client: OpenRouterClient, gateway: FastAPI):
        completion = json.loads(json.dumps(gateway.state.completion))
        completion["choices"][0]["message"]["content"] = [{"type": "text", "text": "ok"}, {"type": "hologram"}]
        gateway.state.completion = completion

        with pytest.raises(DecodeError) as exc_info:
            client.send_chat_completion(hello_request())
        cause = exc_info.value.__cause__
        assert isinstance(cause, ElementDecodeError)
        assert cause.index == 1

    def test_scalar_content_is_fatal(self, client: OpenRouterClient, gateway: FastAPI):
        completion = json.loads(json.dumps(gateway.state.completion))
        completion["choices"][0]["message"]["content"] = 42
        gateway.state.completion = completion

        with pytest.raises(DecodeError) as exc_info:
            client.send_chat_completion(hello_request())
        assert isinstance(exc_info.value.__cause__, MalformedContent)

    def test_invalid_json_body(self, client: OpenRouterClient, gateway: FastAPI):
        gateway.state.raw_response = (200, "{not json")
        with pytest.raises(DecodeError) as exc_info:
            client.send_chat_completion(hello_request())
        assert exc_info.value.body == "{not json"


class TestUpstreamErrors:
    """Test non-success HTTP statuses."""

    def test_bad_key(self, gateway: FastAPI, options: ClientOptions):
        with TestClient(gateway) as http:
            client = OpenRouterClient(options.with_api_key("sk-wrong"), http_client=http)
            with pytest.raises(UpstreamError) as exc_info:
                client.send_chat_completion(hello_request())

        error = exc_info.value
        assert error.status_code == 401
        assert json.loads(error.body) == {"error": {"code": 401, "message": "No auth credentials found"}}
        assert error.error.message == "No auth credentials found"

    def test_body_kept_verbatim(self, client: OpenRouterClient, gateway: FastAPI):
        gateway.state.raw_response = (502, "Bad gateway <html>")
        with pytest.raises(UpstreamError) as exc_info:
            client.send_chat_completion(hello_request())
        assert exc_info.value.status_code == 502
        assert exc_info.value.body == "Bad gateway <html>"
        assert exc_info.value.error is None

    def test_streaming_error_status(self, client: OpenRouterClient, gateway: FastAPI):
        gateway.state.raw_response = (429, '{"error": {"code": 429, "message": "Rate limited"}}')
        with pytest.raises(UpstreamError) as exc_info:
            client.stream_chat_completion(hello_request())
        assert exc_info.value.status_code == 429
        assert exc_info.value.error.code == 429


class TestStreaming:
    """Test streaming responses."""

    def test_chunks_in_order(self, client: OpenRouterClient):
        with client.stream_chat_completion(hello_request()) as stream:
            chunks = list(stream)

        assert [c.choices[0].delta.content for c in chunks] == ["Hel", "lo", ""]
        assert chunks[-1].finish_reason is FinishReason.STOP
        assert chunks[-1].usage.total_tokens == 5
        assert all(c.usage is None for c in chunks[:-1])
        assert stream.completed
        assert stream.state is StreamState.DONE

    def test_accumulate(self, client: OpenRouterClient):
        result = accumulate(client.stream_chat_completion(hello_request()))
        assert result.content == "Hello"
        assert result.id == "gen-123"

    def test_malformed_line_tolerated(self, client: OpenRouterClient, gateway: FastAPI):
        gateway.state.stream_body = sse(
            delta_chunk("one"), "data: {not valid json\n\n", delta_chunk("two"), "data: [DONE]\n\n"
        )
        stream = client.stream_chat_completion(hello_request())
        assert [c.content for c in stream] == ["one", "two"]
        assert stream.lines_skipped == 1

    def test_truncated_stream_ends_quietly(self, client: OpenRouterClient, gateway: FastAPI):
        gateway.state.stream_body = sse(delta_chunk("par"), delta_chunk("tial"))
        stream = client.stream_chat_completion(hello_request())
        assert [c.content for c in stream] == ["par", "tial"]
        assert not stream.completed
        assert stream.state is StreamState.DONE

    def test_cancel_mid_stream(self, client: OpenRouterClient):
        cancel = threading.Event()
        stream = client.stream_chat_completion(hello_request(), cancel=cancel)
        received = []
        for chunk in stream:
            received.append(chunk)
            cancel.set()

        assert len(received) == 1
        assert stream.cancelled
        assert stream.response.is_closed

    def test_cancel_before_send(self, client: OpenRouterClient, gateway: FastAPI):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(RequestCancelled):
            client.stream_chat_completion(hello_request(), cancel=cancel)
        with pytest.raises(RequestCancelled):
            client.send_chat_completion(hello_request(), cancel=cancel)
        assert gateway.state.requests == []

    def test_close_releases_response(self, client: OpenRouterClient):
        stream = client.stream_chat_completion(hello_request())
        next(stream)
        stream.close()
        assert stream.response.is_closed
        assert list(stream) == []


class FailingStream(httpx.SyncByteStream):
    """Response body that breaks after the first event."""

    def __iter__(self):
        yield sse(delta_chunk("a")).encode()
        raise httpx.ReadError("connection reset by peer")


class TestTransport:
    """Test transport-level failures."""

    def make_client(self, handler, **option_updates) -> OpenRouterClient:
        options = ClientOptions(api_key=API_KEY, base_url=BASE_URL, **option_updates)
        return OpenRouterClient(options, http_client=httpx.Client(transport=httpx.MockTransport(handler)))

    def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = self.make_client(handler)
        with pytest.raises(TransportError):
            client.send_chat_completion(hello_request())
        with pytest.raises(StreamTransportError):
            client.stream_chat_completion(hello_request())

    def test_stream_breaks_mid_way(self):
        def handler(request):
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, stream=FailingStream()
            )

        stream = self.make_client(handler).stream_chat_completion(hello_request())
        received = []
        with pytest.raises(StreamTransportError):
            for chunk in stream:
                received.append(chunk)

        assert [c.content for c in received] == ["a"]
        assert stream.state is StreamState.FAILED

    def test_overall_timeout_bounds_stream(self):
        def handler(request):
            return httpx.Response(200, text=sse(delta_chunk("a"), "data: [DONE]\n\n"))

        stream = self.make_client(handler, timeout=0.01).stream_chat_completion(hello_request())
        time.sleep(0.05)
        with pytest.raises(StreamTransportError):
            list(stream)

    def test_owned_http_client_closed(self):
        client = OpenRouterClient(ClientOptions(api_key=API_KEY))
        with client:
            pass
        assert client._http.is_closed

    def test_supplied_http_client_left_open(self):
        http = httpx.Client()
        with OpenRouterClient(ClientOptions(api_key=API_KEY), http_client=http):
            pass
        assert not http.is_closed
        http.close()
