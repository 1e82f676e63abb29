"""HTTP clients for the OpenRouter chat completions endpoint.

Both clients issue exactly one POST per call. ``send_chat_completion``
returns one decoded ChatResponse; ``stream_chat_completion`` returns a
lazy, single-pass stream of ChatResponse chunks.

Cancellation uses a caller-supplied event: ``threading.Event`` (or anything
with ``is_set()``) for OpenRouterClient, ``asyncio.Event`` for
AsyncOpenRouterClient. A cancel seen before the response headers arrive
raises RequestCancelled; a cancel seen mid-stream ends the iteration with
no further chunks.

Note that a stream ending without ``[DONE]`` is not an error; check
``stream.completed`` or the last chunk's ``finish_reason`` to tell an early
end from a normal one.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, AsyncIterator, Dict, Iterator, Optional

import httpx
from pydantic import BaseModel, ValidationError

from .config import ClientOptions
from .errors import (
    DecodeError,
    ElementDecodeError,
    MalformedContent,
    RequestCancelled,
    StreamTransportError,
    TransportError,
    UpstreamError,
)
from .models import ApiError, ChatCompletionRequest, ChatResponse
from .streaming import CancelledWait, Line, SSEDecoder, StreamState, wait_or_cancel
from .utils import log_incoming_response, log_outgoing_request, log_stream_chunk

logger = logging.getLogger(__name__)


class _ErrorEnvelope(BaseModel):
    error: Optional[ApiError] = None


def _new_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:12]}"


def _is_cancelled(cancel: Any) -> bool:
    return cancel is not None and cancel.is_set()


def _upstream_error(status_code: int, body: str) -> UpstreamError:
    """Build an UpstreamError, keeping the body verbatim."""
    try:
        error = _ErrorEnvelope.model_validate_json(body).error
    except ValidationError:
        logger.debug(f"Error body is not a gateway error object: {body[:200]}")
        error = None
    return UpstreamError(status_code, body, error)


def _codec_error(error: ValidationError) -> Optional[Exception]:
    """Return the content codec error wrapped inside a ValidationError, if any."""
    for detail in error.errors():
        cause = detail.get("ctx", {}).get("error")
        if isinstance(cause, (ElementDecodeError, MalformedContent)):
            return cause
    return None


def _decode_response(body: str) -> ChatResponse:
    try:
        return ChatResponse.model_validate_json(body)
    except ValidationError as e:
        raise DecodeError(
            f"Failed to decode response from OpenRouter API: {e}", body
        ) from (_codec_error(e) or e)


class _BaseClient:
    """Request building shared by the sync and async clients."""

    def __init__(self, options: ClientOptions):
        options.validate_options()
        # Snapshot so callers cannot change an in-flight configuration
        self._options = options.model_copy()
        self._timeout = httpx.Timeout(self._options.timeout)

    @property
    def options(self) -> ClientOptions:
        return self._options

    def _headers(self, stream: bool) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._options.api_key}",
            "Accept": "text/event-stream" if stream else "application/json",
        }
        if self._options.user_agent:
            headers["User-Agent"] = self._options.user_agent
        if self._options.referer:
            headers["HTTP-Referer"] = self._options.referer
        return headers

    def _prepare(self, request: ChatCompletionRequest, stream: bool) -> Dict[str, Any]:
        """Serialize a copy of ``request`` with the stream flag forced."""
        update: Dict[str, Any] = {"stream": stream}
        if not (request.model or "").strip():
            update["model"] = self._options.default_model
        return request.model_copy(update=update).to_payload()

    def _deadline(self) -> float:
        return time.monotonic() + self._options.timeout


def _past_deadline(deadline: Optional[float]) -> bool:
    return deadline is not None and time.monotonic() > deadline


# =============================================================================
# Sync
# =============================================================================


class ChatStream:
    """Lazy iterator over streamed chunks.

    Single pass only. The HTTP response is closed when the stream is
    exhausted, fails, is cancelled, or ``close()`` is called.
    """

    def __init__(
        self,
        response: httpx.Response,
        cancel: Any = None,
        deadline: Optional[float] = None,
        request_id: str = "",
        debug: bool = False,
    ):
        self.response = response
        self.request_id = request_id
        self._decoder = SSEDecoder()
        self._iterator = self._iterate(cancel, deadline, debug)

    def _lines(self, deadline: Optional[float]) -> Iterator[str]:
        for line in self.response.iter_lines():
            if _past_deadline(deadline):
                raise httpx.ReadTimeout("Overall request timeout exceeded")
            yield line

    def _iterate(self, cancel: Any, deadline: Optional[float], debug: bool) -> Iterator[ChatResponse]:
        try:
            chunks = self._decoder.iter_chunks(self._lines(deadline), cancel)
            for index, chunk in enumerate(chunks):
                log_stream_chunk(self.request_id, index, chunk, enabled=debug)
                yield chunk
        finally:
            self.response.close()

    def __iter__(self) -> "ChatStream":
        return self

    def __next__(self) -> ChatResponse:
        return next(self._iterator)

    def __enter__(self) -> "ChatStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._iterator.close()
        self.response.close()

    @property
    def state(self) -> StreamState:
        return self._decoder.state

    @property
    def completed(self) -> bool:
        """True once the ``[DONE]`` sentinel has been received."""
        return self._decoder.saw_done

    @property
    def cancelled(self) -> bool:
        return self._decoder.cancelled

    @property
    def lines_skipped(self) -> int:
        return self._decoder.lines_skipped


class OpenRouterClient(_BaseClient):
    """Synchronous client.

    When ``http_client`` is given it is used as-is and left open on close().
    """

    def __init__(self, options: ClientOptions, http_client: Optional[httpx.Client] = None):
        super().__init__(options)
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(timeout=self._timeout)

    def __enter__(self) -> "OpenRouterClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def send_chat_completion(
        self, request: ChatCompletionRequest, cancel: Any = None
    ) -> ChatResponse:
        """Send a non-streaming chat completion request."""
        request_id = _new_request_id()
        url = self._options.chat_completions_url
        payload = self._prepare(request, stream=False)
        headers = self._headers(stream=False)
        debug = self._options.debug_logging

        if _is_cancelled(cancel):
            raise RequestCancelled("Request cancelled before it was sent")

        log_outgoing_request(request_id, url, headers, payload, enabled=debug)
        try:
            response = self._http.post(url, json=payload, headers=headers, timeout=self._timeout)
        except httpx.TransportError as e:
            raise TransportError(f"Request to OpenRouter API failed: {e}") from e

        body = response.text
        log_incoming_response(request_id, response.status_code, body, enabled=debug)

        if _is_cancelled(cancel):
            raise RequestCancelled("Request cancelled while waiting for the response")
        if not response.is_success:
            raise _upstream_error(response.status_code, body)
        return _decode_response(body)

    def stream_chat_completion(
        self, request: ChatCompletionRequest, cancel: Any = None
    ) -> ChatStream:
        """Send a streaming chat completion request.

        Returns once response headers arrive; chunks are decoded as the
        returned stream is iterated.
        """
        request_id = _new_request_id()
        deadline = self._deadline()
        url = self._options.chat_completions_url
        payload = self._prepare(request, stream=True)
        headers = self._headers(stream=True)
        debug = self._options.debug_logging

        if _is_cancelled(cancel):
            raise RequestCancelled("Request cancelled before it was sent")

        log_outgoing_request(request_id, url, headers, payload, enabled=debug)
        http_request = self._http.build_request(
            "POST", url, json=payload, headers=headers, timeout=self._timeout
        )
        try:
            response = self._http.send(http_request, stream=True)
        except httpx.TransportError as e:
            raise StreamTransportError(f"Request to OpenRouter API failed: {e}") from e

        if not response.is_success:
            try:
                body = response.read().decode("utf-8", errors="replace")
            except httpx.TransportError as e:
                raise StreamTransportError(f"Failed to read error response: {e}") from e
            finally:
                response.close()
            log_incoming_response(request_id, response.status_code, body, enabled=debug)
            raise _upstream_error(response.status_code, body)

        log_incoming_response(request_id, response.status_code, is_stream=True, enabled=debug)
        if _is_cancelled(cancel):
            response.close()
            raise RequestCancelled("Request cancelled while waiting for the response")

        return ChatStream(response, cancel, deadline, request_id, debug)


# =============================================================================
# Async
# =============================================================================


class AsyncChatStream:
    """Async counterpart of ChatStream."""

    def __init__(
        self,
        response: httpx.Response,
        cancel: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
        request_id: str = "",
        debug: bool = False,
    ):
        self.response = response
        self.request_id = request_id
        self._decoder = SSEDecoder()
        self._iterator = self._iterate(cancel, deadline, debug)

    async def _lines(self, deadline: Optional[float]) -> AsyncIterator[Line]:
        async for line in self.response.aiter_lines():
            if _past_deadline(deadline):
                raise httpx.ReadTimeout("Overall request timeout exceeded")
            yield line

    async def _iterate(
        self, cancel: Optional[asyncio.Event], deadline: Optional[float], debug: bool
    ) -> AsyncIterator[ChatResponse]:
        try:
            index = 0
            async for chunk in self._decoder.aiter_chunks(self._lines(deadline), cancel):
                log_stream_chunk(self.request_id, index, chunk, enabled=debug)
                index += 1
                yield chunk
        finally:
            await self.response.aclose()

    def __aiter__(self) -> "AsyncChatStream":
        return self

    async def __anext__(self) -> ChatResponse:
        return await self._iterator.__anext__()

    async def __aenter__(self) -> "AsyncChatStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._iterator.aclose()
        await self.response.aclose()

    @property
    def state(self) -> StreamState:
        return self._decoder.state

    @property
    def completed(self) -> bool:
        """True once the ``[DONE]`` sentinel has been received."""
        return self._decoder.saw_done

    @property
    def cancelled(self) -> bool:
        return self._decoder.cancelled

    @property
    def lines_skipped(self) -> int:
        return self._decoder.lines_skipped


class AsyncOpenRouterClient(_BaseClient):
    """Asynchronous client over httpx.AsyncClient."""

    def __init__(self, options: ClientOptions, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(options)
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._timeout)

    async def __aenter__(self) -> "AsyncOpenRouterClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def send_chat_completion(
        self, request: ChatCompletionRequest, cancel: Optional[asyncio.Event] = None
    ) -> ChatResponse:
        """Send a non-streaming chat completion request."""
        request_id = _new_request_id()
        url = self._options.chat_completions_url
        payload = self._prepare(request, stream=False)
        headers = self._headers(stream=False)
        debug = self._options.debug_logging

        if _is_cancelled(cancel):
            raise RequestCancelled("Request cancelled before it was sent")

        log_outgoing_request(request_id, url, headers, payload, enabled=debug)
        try:
            response = await wait_or_cancel(
                self._http.post(url, json=payload, headers=headers, timeout=self._timeout),
                cancel,
            )
        except CancelledWait:
            raise RequestCancelled("Request cancelled while waiting for the response") from None
        except httpx.TransportError as e:
            raise TransportError(f"Request to OpenRouter API failed: {e}") from e

        body = response.text
        log_incoming_response(request_id, response.status_code, body, enabled=debug)

        if not response.is_success:
            raise _upstream_error(response.status_code, body)
        return _decode_response(body)

    async def stream_chat_completion(
        self, request: ChatCompletionRequest, cancel: Optional[asyncio.Event] = None
    ) -> AsyncChatStream:
        """Send a streaming chat completion request."""
        request_id = _new_request_id()
        deadline = self._deadline()
        url = self._options.chat_completions_url
        payload = self._prepare(request, stream=True)
        headers = self._headers(stream=True)
        debug = self._options.debug_logging

        if _is_cancelled(cancel):
            raise RequestCancelled("Request cancelled before it was sent")

        log_outgoing_request(request_id, url, headers, payload, enabled=debug)
        http_request = self._http.build_request(
            "POST", url, json=payload, headers=headers, timeout=self._timeout
        )
        try:
            response = await wait_or_cancel(self._http.send(http_request, stream=True), cancel)
        except CancelledWait:
            raise RequestCancelled("Request cancelled while waiting for the response") from None
        except httpx.TransportError as e:
            raise StreamTransportError(f"Request to OpenRouter API failed: {e}") from e

        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.TransportError as e:
                raise StreamTransportError(f"Failed to read error response: {e}") from e
            finally:
                await response.aclose()
            log_incoming_response(request_id, response.status_code, body, enabled=debug)
            raise _upstream_error(response.status_code, body)

        log_incoming_response(request_id, response.status_code, is_stream=True, enabled=debug)
        return AsyncChatStream(response, cancel, deadline, request_id, debug)
