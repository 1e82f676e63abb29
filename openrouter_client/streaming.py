"""Server-Sent Events decoder for streamed chat completions.

The gateway frames each chunk as ``data: <json>`` followed by a blank line
and ends the stream with ``data: [DONE]``. Decoding is pull-based: one line
is read per step and nothing is buffered beyond the current line.

Tolerance rules:

- blank lines and non-``data:`` lines (comments such as
  ``: OPENROUTER PROCESSING`` keep-alives) are ignored;
- a ``data:`` line whose JSON cannot be decoded is skipped, never raised;
- a stream that closes without ``[DONE]`` ends quietly. ``saw_done`` on the
  decoder tells the two endings apart; otherwise callers must look at the
  last chunk's ``finish_reason``.

Transport failures while reading lines are raised as StreamTransportError.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    TypeVar,
    Union,
)

import httpx
from pydantic import ValidationError

from .errors import StreamTransportError
from .models import ChatMessage, ChatResponse, ChatRole, FinishReason, GeneratedImage, ToolCall, Usage, text

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

Line = Union[str, bytes]
T = TypeVar("T")


class StreamState(str, Enum):
    READING = "reading"
    DONE = "done"
    FAILED = "failed"


def _is_cancelled(cancel: Any) -> bool:
    return cancel is not None and cancel.is_set()


class SSEDecoder:
    """Per-stream decoder state."""

    def __init__(self):
        self.state = StreamState.READING
        self.saw_done = False
        self.cancelled = False
        self.chunks_decoded = 0
        self.lines_skipped = 0

    def decode_line(self, line: Line) -> Optional[ChatResponse]:
        """Decode a single line, returning a chunk or None if it carries none."""
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.rstrip("\r\n")

        if not line.strip() or not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            self.state = StreamState.DONE
            self.saw_done = True
            return None

        try:
            chunk = ChatResponse.model_validate_json(payload)
        except ValidationError as e:
            self.lines_skipped += 1
            logger.debug(f"Skipping undecodable SSE line ({e.error_count()} errors): {payload[:200]}")
            return None

        self.chunks_decoded += 1
        return chunk

    def _fail(self, e: Exception) -> StreamTransportError:
        self.state = StreamState.FAILED
        logger.warning(f"Stream transport failed: {e}")
        return StreamTransportError(f"Stream read failed: {e}")

    def _stop(self) -> None:
        self.cancelled = True
        self.state = StreamState.DONE
        logger.debug("Stream cancelled by caller")

    def iter_chunks(self, lines: Iterable[Line], cancel: Any = None) -> Iterator[ChatResponse]:
        """Yield chunks from a line iterable.

        ``cancel`` is any object with ``is_set()`` (e.g. threading.Event); it
        is checked before every line read and before every yield.
        """
        iterator = iter(lines)
        while self.state is StreamState.READING:
            if _is_cancelled(cancel):
                self._stop()
                return
            try:
                line = next(iterator)
            except StopIteration:
                self.state = StreamState.DONE
                return
            except (httpx.TransportError, OSError) as e:
                raise self._fail(e) from e

            chunk = self.decode_line(line)
            if chunk is None:
                continue
            if _is_cancelled(cancel):
                self._stop()
                return
            yield chunk

    async def aiter_chunks(
        self, lines: AsyncIterable[Line], cancel: Optional[asyncio.Event] = None
    ) -> AsyncIterator[ChatResponse]:
        """Async variant of iter_chunks.

        A pending line read is abandoned as soon as ``cancel`` is set.
        """
        iterator = lines.__aiter__()
        while self.state is StreamState.READING:
            if _is_cancelled(cancel):
                self._stop()
                return
            try:
                line = await wait_or_cancel(iterator.__anext__(), cancel)
            except StopAsyncIteration:
                self.state = StreamState.DONE
                return
            except CancelledWait:
                self._stop()
                return
            except (httpx.TransportError, OSError) as e:
                raise self._fail(e) from e

            chunk = self.decode_line(line)
            if chunk is None:
                continue
            if _is_cancelled(cancel):
                self._stop()
                return
            yield chunk


class CancelledWait(Exception):
    """The cancel event was set before the awaited operation finished."""


async def _discard(*tasks: "asyncio.Future[Any]") -> None:
    """Cancel ``tasks`` and wait for them to settle, dropping their outcome."""
    for task in tasks:
        task.cancel()
    await asyncio.wait(set(tasks))
    for task in tasks:
        if not task.cancelled():
            task.exception()  # mark retrieved


async def wait_or_cancel(awaitable: Awaitable[T], cancel: Optional[asyncio.Event]) -> T:
    """Await ``awaitable`` unless ``cancel`` is set first, in which case the
    pending operation is cancelled and CancelledWait is raised.

    If the caller is itself cancelled or times out while waiting, the pending
    operation is cancelled too before the error propagates.
    """
    if cancel is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        await _discard(task, waiter)
        raise

    if task in done:
        await _discard(waiter)
        return task.result()

    await _discard(task)
    raise CancelledWait()


def iter_sse_chunks(lines: Iterable[Line], cancel: Any = None) -> Iterator[ChatResponse]:
    """Decode an SSE line iterable into chat response chunks."""
    return SSEDecoder().iter_chunks(lines, cancel)


def aiter_sse_chunks(
    lines: AsyncIterable[Line], cancel: Optional[asyncio.Event] = None
) -> AsyncIterator[ChatResponse]:
    """Decode an async SSE line iterable into chat response chunks."""
    return SSEDecoder().aiter_chunks(lines, cancel)


# =============================================================================
# Delta accumulation
# =============================================================================


@dataclass
class StreamResult:
    """Assistant message rebuilt from streamed deltas."""

    id: str = ""
    model: str = ""
    role: ChatRole = ChatRole.ASSISTANT
    content: str = ""
    tool_calls: Dict[int, ToolCall] = field(default_factory=dict)
    images: List[GeneratedImage] = field(default_factory=list)
    finish_reason: Optional[Union[FinishReason, str]] = None
    usage: Optional[Usage] = None
    chunk_count: int = 0

    def add(self, chunk: ChatResponse) -> None:
        """Fold one chunk into the result (primary choice only)."""
        self.chunk_count += 1
        self.id = self.id or chunk.id
        self.model = self.model or chunk.model
        if chunk.usage is not None:
            self.usage = chunk.usage

        choice = chunk.first_choice
        if choice is None:
            return
        if choice.finish_reason is not None:
            self.finish_reason = choice.finish_reason

        delta = choice.delta
        if delta is None:
            return
        if delta.role is not None:
            self.role = delta.role
        if delta.content:
            self.content += delta.content
        if delta.images:
            self.images.extend(delta.images)

        for fragment in delta.tool_calls or []:
            call = self.tool_calls.setdefault(fragment.index, ToolCall())
            if fragment.id and not call.id:
                call.id = fragment.id
            if fragment.function is not None:
                if fragment.function.name and not call.function.name:
                    call.function.name = fragment.function.name
                if fragment.function.arguments:
                    call.function.arguments += fragment.function.arguments

    def to_message(self) -> ChatMessage:
        calls = [self.tool_calls[i] for i in sorted(self.tool_calls)]
        return ChatMessage(
            role=self.role,
            content=[text(self.content)] if self.content else [],
            tool_calls=calls or None,
            images=self.images or None,
        )


def accumulate(chunks: Iterable[ChatResponse]) -> StreamResult:
    """Consume a chunk sequence and rebuild the full assistant message."""
    result = StreamResult()
    for chunk in chunks:
        result.add(chunk)
    return result
