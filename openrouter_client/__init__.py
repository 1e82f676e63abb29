"""Typed client for the OpenRouter chat completions API."""

from .client import AsyncChatStream, AsyncOpenRouterClient, ChatStream, OpenRouterClient
from .config import ClientOptions, Settings, settings
from .errors import (
    ConfigurationError,
    DecodeError,
    ElementDecodeError,
    MalformedContent,
    OpenRouterError,
    RequestCancelled,
    StreamTransportError,
    TransportError,
    UpstreamError,
)
from .models import (
    ChatChoice,
    ChatCompletionRequest,
    ChatDelta,
    ChatMessage,
    ChatResponse,
    ChatRole,
    ContentKind,
    ContentPart,
    FinishReason,
    Tool,
    ToolCall,
    Usage,
    audio,
    image,
    text,
)
from .streaming import SSEDecoder, StreamResult, StreamState, accumulate, aiter_sse_chunks, iter_sse_chunks

__version__ = "0.1.0"

__all__ = [
    # Clients
    "AsyncChatStream",
    "AsyncOpenRouterClient",
    "ChatStream",
    "OpenRouterClient",
    # Config
    "ClientOptions",
    "Settings",
    "settings",
    # Errors
    "ConfigurationError",
    "DecodeError",
    "ElementDecodeError",
    "MalformedContent",
    "OpenRouterError",
    "RequestCancelled",
    "StreamTransportError",
    "TransportError",
    "UpstreamError",
    # Models
    "ChatChoice",
    "ChatCompletionRequest",
    "ChatDelta",
    "ChatMessage",
    "ChatResponse",
    "ChatRole",
    "ContentKind",
    "ContentPart",
    "FinishReason",
    "Tool",
    "ToolCall",
    "Usage",
    "audio",
    "image",
    "text",
    # Streaming
    "SSEDecoder",
    "StreamResult",
    "StreamState",
    "accumulate",
    "aiter_sse_chunks",
    "iter_sse_chunks",
]
