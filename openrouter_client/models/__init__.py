"""Data models for the OpenRouter chat completions API."""

from .common import (
    ApiError,
    FunctionCall,
    FunctionCallDelta,
    GeneratedImage,
    GeneratedImageUrl,
    ToolCall,
    ToolCallDelta,
    Usage,
)
from .content import (
    AudioContent,
    AudioPart,
    ContentKind,
    ContentPart,
    ImagePart,
    ImageReference,
    TextPart,
    audio,
    decode_content,
    encode_content,
    image,
    text,
)
from .request import (
    ChatCompletionRequest,
    ChatMessage,
    ChatRole,
    FunctionDescription,
    Prediction,
    ResponseFormat,
    Tool,
)
from .response import (
    ChatChoice,
    ChatDelta,
    ChatResponse,
    FinishReason,
)

__all__ = [
    # Common
    "ApiError",
    "FunctionCall",
    "FunctionCallDelta",
    "GeneratedImage",
    "GeneratedImageUrl",
    "ToolCall",
    "ToolCallDelta",
    "Usage",
    # Content
    "AudioContent",
    "AudioPart",
    "ContentKind",
    "ContentPart",
    "ImagePart",
    "ImageReference",
    "TextPart",
    "audio",
    "decode_content",
    "encode_content",
    "image",
    "text",
    # Request
    "ChatCompletionRequest",
    "ChatMessage",
    "ChatRole",
    "FunctionDescription",
    "Prediction",
    "ResponseFormat",
    "Tool",
    # Response
    "ChatChoice",
    "ChatDelta",
    "ChatResponse",
    "FinishReason",
]
