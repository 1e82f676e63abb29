"""Exception types raised by the OpenRouter client."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models.common import ApiError


class OpenRouterError(Exception):
    """Base class for all client errors."""


class ConfigurationError(OpenRouterError):
    """Client options failed validation."""


class MalformedContent(OpenRouterError, ValueError):
    """A message ``content`` value was neither a string, an array, nor null."""

    def __init__(self, value_type: str):
        self.value_type = value_type
        super().__init__(f"Unexpected JSON type for message content: {value_type}")


class ElementDecodeError(OpenRouterError, ValueError):
    """One element of a content array could not be decoded into a content part."""

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Content element {index}: {reason}")


class TransportError(OpenRouterError):
    """The HTTP request failed before a response was received."""


class StreamTransportError(TransportError):
    """The SSE byte stream failed before a terminal state was reached."""


class UpstreamError(OpenRouterError):
    """The gateway answered with a non-success HTTP status.

    ``body`` holds the response text exactly as received. ``error`` is the
    gateway's error object when the body happened to be one, else None.
    """

    def __init__(self, status_code: int, body: str, error: Optional["ApiError"] = None):
        self.status_code = status_code
        self.body = body
        self.error = error
        super().__init__(f"OpenRouter API error ({status_code}): {body}")


class DecodeError(OpenRouterError):
    """A non-streaming response body could not be decoded."""

    def __init__(self, message: str, body: Optional[str] = None):
        self.body = body
        super().__init__(message)


class RequestCancelled(OpenRouterError):
    """The caller's cancellation signal was set before the response arrived."""
