"""Shared types for requests and responses."""

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field


# =============================================================================
# Tool calls (used by messages and stream deltas)
# =============================================================================


class FunctionCall(BaseModel):
    """Function invocation issued by the model."""

    name: str = ""
    arguments: str = ""  # JSON-encoded argument object


class ToolCall(BaseModel):
    """Complete tool call record."""

    id: str = ""
    type: Literal["function"] = "function"
    function: FunctionCall = Field(default_factory=FunctionCall)


class FunctionCallDelta(BaseModel):
    """Partial function call carried by a streaming chunk."""

    name: Optional[str] = None
    arguments: Optional[str] = None


class ToolCallDelta(BaseModel):
    """Tool call fragment; fragments sharing an index belong to one call."""

    index: int = 0
    id: Optional[str] = None
    type: Optional[str] = None
    function: Optional[FunctionCallDelta] = None


# =============================================================================
# Generated images (model output)
# =============================================================================


class GeneratedImageUrl(BaseModel):
    url: str = ""


class GeneratedImage(BaseModel):
    """Image produced by an image-capable model."""

    type: Literal["image_url"] = "image_url"
    image_url: GeneratedImageUrl = Field(default_factory=GeneratedImageUrl)


# =============================================================================
# Token usage and errors
# =============================================================================


class Usage(BaseModel):
    """Token usage statistics, present on the final chunk or response only."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cache_creation_input_tokens: Optional[int] = None
    cache_read_input_tokens: Optional[int] = None


class ApiError(BaseModel):
    """Error object returned by the gateway."""

    code: Optional[Union[int, str]] = None
    message: str = ""
    metadata: Optional[Dict[str, Any]] = None
