"""Chat completion response models.

One ``ChatResponse`` is either a whole non-streaming response or a single
streamed chunk. Streamed choices carry a ``delta``; non-streaming choices
carry a complete ``message``.
"""

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .common import ApiError, GeneratedImage, ToolCallDelta, Usage
from .request import ChatMessage, ChatRole


class FinishReason(str, Enum):
    """Why the model stopped generating."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


class ChatDelta(BaseModel):
    """Incremental message content for streaming."""

    content: Optional[str] = None
    role: Optional[ChatRole] = None
    tool_calls: Optional[List[ToolCallDelta]] = None
    images: Optional[List[GeneratedImage]] = None

    @field_validator("role", mode="before")
    @classmethod
    def blank_role_is_none(cls, v: Any) -> Any:
        # Some providers send "" on continuation chunks
        return v or None


class ChatChoice(BaseModel):
    """A response choice."""

    index: int = 0
    finish_reason: Optional[Union[FinishReason, str]] = None
    native_finish_reason: Optional[str] = None
    message: Optional[ChatMessage] = None
    delta: Optional[ChatDelta] = None
    error: Optional[ApiError] = None

    @field_validator("finish_reason", mode="before")
    @classmethod
    def known_finish_reason(cls, v: Any) -> Any:
        # Unrecognised reasons are kept as raw strings
        try:
            return FinishReason(v) if v is not None else None
        except ValueError:
            return str(v)

    @model_validator(mode="after")
    def check_message_or_delta(self) -> "ChatChoice":
        if self.message is not None and self.delta is not None:
            raise ValueError("a choice carries either message or delta, not both")
        return self

    @property
    def text(self) -> Optional[str]:
        """Delta content, or the message's combined text."""
        if self.delta is not None:
            return self.delta.content
        if self.message is not None:
            return self.message.combined_text
        return None


class ChatResponse(BaseModel):
    """Chat completion response or streaming chunk."""

    id: str = ""
    object: Optional[str] = None  # "chat.completion" or "chat.completion.chunk"
    created: int = 0
    model: str = ""
    provider: Optional[str] = None
    choices: List[ChatChoice] = Field(default_factory=list)
    usage: Optional[Usage] = None
    system_fingerprint: Optional[str] = None
    error: Optional[ApiError] = None

    @property
    def first_choice(self) -> Optional[ChatChoice]:
        return self.choices[0] if self.choices else None

    @property
    def content(self) -> Optional[str]:
        choice = self.first_choice
        return choice.text if choice is not None else None

    @property
    def finish_reason(self) -> Optional[Union[FinishReason, str]]:
        choice = self.first_choice
        return choice.finish_reason if choice is not None else None
