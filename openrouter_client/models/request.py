"""Chat completion request models."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from .common import GeneratedImage, ToolCall
from .content import (
    AudioPart,
    ContentPart,
    ImagePart,
    TextPart,
    decode_content,
    encode_content,
    text,
)


class ChatRole(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ChatMessage(BaseModel):
    """Chat message model.

    ``content`` accepts either wire form (bare string or part array) and is
    stored as a list of parts; serialization compacts it back.
    """

    role: ChatRole = ChatRole.USER
    content: List[ContentPart] = Field(default_factory=list)
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    images: Optional[List[GeneratedImage]] = None

    @field_validator("content", mode="before")
    @classmethod
    def decode_wire_content(cls, v: Any) -> List[Any]:
        """Accept a bare string, a part array, or null."""
        return decode_content(v)

    @field_serializer("content")
    def encode_wire_content(self, parts: List[ContentPart]) -> Union[str, List[dict]]:
        return encode_content(parts)

    @model_validator(mode="after")
    def check_tool_call_id(self) -> "ChatMessage":
        if self.role == ChatRole.TOOL and not self.tool_call_id:
            raise ValueError("tool messages require a non-empty tool_call_id")
        return self

    # Constructors

    @classmethod
    def _build(cls, role: ChatRole, parts: tuple) -> "ChatMessage":
        content = [text(p) if isinstance(p, str) else p for p in parts]
        return cls(role=role, content=content)

    @classmethod
    def system(cls, *parts: Union[str, ContentPart]) -> "ChatMessage":
        return cls._build(ChatRole.SYSTEM, parts)

    @classmethod
    def user(cls, *parts: Union[str, ContentPart]) -> "ChatMessage":
        return cls._build(ChatRole.USER, parts)

    @classmethod
    def assistant(cls, *parts: Union[str, ContentPart]) -> "ChatMessage":
        return cls._build(ChatRole.ASSISTANT, parts)

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> "ChatMessage":
        return cls(role=ChatRole.TOOL, content=[text(content)], tool_call_id=tool_call_id)

    # Helpers

    @property
    def first_text(self) -> Optional[str]:
        return next((p.text for p in self.content if isinstance(p, TextPart)), None)

    @property
    def combined_text(self) -> str:
        """All text parts joined with a single space."""
        return " ".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def has_images(self) -> bool:
        return any(isinstance(p, ImagePart) for p in self.content)

    @property
    def has_audio(self) -> bool:
        return any(isinstance(p, AudioPart) for p in self.content)

    @property
    def is_multimodal(self) -> bool:
        return len(self.content) > 1 or any(not isinstance(p, TextPart) for p in self.content)

    @property
    def is_tool_response(self) -> bool:
        return self.role == ChatRole.TOOL and bool(self.tool_call_id)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class FunctionDescription(BaseModel):
    """Function made available to the model."""

    name: str
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None  # JSON schema


class Tool(BaseModel):
    """Tool definition."""

    type: Literal["function"] = "function"
    function: FunctionDescription


class ResponseFormat(BaseModel):
    """Requested response format."""

    type: Literal["text", "json_object", "json_schema"] = "text"
    json_schema: Optional[Dict[str, Any]] = None


class Prediction(BaseModel):
    """Predicted output used to speed up generation."""

    type: Literal["content"] = "content"
    content: str = ""


class ChatCompletionRequest(BaseModel):
    """Chat completion request.

    ``stream`` is overwritten by the client to match the call mode; an empty
    ``messages`` list is forwarded unchanged for the gateway to validate.
    """

    model: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    prompt: Optional[str] = None
    stream: Optional[bool] = None

    # Sampling
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    min_p: Optional[float] = None
    top_a: Optional[float] = None
    seed: Optional[int] = None
    stop: Optional[Union[str, List[str]]] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    repetition_penalty: Optional[float] = None
    logit_bias: Optional[Dict[str, float]] = None
    logprobs: Optional[bool] = None
    top_logprobs: Optional[int] = None

    # Tools and output shape
    tools: Optional[List[Tool]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    parallel_tool_calls: Optional[bool] = None
    response_format: Optional[ResponseFormat] = None
    modalities: Optional[List[Literal["text", "image"]]] = None
    prediction: Optional[Prediction] = None
    verbosity: Optional[Literal["low", "medium", "high"]] = None

    # Gateway routing extensions
    models: Optional[List[str]] = None
    route: Optional[str] = None
    provider: Optional[Dict[str, Any]] = None
    transforms: Optional[List[str]] = None
    user: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON body, omitting unset fields."""
        return self.model_dump(mode="json", exclude_none=True)
