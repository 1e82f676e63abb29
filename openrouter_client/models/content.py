"""Message content parts and the string-or-array content codec.

On the wire a chat message's ``content`` is either a bare string or an
array of typed part objects. In memory it is always a list of parts:

- decode: a string becomes one text part, null becomes an empty list, an
  array is decoded element by element using the ``type`` discriminant.
- encode: a single non-empty text part is compacted to a bare string,
  anything else is written as an array.
"""

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..errors import ElementDecodeError, MalformedContent


class ContentKind(str, Enum):
    """Discriminant values for content parts."""

    TEXT = "text"
    IMAGE_URL = "image_url"
    INPUT_AUDIO = "input_audio"


class ImageReference(BaseModel):
    """Image URL with optional detail level."""

    model_config = ConfigDict(frozen=True)

    url: str  # https://... or data:image/png;base64,...
    detail: Optional[str] = None


class AudioContent(BaseModel):
    """Inline audio clip."""

    model_config = ConfigDict(frozen=True)

    data: str  # base64 or URI
    format: str = "wav"


class TextPart(BaseModel):
    """Text content block."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str

    @property
    def kind(self) -> ContentKind:
        return ContentKind.TEXT


class ImagePart(BaseModel):
    """Image URL content block."""

    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    image_url: ImageReference

    @property
    def kind(self) -> ContentKind:
        return ContentKind.IMAGE_URL


class AudioPart(BaseModel):
    """Audio content block."""

    model_config = ConfigDict(frozen=True)

    type: Literal["input_audio"] = "input_audio"
    input_audio: AudioContent

    @property
    def kind(self) -> ContentKind:
        return ContentKind.INPUT_AUDIO


ContentPart = Annotated[Union[TextPart, ImagePart, AudioPart], Field(discriminator="type")]

_part_adapter: TypeAdapter = TypeAdapter(ContentPart)

# Payload field carried by each kind; exactly one may be populated.
_PAYLOAD_FIELDS = {
    ContentKind.TEXT: "text",
    ContentKind.IMAGE_URL: "image_url",
    ContentKind.INPUT_AUDIO: "input_audio",
}


# =============================================================================
# Factories
# =============================================================================


def text(value: str) -> TextPart:
    """Create a text part."""
    return TextPart(text=value)


def image(url: str, detail: Optional[str] = None) -> ImagePart:
    """Create an image reference part."""
    return ImagePart(image_url=ImageReference(url=url, detail=detail))


def audio(data: str, format: str = "wav") -> AudioPart:
    """Create an audio clip part."""
    return AudioPart(input_audio=AudioContent(data=data, format=format))


# =============================================================================
# Codec
# =============================================================================


def decode_part(element: Any, index: int = 0) -> Union[TextPart, ImagePart, AudioPart]:
    """Decode one content array element, checking that its discriminant
    matches the payload field it actually carries."""
    if isinstance(element, (TextPart, ImagePart, AudioPart)):
        return element

    if not isinstance(element, dict):
        raise ElementDecodeError(index, f"expected an object, got {type(element).__name__}")

    try:
        kind = ContentKind(element.get("type"))
    except ValueError:
        raise ElementDecodeError(index, f"unknown content type {element.get('type')!r}") from None

    populated = {
        field for field in _PAYLOAD_FIELDS.values() if element.get(field) is not None
    }
    if populated != {_PAYLOAD_FIELDS[kind]}:
        raise ElementDecodeError(
            index,
            f"type {kind.value!r} does not match populated fields {sorted(populated)}",
        )

    try:
        return _part_adapter.validate_python(element)
    except ValidationError as e:
        raise ElementDecodeError(index, str(e)) from e


def decode_content(value: Any) -> List[Union[TextPart, ImagePart, AudioPart]]:
    """Decode a wire ``content`` value into a list of parts.

    A malformed array element fails the whole decode with
    ElementDecodeError; elements are never silently dropped.
    """
    if value is None:
        return []

    if isinstance(value, str):
        return [text(value)]

    if isinstance(value, (list, tuple)):
        return [decode_part(element, index) for index, element in enumerate(value)]

    raise MalformedContent(type(value).__name__)


def encode_content(
    parts: Sequence[Union[TextPart, ImagePart, AudioPart]],
) -> Union[str, List[dict]]:
    """Encode parts into the wire ``content`` value."""
    if len(parts) == 1 and isinstance(parts[0], TextPart) and parts[0].text:
        return parts[0].text

    return [part.model_dump(mode="json", exclude_none=True) for part in parts]
