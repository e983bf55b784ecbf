from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Union


class HandleType(enum.IntEnum):
    """Declared type a caller expects back from an execution.

    Example:
        ```python
        HandleType.STRING_LIST.value  # 2
        ```
    """

    ANY = 0
    STRING = 1
    STRING_LIST = 2
    CHAT_TRANSCRIPT = 3
    FLOAT = 4


def _require_str(value: object, what: str) -> str:
    """Return `value` unchanged or raise TypeError if it is not a str.

    Example:
        ```python
        _require_str("user", "role")
        ```
    """
    if not isinstance(value, str):
        raise TypeError(f"{what} must be a str, got {type(value).__name__}")
    return value


@dataclass(frozen=True, slots=True)
class TextPart:
    """Plain text inside a multi-part chat message.

    Example:
        ```python
        TextPart("describe this image")
        ```
    """

    text: str

    def __post_init__(self) -> None:
        """Validate the text field.

        Example:
            ```python
            TextPart("hello")
            ```
        """
        _require_str(self.text, "TextPart.text")


@dataclass(frozen=True, slots=True)
class ImageUrlPart:
    """Image referenced by URL.

    Example:
        ```python
        ImageUrlPart("https://example.com/cat.png")
        ```
    """

    url: str

    def __post_init__(self) -> None:
        """Validate the url field.

        Example:
            ```python
            ImageUrlPart("https://example.com/cat.png")
            ```
        """
        _require_str(self.url, "ImageUrlPart.url")


@dataclass(frozen=True, slots=True)
class ImageInlinePart:
    """Image carried inline as a binary-safe (base64) string.

    Example:
        ```python
        ImageInlinePart(media_type="image/png", data="iVBORw0KGgo=")
        ```
    """

    media_type: str
    data: str

    def __post_init__(self) -> None:
        """Validate the media type and data fields.

        Example:
            ```python
            ImageInlinePart("image/jpeg", "/9j/4AAQ")
            ```
        """
        _require_str(self.media_type, "ImageInlinePart.media_type")
        _require_str(self.data, "ImageInlinePart.data")


ChatContentPart = Union[TextPart, ImageUrlPart, ImageInlinePart]
CONTENT_PART_TYPES = (TextPart, ImageUrlPart, ImageInlinePart)


@dataclass(frozen=True, slots=True)
class PlainText:
    """Chat message content that is a single string.

    Example:
        ```python
        PlainText("hi there")
        ```
    """

    text: str

    def __post_init__(self) -> None:
        """Validate the text field.

        Example:
            ```python
            PlainText("hi")
            ```
        """
        _require_str(self.text, "PlainText.text")


@dataclass(frozen=True, slots=True)
class PartList:
    """Chat message content made of ordered parts.

    Example:
        ```python
        PartList([TextPart("what is this?"), ImageUrlPart("https://example.com/a.png")])
        ```
    """

    parts: tuple[ChatContentPart, ...]

    def __init__(self, parts: Iterable[ChatContentPart] = ()) -> None:
        """Freeze the parts into a tuple and validate each one.

        Example:
            ```python
            PartList([TextPart("a"), TextPart("b")]).parts
            ```
        """
        frozen = tuple(parts)
        for part in frozen:
            if not isinstance(part, CONTENT_PART_TYPES):
                raise TypeError(f"PartList items must be content parts, got {type(part).__name__}")
        object.__setattr__(self, "parts", frozen)


ChatContent = Union[PlainText, PartList]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One message of a chat transcript; the role is an opaque label.

    Example:
        ```python
        ChatMessage(role="user", content=PlainText("hello"))
        ```
    """

    role: str
    content: ChatContent

    def __post_init__(self) -> None:
        """Validate role and content.

        Example:
            ```python
            ChatMessage("assistant", PlainText("hi"))
            ```
        """
        _require_str(self.role, "ChatMessage.role")
        if not isinstance(self.content, (PlainText, PartList)):
            raise TypeError(
                f"ChatMessage.content must be PlainText or PartList, got {type(self.content).__name__}"
            )


@dataclass(frozen=True, slots=True)
class Text:
    """String value.

    Example:
        ```python
        Text("hello")
        ```
    """

    value: str

    def __post_init__(self) -> None:
        """Validate the wrapped string.

        Example:
            ```python
            Text("x")
            ```
        """
        _require_str(self.value, "Text.value")


@dataclass(frozen=True, slots=True)
class TextList:
    """Ordered list of strings.

    Example:
        ```python
        TextList(["a", "b"])
        ```
    """

    values: tuple[str, ...]

    def __init__(self, values: Iterable[str] = ()) -> None:
        """Freeze the strings into a tuple and validate each one.

        Example:
            ```python
            TextList(["a", "b"]).values  # ("a", "b")
            ```
        """
        frozen = tuple(values)
        for item in frozen:
            _require_str(item, "TextList item")
        object.__setattr__(self, "values", frozen)


@dataclass(frozen=True, slots=True)
class ChatTranscript:
    """Ordered list of chat messages.

    Example:
        ```python
        ChatTranscript([ChatMessage("user", PlainText("hi"))])
        ```
    """

    messages: tuple[ChatMessage, ...]

    def __init__(self, messages: Iterable[ChatMessage] = ()) -> None:
        """Freeze the messages into a tuple and validate each one.

        Example:
            ```python
            ChatTranscript([]).messages  # ()
            ```
        """
        frozen = tuple(messages)
        for message in frozen:
            if not isinstance(message, ChatMessage):
                raise TypeError(
                    f"ChatTranscript items must be ChatMessage, got {type(message).__name__}"
                )
        object.__setattr__(self, "messages", frozen)


@dataclass(frozen=True, slots=True)
class Number:
    """Double-precision number.

    Example:
        ```python
        Number(2.5)
        ```
    """

    value: float

    def __post_init__(self) -> None:
        """Store the number as a float; bools are rejected.

        Example:
            ```python
            Number(3).value  # 3.0
            ```
        """
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise TypeError(f"Number.value must be a float, got {type(self.value).__name__}")
        try:
            object.__setattr__(self, "value", float(self.value))
        except OverflowError as exc:
            raise ValueError(f"Number.value is out of double range: {exc}") from exc


@dataclass(frozen=True, slots=True)
class Boolean:
    """Boolean value.

    Example:
        ```python
        Boolean(True)
        ```
    """

    value: bool

    def __post_init__(self) -> None:
        """Validate the wrapped bool.

        Example:
            ```python
            Boolean(False)
            ```
        """
        if not isinstance(self.value, bool):
            raise TypeError(f"Boolean.value must be a bool, got {type(self.value).__name__}")


Value = Union[Text, TextList, ChatTranscript, Number, Boolean]
VALUE_TYPES = (Text, TextList, ChatTranscript, Number, Boolean)

# Value variant each non-ANY handle type requires.
HANDLE_VARIANTS: dict[HandleType, type] = {
    HandleType.STRING: Text,
    HandleType.STRING_LIST: TextList,
    HandleType.CHAT_TRANSCRIPT: ChatTranscript,
    HandleType.FLOAT: Number,
}


def is_value(obj: object) -> bool:
    """Return True when `obj` is one of the closed Value variants.

    Example:
        ```python
        is_value(Text("a"))  # True
        is_value("a")  # False
        ```
    """
    return isinstance(obj, VALUE_TYPES)


def variant_name(value: object) -> str:
    """Return the variant name used in diagnostics.

    Example:
        ```python
        variant_name(Number(1.0))  # "Number"
        ```
    """
    return type(value).__name__


def matches_handle(value: Value, handle: HandleType) -> bool:
    """Check a value against a declared handle type; ANY accepts everything.

    Example:
        ```python
        matches_handle(Text("x"), HandleType.STRING)  # True
        matches_handle(Number(1.0), HandleType.STRING)  # False
        ```
    """
    if handle is HandleType.ANY:
        return True
    return isinstance(value, HANDLE_VARIANTS[handle])
