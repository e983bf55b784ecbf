"""Conversion between boundary values and plain Python objects.

Pipeline code never imports this package, so arguments reach it as plain
objects (`str`, `list[str]`, `float`, `bool`, and chat messages as
OpenAI-style dicts) and return values are converted back the same way.
"""

from __future__ import annotations

from typing import Any, Mapping

from .values import (
    Boolean,
    ChatContent,
    ChatContentPart,
    ChatMessage,
    ChatTranscript,
    HandleType,
    ImageInlinePart,
    ImageUrlPart,
    Number,
    PartList,
    PlainText,
    Text,
    TextList,
    TextPart,
    Value,
    is_value,
)


def part_to_native(part: ChatContentPart) -> dict[str, Any]:
    """Convert one content part to its dict form.

    Example:
        ```python
        part_to_native(ImageUrlPart("https://x/a.png"))
        # {"type": "image_url", "image_url": {"url": "https://x/a.png"}}
        ```
    """
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ImageUrlPart):
        return {"type": "image_url", "image_url": {"url": part.url}}
    if isinstance(part, ImageInlinePart):
        return {"type": "image", "media_type": part.media_type, "data": part.data}
    raise TypeError(f"not a content part: {type(part).__name__}")


def message_to_native(message: ChatMessage) -> dict[str, Any]:
    """Convert a chat message to `{"role": ..., "content": ...}`.

    Example:
        ```python
        message_to_native(ChatMessage("user", PlainText("hi")))
        # {"role": "user", "content": "hi"}
        ```
    """
    content: Any
    if isinstance(message.content, PlainText):
        content = message.content.text
    else:
        content = [part_to_native(part) for part in message.content.parts]
    return {"role": message.role, "content": content}


def to_native(value: Value) -> Any:
    """Convert a Value into the plain object pipeline code receives.

    Example:
        ```python
        to_native(TextList(["a", "b"]))  # ["a", "b"]
        ```
    """
    if isinstance(value, Text):
        return value.value
    if isinstance(value, TextList):
        return list(value.values)
    if isinstance(value, ChatTranscript):
        return [message_to_native(message) for message in value.messages]
    if isinstance(value, Number):
        return value.value
    if isinstance(value, Boolean):
        return value.value
    raise TypeError(f"not a value: {type(value).__name__}")


def part_from_native(obj: Any) -> ChatContentPart:
    """Parse a content part dict (or pass a part instance through).

    Example:
        ```python
        part_from_native({"type": "text", "text": "hi"})  # TextPart("hi")
        ```
    """
    if isinstance(obj, (TextPart, ImageUrlPart, ImageInlinePart)):
        return obj
    if not isinstance(obj, Mapping):
        raise TypeError(f"content part must be a dict, got {type(obj).__name__}")
    kind = obj.get("type")
    if kind == "text":
        return TextPart(obj.get("text", ""))
    if kind == "image_url":
        image_url = obj.get("image_url")
        if isinstance(image_url, Mapping):
            return ImageUrlPart(image_url.get("url", ""))
        return ImageUrlPart(image_url if image_url is not None else obj.get("url", ""))
    if kind == "image":
        return ImageInlinePart(media_type=obj.get("media_type", ""), data=obj.get("data", ""))
    raise ValueError(f"unsupported content part type: {kind!r}")


def content_from_native(obj: Any) -> ChatContent:
    """Parse message content given as a string or a list of parts.

    Example:
        ```python
        content_from_native("hi")  # PlainText("hi")
        ```
    """
    if isinstance(obj, (PlainText, PartList)):
        return obj
    if isinstance(obj, str):
        return PlainText(obj)
    if isinstance(obj, (list, tuple)):
        return PartList(part_from_native(item) for item in obj)
    raise TypeError(f"message content must be a str or list of parts, got {type(obj).__name__}")


def message_from_native(obj: Any) -> ChatMessage:
    """Parse a chat message dict (or pass a ChatMessage through).

    Example:
        ```python
        message_from_native({"role": "user", "content": "hi"})
        ```
    """
    if isinstance(obj, ChatMessage):
        return obj
    if not isinstance(obj, Mapping) or "role" not in obj or "content" not in obj:
        raise TypeError("chat message must be a dict with 'role' and 'content'")
    return ChatMessage(role=obj["role"], content=content_from_native(obj["content"]))


def _is_message_like(obj: Any) -> bool:
    """Return True for ChatMessage instances and role/content dicts.

    Example:
        ```python
        _is_message_like({"role": "user", "content": "x"})  # True
        ```
    """
    return isinstance(obj, ChatMessage) or (
        isinstance(obj, Mapping) and "role" in obj and "content" in obj
    )


def from_native(obj: Any, hint: HandleType = HandleType.ANY) -> Value:
    """Convert a plain object into a Value.

    `hint` only decides the variant of an empty list; every other shape maps
    to exactly one variant. Raises TypeError for objects with no Value form.

    Example:
        ```python
        from_native(3)  # Number(3.0)
        from_native([], HandleType.CHAT_TRANSCRIPT)  # ChatTranscript(())
        ```
    """
    if is_value(obj):
        return obj
    if isinstance(obj, bool):
        return Boolean(obj)
    if isinstance(obj, str):
        return Text(obj)
    if isinstance(obj, (int, float)):
        return Number(obj)
    if isinstance(obj, (list, tuple)):
        items = list(obj)
        if not items:
            if hint is HandleType.CHAT_TRANSCRIPT:
                return ChatTranscript()
            return TextList()
        if all(isinstance(item, str) for item in items):
            return TextList(items)
        if all(_is_message_like(item) for item in items):
            return ChatTranscript(message_from_native(item) for item in items)
        raise TypeError("list must contain only strings or only chat messages")
    raise TypeError(f"{type(obj).__name__} has no value representation")
