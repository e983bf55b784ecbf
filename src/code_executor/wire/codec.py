from __future__ import annotations

from typing import Any

from google.protobuf import message as _message

from ..contract import ExecutionError, ExecutionOutcome, ExecutionRequest, ExecutionResult
from ..errors import MalformedPayload, ProtocolViolation, UnknownVariant
from ..values import (
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
    variant_name,
)
from . import schema


def _parse(message_cls: Any, payload: bytes) -> Any:
    """Parse bytes into a fresh message, mapping parse errors to MalformedPayload.

    Example:
        ```python
        arg = _parse(schema.Arg, b"\\n\\x01x")
        ```
    """
    parsed = message_cls()
    try:
        parsed.ParseFromString(payload)
    except _message.DecodeError as exc:
        raise MalformedPayload(f"cannot parse {message_cls.DESCRIPTOR.name}: {exc}") from exc
    return parsed


def _variant(message: Any, oneof: str, where: str) -> str:
    """Return the set oneof member or raise for zero or unknown variants.

    A message with no known member but with bytes on the wire carries a
    variant from a newer schema.

    Example:
        ```python
        _variant(arg, "value", "argument 'a'")  # "string_value"
        ```
    """
    name = message.WhichOneof(oneof)
    if name is not None:
        return name
    message_name = message.DESCRIPTOR.name
    if message.ByteSize():
        raise UnknownVariant(message_name, f"unrecognised field data in {where}")
    raise ProtocolViolation(f"{message_name} in {where} has no variant set")


def _fill_part(target: Any, part: ChatContentPart) -> None:
    """Write one content part into a ChatMessageContentPart message.

    Example:
        ```python
        _fill_part(parts.add(), TextPart("hi"))
        ```
    """
    if isinstance(part, TextPart):
        target.text.SetInParent()
        target.text.text = part.text
    elif isinstance(part, ImageUrlPart):
        target.image_url.SetInParent()
        target.image_url.url = part.url
    elif isinstance(part, ImageInlinePart):
        target.image.SetInParent()
        target.image.media_type = part.media_type
        target.image.data = part.data
    else:
        raise TypeError(f"cannot encode content part {variant_name(part)}")


def _fill_content(target: Any, content: ChatContent) -> None:
    """Write message content into a ChatMessageContent message.

    Example:
        ```python
        _fill_content(entry.content, PlainText("hi"))
        ```
    """
    if isinstance(content, PlainText):
        target.text = content.text
    elif isinstance(content, PartList):
        target.content_part_list.SetInParent()
        for part in content.parts:
            _fill_part(target.content_part_list.parts.add(), part)
    else:
        raise TypeError(f"cannot encode chat content {variant_name(content)}")


def fill_arg(target: Any, value: Value) -> None:
    """Write a Value into an `Arg` message, setting exactly one variant.

    Example:
        ```python
        arg = schema.Arg()
        fill_arg(arg, TextList([]))
        arg.WhichOneof("value")  # "string_list_value"
        ```
    """
    if isinstance(value, Text):
        target.string_value = value.value
    elif isinstance(value, TextList):
        target.string_list_value.SetInParent()
        target.string_list_value.values.extend(value.values)
    elif isinstance(value, ChatTranscript):
        target.messages_value.SetInParent()
        for chat_message in value.messages:
            entry = target.messages_value.messages.add()
            entry.role = chat_message.role
            entry.content.SetInParent()
            _fill_content(entry.content, chat_message.content)
    elif isinstance(value, Number):
        target.float_value = value.value
    elif isinstance(value, Boolean):
        target.bool_value = value.value
    else:
        raise TypeError(f"cannot encode {variant_name(value)} as a value")


def _read_part(part: Any, where: str) -> ChatContentPart:
    """Decode one ChatMessageContentPart message.

    Example:
        ```python
        _read_part(part_message, "message 0 part 1")
        ```
    """
    kind = _variant(part, "value", where)
    if kind == "text":
        return TextPart(part.text.text)
    if kind == "image_url":
        return ImageUrlPart(part.image_url.url)
    return ImageInlinePart(media_type=part.image.media_type, data=part.image.data)


def _read_content(content: Any, where: str) -> ChatContent:
    """Decode a ChatMessageContent message.

    Example:
        ```python
        _read_content(entry.content, "message 0")
        ```
    """
    kind = _variant(content, "value", where)
    if kind == "text":
        return PlainText(content.text)
    return PartList(
        _read_part(part, f"{where} part {index}")
        for index, part in enumerate(content.content_part_list.parts)
    )


def read_arg(arg: Any, where: str = "value") -> Value:
    """Decode an `Arg` message into a Value.

    Example:
        ```python
        read_arg(arg_message, "argument 'a'")  # Text("x")
        ```
    """
    kind = _variant(arg, "value", where)
    if kind == "string_value":
        return Text(arg.string_value)
    if kind == "string_list_value":
        return TextList(arg.string_list_value.values)
    if kind == "messages_value":
        return ChatTranscript(
            ChatMessage(
                role=entry.role,
                content=_read_content(entry.content, f"{where} message {index}"),
            )
            for index, entry in enumerate(arg.messages_value.messages)
        )
    if kind == "float_value":
        return Number(arg.float_value)
    return Boolean(arg.bool_value)


def encode_value(value: Value) -> bytes:
    """Encode a Value as `Arg` bytes.

    Example:
        ```python
        decode_value(encode_value(Number(2.5)))  # Number(2.5)
        ```
    """
    arg = schema.Arg()
    fill_arg(arg, value)
    return arg.SerializeToString()


def decode_value(payload: bytes) -> Value:
    """Decode `Arg` bytes into a Value.

    Raises MalformedPayload for unparsable bytes, ProtocolViolation when no
    variant is set and UnknownVariant for variants from a newer schema.

    Example:
        ```python
        decode_value(encode_value(Text("x")))  # Text("x")
        ```
    """
    return read_arg(_parse(schema.Arg, payload))


def _handle_type(number: int) -> HandleType:
    """Map a wire enum number to HandleType.

    Example:
        ```python
        _handle_type(1)  # HandleType.STRING
        ```
    """
    try:
        return HandleType(number)
    except ValueError:
        raise UnknownVariant("HandleType", f"value {number}") from None


def request_to_message(request: ExecutionRequest) -> Any:
    """Build the ExecuteCodeRequest message for a request.

    Example:
        ```python
        msg = request_to_message(ExecutionRequest("...", "main"))
        ```
    """
    message = schema.ExecuteCodeRequest()
    message.code = request.code
    message.fn_name = request.entry_point
    message.return_type = int(request.return_type)
    for name, value in request.arguments.items():
        fill_arg(message.args[name], value)
    return message


def encode_request(request: ExecutionRequest) -> bytes:
    """Encode a request as ExecuteCodeRequest bytes.

    Example:
        ```python
        payload = encode_request(ExecutionRequest("def f():\\n    return 1", "f"))
        ```
    """
    return request_to_message(request).SerializeToString()


def decode_request(payload: bytes) -> ExecutionRequest:
    """Decode ExecuteCodeRequest bytes.

    Example:
        ```python
        decode_request(encode_request(req)) == req  # True
        ```
    """
    message = _parse(schema.ExecuteCodeRequest, payload)
    arguments = {
        name: read_arg(arg, f"argument '{name}'") for name, arg in message.args.items()
    }
    return ExecutionRequest(
        code=message.code,
        entry_point=message.fn_name,
        arguments=arguments,
        return_type=_handle_type(message.return_type),
    )


def encode_outcome(outcome: ExecutionOutcome) -> bytes:
    """Encode an outcome as ExecuteCodeResponse bytes.

    Example:
        ```python
        encode_outcome(ExecutionError("RuntimeFault: boom"))
        ```
    """
    message = schema.ExecuteCodeResponse()
    if isinstance(outcome, ExecutionResult):
        message.result.SetInParent()
        fill_arg(message.result, outcome.value)
    elif isinstance(outcome, ExecutionError):
        message.error.SetInParent()
        message.error.message = outcome.message
    else:
        raise TypeError(f"cannot encode {type(outcome).__name__} as an outcome")
    return message.SerializeToString()


def decode_outcome(payload: bytes) -> ExecutionOutcome:
    """Decode ExecuteCodeResponse bytes.

    Example:
        ```python
        decode_outcome(encode_outcome(ExecutionResult(Text("x"))))
        ```
    """
    message = _parse(schema.ExecuteCodeResponse, payload)
    kind = _variant(message, "response", "response")
    if kind == "error":
        return ExecutionError(message.error.message)
    return ExecutionResult(read_arg(message.result, "result"))
