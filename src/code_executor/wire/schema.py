"""Protobuf schema of the execution protocol.

The descriptor mirrors `proto/code_executor.proto` field for field and is
registered in a private pool at import time, so no generated modules are
needed. Field numbers are the compatibility contract: add, never renumber.
"""

from __future__ import annotations

from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "code_executor_grpc"
SERVICE_NAME = f"{PACKAGE}.CodeExecutor"
EXECUTE_METHOD = f"/{SERVICE_NAME}/Execute"
PROTO_FILE_NAME = "code_executor.proto"

_Field = descriptor_pb2.FieldDescriptorProto


def _add_field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    field_type: int,
    *,
    type_name: str | None = None,
    repeated: bool = False,
    oneof_index: int | None = None,
) -> None:
    """Append one field declaration to a message descriptor.

    Example:
        ```python
        _add_field(msg, "text", 1, _Field.TYPE_STRING)
        ```
    """
    field = message.field.add()
    field.name = name
    field.number = number
    field.type = field_type  # type: ignore[assignment]
    field.label = _Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL  # type: ignore[assignment]
    if type_name is not None:
        field.type_name = f".{PACKAGE}.{type_name}"
    if oneof_index is not None:
        field.oneof_index = oneof_index


def _add_message(
    container: Any,
    name: str,
) -> descriptor_pb2.DescriptorProto:
    """Create a message descriptor under a file or a parent message.

    Example:
        ```python
        msg = _add_message(file_proto.message_type, "StringList")
        ```
    """
    message = container.add()
    message.name = name
    return message


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Build the FileDescriptorProto for the execution protocol.

    Example:
        ```python
        proto = build_file_descriptor()
        [m.name for m in proto.message_type][:2]  # ["ChatMessageText", "ChatMessageImageUrl"]
        ```
    """
    file_proto = descriptor_pb2.FileDescriptorProto()
    file_proto.name = PROTO_FILE_NAME
    file_proto.package = PACKAGE
    file_proto.syntax = "proto3"
    messages = file_proto.message_type

    text = _add_message(messages, "ChatMessageText")
    _add_field(text, "text", 1, _Field.TYPE_STRING)

    image_url = _add_message(messages, "ChatMessageImageUrl")
    _add_field(image_url, "url", 1, _Field.TYPE_STRING)

    image = _add_message(messages, "ChatMessageImage")
    _add_field(image, "media_type", 1, _Field.TYPE_STRING)
    _add_field(image, "data", 2, _Field.TYPE_STRING)

    part = _add_message(messages, "ChatMessageContentPart")
    part.oneof_decl.add().name = "value"
    _add_field(part, "text", 1, _Field.TYPE_MESSAGE, type_name="ChatMessageText", oneof_index=0)
    _add_field(
        part, "image_url", 2, _Field.TYPE_MESSAGE, type_name="ChatMessageImageUrl", oneof_index=0
    )
    _add_field(part, "image", 3, _Field.TYPE_MESSAGE, type_name="ChatMessageImage", oneof_index=0)

    part_list = _add_message(messages, "ContentPartList")
    _add_field(
        part_list, "parts", 1, _Field.TYPE_MESSAGE, type_name="ChatMessageContentPart", repeated=True
    )

    content = _add_message(messages, "ChatMessageContent")
    content.oneof_decl.add().name = "value"
    _add_field(content, "text", 1, _Field.TYPE_STRING, oneof_index=0)
    _add_field(
        content, "content_part_list", 2, _Field.TYPE_MESSAGE, type_name="ContentPartList", oneof_index=0
    )

    message_list = _add_message(messages, "ChatMessageList")
    chat_message = _add_message(message_list.nested_type, "ChatMessage")
    _add_field(chat_message, "role", 1, _Field.TYPE_STRING)
    _add_field(chat_message, "content", 2, _Field.TYPE_MESSAGE, type_name="ChatMessageContent")
    _add_field(
        message_list,
        "messages",
        1,
        _Field.TYPE_MESSAGE,
        type_name="ChatMessageList.ChatMessage",
        repeated=True,
    )

    string_list = _add_message(messages, "StringList")
    _add_field(string_list, "values", 1, _Field.TYPE_STRING, repeated=True)

    arg = _add_message(messages, "Arg")
    arg.oneof_decl.add().name = "value"
    _add_field(arg, "string_value", 1, _Field.TYPE_STRING, oneof_index=0)
    _add_field(arg, "messages_value", 2, _Field.TYPE_MESSAGE, type_name="ChatMessageList", oneof_index=0)
    _add_field(arg, "string_list_value", 3, _Field.TYPE_MESSAGE, type_name="StringList", oneof_index=0)
    _add_field(arg, "float_value", 4, _Field.TYPE_DOUBLE, oneof_index=0)
    _add_field(arg, "bool_value", 5, _Field.TYPE_BOOL, oneof_index=0)

    handle_type = file_proto.enum_type.add()
    handle_type.name = "HandleType"
    for name, number in (
        ("ANY", 0),
        ("STRING", 1),
        ("STRING_LIST", 2),
        ("CHAT_MESSAGE_LIST", 3),
        ("FLOAT", 4),
    ):
        enum_value = handle_type.value.add()
        enum_value.name = name
        enum_value.number = number

    request = _add_message(messages, "ExecuteCodeRequest")
    args_entry = _add_message(request.nested_type, "ArgsEntry")
    args_entry.options.map_entry = True
    _add_field(args_entry, "key", 1, _Field.TYPE_STRING)
    _add_field(args_entry, "value", 2, _Field.TYPE_MESSAGE, type_name="Arg")
    _add_field(request, "code", 1, _Field.TYPE_STRING)
    _add_field(request, "fn_name", 2, _Field.TYPE_STRING)
    _add_field(
        request, "args", 3, _Field.TYPE_MESSAGE, type_name="ExecuteCodeRequest.ArgsEntry", repeated=True
    )
    _add_field(request, "return_type", 4, _Field.TYPE_ENUM, type_name="HandleType")

    response = _add_message(messages, "ExecuteCodeResponse")
    error_message = _add_message(response.nested_type, "ErrorMessage")
    _add_field(error_message, "message", 1, _Field.TYPE_STRING)
    response.oneof_decl.add().name = "response"
    _add_field(response, "result", 1, _Field.TYPE_MESSAGE, type_name="Arg", oneof_index=0)
    _add_field(
        response,
        "error",
        2,
        _Field.TYPE_MESSAGE,
        type_name="ExecuteCodeResponse.ErrorMessage",
        oneof_index=0,
    )

    service = file_proto.service.add()
    service.name = "CodeExecutor"
    method = service.method.add()
    method.name = "Execute"
    method.input_type = f".{PACKAGE}.ExecuteCodeRequest"
    method.output_type = f".{PACKAGE}.ExecuteCodeResponse"

    return file_proto


POOL = descriptor_pool.DescriptorPool()
POOL.AddSerializedFile(build_file_descriptor().SerializeToString())


def message_class(name: str) -> Any:
    """Return the message class for a top-level message of the protocol.

    Example:
        ```python
        Arg = message_class("Arg")
        Arg(string_value="x").WhichOneof("value")  # "string_value"
        ```
    """
    return message_factory.GetMessageClass(POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


Arg = message_class("Arg")
ChatMessageList = message_class("ChatMessageList")
ChatMessageContentPart = message_class("ChatMessageContentPart")
ExecuteCodeRequest = message_class("ExecuteCodeRequest")
ExecuteCodeResponse = message_class("ExecuteCodeResponse")
