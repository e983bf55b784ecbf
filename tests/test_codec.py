import re
from pathlib import Path

import pytest

from code_executor import (
    Boolean,
    ChatMessage,
    ChatTranscript,
    ExecutionError,
    ExecutionRequest,
    ExecutionResult,
    HandleType,
    ImageInlinePart,
    ImageUrlPart,
    Number,
    PartList,
    PlainText,
    ProtocolViolation,
    Text,
    TextList,
    TextPart,
    UnknownVariant,
)
from code_executor.errors import MalformedPayload
from code_executor.wire import (
    decode_outcome,
    decode_request,
    decode_value,
    encode_outcome,
    encode_request,
    encode_value,
    schema,
)

PROTO_PATH = Path(__file__).resolve().parents[1] / "proto" / "code_executor.proto"

TRANSCRIPT = ChatTranscript(
    [
        ChatMessage("system", PlainText("be brief")),
        ChatMessage(
            "user",
            PartList(
                [
                    TextPart("what is in this picture?"),
                    ImageUrlPart("https://example.com/cat.png"),
                    ImageInlinePart("image/png", "iVBORw0KGgo="),
                ]
            ),
        ),
        ChatMessage("assistant", PartList([])),
    ]
)


@pytest.mark.parametrize(
    "value",
    [
        Text("hello"),
        Text(""),
        TextList(["a", "", "c"]),
        TextList([]),
        ChatTranscript([]),
        TRANSCRIPT,
        Number(2.5),
        Number(0.0),
        Number(-1e300),
        Boolean(True),
        Boolean(False),
    ],
)
def test_value_survives_the_wire(value) -> None:
    assert decode_value(encode_value(value)) == value


def test_empty_lists_keep_their_variant() -> None:
    assert isinstance(decode_value(encode_value(TextList([]))), TextList)
    assert isinstance(decode_value(encode_value(ChatTranscript([]))), ChatTranscript)


def test_plain_text_and_single_text_part_stay_distinct() -> None:
    plain = ChatTranscript([ChatMessage("user", PlainText("hi"))])
    parts = ChatTranscript([ChatMessage("user", PartList([TextPart("hi")]))])

    assert encode_value(plain) != encode_value(parts)
    assert decode_value(encode_value(parts)) == parts


def test_request_round_trip_keeps_argument_names_and_return_type() -> None:
    request = ExecutionRequest(
        code="def main(a: str, b: float) -> str:\n    return a * int(b)",
        entry_point="main",
        arguments={"a": Text("x"), "b": Number(2.0), "history": TRANSCRIPT},
        return_type=HandleType.CHAT_TRANSCRIPT,
    )

    decoded = decode_request(encode_request(request))

    assert decoded == request
    assert decoded.return_type is HandleType.CHAT_TRANSCRIPT


def test_outcomes_round_trip() -> None:
    assert decode_outcome(encode_outcome(ExecutionResult(Text("")))) == ExecutionResult(Text(""))
    assert decode_outcome(encode_outcome(ExecutionError("RuntimeFault: boom"))) == ExecutionError(
        "RuntimeFault: boom"
    )
    assert decode_outcome(encode_outcome(ExecutionError(""))) == ExecutionError("")


def test_unparsable_bytes_are_malformed() -> None:
    with pytest.raises(MalformedPayload):
        decode_value(b"\xff\xff")
    with pytest.raises(MalformedPayload):
        decode_request(b"\x0a\x05ab")


def test_value_without_variant_is_a_protocol_violation() -> None:
    with pytest.raises(ProtocolViolation) as exc:
        decode_value(b"")
    assert not isinstance(exc.value, UnknownVariant)


def test_response_without_variant_is_a_protocol_violation() -> None:
    with pytest.raises(ProtocolViolation):
        decode_outcome(b"")


def test_value_from_a_newer_schema_is_an_unknown_variant() -> None:
    # field 7, length-delimited, empty
    with pytest.raises(UnknownVariant):
        decode_value(b"\x3a\x00")


def test_unknown_content_part_is_an_unknown_variant() -> None:
    arg = schema.Arg()
    entry = arg.messages_value.messages.add()
    entry.role = "user"
    part = entry.content.content_part_list.parts.add()
    part.MergeFromString(b"\x3a\x00")

    with pytest.raises(UnknownVariant) as exc:
        decode_value(arg.SerializeToString())
    assert exc.value.message_name == "ChatMessageContentPart"


def test_unknown_return_type_is_an_unknown_variant() -> None:
    payload = encode_request(ExecutionRequest("def f():\n    return 1", "f"))
    # return_type (field 4) set to 9
    with pytest.raises(UnknownVariant) as exc:
        decode_request(payload + b"\x20\x09")
    assert exc.value.message_name == "HandleType"


def test_request_without_entry_point_decodes_to_an_empty_name() -> None:
    message = schema.ExecuteCodeRequest()
    message.code = "x = 1"

    request = decode_request(message.SerializeToString())

    assert request.entry_point == ""
    assert request.code == "x = 1"


def test_argument_without_variant_names_the_argument() -> None:
    message = schema.ExecuteCodeRequest()
    message.fn_name = "f"
    message.args.get_or_create("a")

    with pytest.raises(ProtocolViolation, match="argument 'a'"):
        decode_request(message.SerializeToString())


def test_wire_field_numbers_match_the_interface_file() -> None:
    declared = set(
        re.findall(
            r"^\s*(?:repeated\s+)?\w[\w<>, ]*?\s+(\w+)\s*=\s*(\d+);",
            PROTO_PATH.read_text(encoding="utf-8"),
            flags=re.MULTILINE,
        )
    )

    built: set[tuple[str, str]] = set()
    pending = list(schema.POOL.FindFileByName(schema.PROTO_FILE_NAME).message_types_by_name.values())
    while pending:
        descriptor = pending.pop()
        pending.extend(descriptor.nested_types)
        if descriptor.GetOptions().map_entry:
            continue
        built.update((field.name, str(field.number)) for field in descriptor.fields)

    assert declared == built


def test_handle_type_numbers_match_the_interface_file() -> None:
    enum = schema.POOL.FindEnumTypeByName(f"{schema.PACKAGE}.HandleType")

    assert {value.number for value in enum.values} == {int(handle) for handle in HandleType}
    assert enum.values_by_number[3].name == "CHAT_MESSAGE_LIST"
