import pytest

from code_executor import (
    Boolean,
    ChatMessage,
    ChatTranscript,
    ExecutionRequest,
    HandleType,
    ImageInlinePart,
    ImageUrlPart,
    Number,
    PartList,
    PlainText,
    Text,
    TextList,
    TextPart,
)
from code_executor.native import from_native, to_native
from code_executor.values import matches_handle


def test_number_rejects_bool_and_widens_int() -> None:
    assert Number(3).value == 3.0
    assert isinstance(Number(3).value, float)
    with pytest.raises(TypeError):
        Number(True)


def test_number_rejects_integers_beyond_double_range() -> None:
    with pytest.raises(ValueError, match="double range"):
        Number(10 ** 400)


def test_boolean_requires_bool() -> None:
    with pytest.raises(TypeError):
        Boolean(1)


def test_sequences_are_frozen_tuples() -> None:
    values = ["a", "b"]
    text_list = TextList(values)
    values.append("c")
    assert text_list.values == ("a", "b")
    assert TextList(["a", "b"]) == TextList(("a", "b"))
    assert hash(TextList(["a"])) == hash(TextList(["a"]))


def test_text_list_rejects_non_strings() -> None:
    with pytest.raises(TypeError):
        TextList(["a", 1])


def test_empty_containers_are_distinct_variants() -> None:
    assert TextList([]) != ChatTranscript([])
    assert Text("") != TextList([])


def test_matches_handle() -> None:
    assert matches_handle(Text("x"), HandleType.STRING)
    assert matches_handle(Number(1.0), HandleType.FLOAT)
    assert not matches_handle(Number(1.0), HandleType.STRING)
    assert not matches_handle(Boolean(True), HandleType.FLOAT)
    assert matches_handle(Boolean(True), HandleType.ANY)


def test_chat_message_content_must_be_text_or_parts() -> None:
    with pytest.raises(TypeError):
        ChatMessage("user", "hello")


def test_from_native_maps_each_shape_to_one_variant() -> None:
    assert from_native("x") == Text("x")
    assert from_native(2) == Number(2.0)
    assert from_native(False) == Boolean(False)
    assert from_native(["a"]) == TextList(["a"])
    assert from_native([{"role": "user", "content": "hi"}]) == ChatTranscript(
        [ChatMessage("user", PlainText("hi"))]
    )


def test_from_native_empty_list_follows_hint() -> None:
    assert from_native([]) == TextList([])
    assert from_native([], HandleType.CHAT_TRANSCRIPT) == ChatTranscript([])


def test_from_native_rejects_unrepresentable_objects() -> None:
    with pytest.raises(TypeError):
        from_native({"a": 1})
    with pytest.raises(TypeError):
        from_native(None)
    with pytest.raises(TypeError):
        from_native(["a", 1])


def test_chat_parts_convert_to_openai_style_dicts() -> None:
    transcript = ChatTranscript(
        [
            ChatMessage(
                "user",
                PartList(
                    [
                        TextPart("what is this?"),
                        ImageUrlPart("https://example.com/cat.png"),
                        ImageInlinePart("image/png", "iVBORw0KGgo="),
                    ]
                ),
            )
        ]
    )

    native = to_native(transcript)

    assert native == [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "what is this?"},
                {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
                {"type": "image", "media_type": "image/png", "data": "iVBORw0KGgo="},
            ],
        }
    ]
    assert from_native(native) == transcript


def test_request_arguments_are_read_only() -> None:
    request = ExecutionRequest("def f():\n    return 1", "f", {"a": Text("x")})

    with pytest.raises(TypeError):
        request.arguments["b"] = Text("y")  # type: ignore[index]
    assert request.return_type is HandleType.ANY


def test_request_rejects_plain_arguments() -> None:
    with pytest.raises(TypeError):
        ExecutionRequest("", "f", {"a": "x"})  # type: ignore[dict-item]
    with pytest.raises(TypeError):
        ExecutionRequest("", None)  # type: ignore[arg-type]
