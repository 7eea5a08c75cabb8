"""Tests for wire decoding of chat messages."""

from __future__ import annotations

from chatlens.chat.message_model import (
    Message,
    OtherFragment,
    SystemErrorFragment,
    TextFragment,
    ToolInvocationFragment,
    display_text,
    fragment_from_dict,
    fragment_to_dict,
    message_from_dict,
    message_to_dict,
)


def test_text_part_decodes_to_text_fragment() -> None:
    assert fragment_from_dict({"type": "text", "text": "hi"}) == TextFragment("hi")


def test_data_error_part_decodes_to_system_error() -> None:
    fragment = fragment_from_dict({"type": "data-error", "data": {"message": "boom"}})

    assert fragment == SystemErrorFragment({"message": "boom"})


def test_tool_part_splits_name_and_keeps_extra_keys() -> None:
    part = {
        "type": "tool-databricks-tool-call",
        "toolCallId": "abc",
        "state": "input-available",
        "input": {"request": "hello"},
        "providerMetadata": {"x": 1},
    }

    fragment = fragment_from_dict(part)

    assert isinstance(fragment, ToolInvocationFragment)
    assert fragment.tool_name == "databricks-tool-call"
    assert fragment.tool_call_id == "abc"
    assert fragment.state == "input-available"
    assert fragment.input == {"request": "hello"}
    assert fragment.extra == {"providerMetadata": {"x": 1}}
    assert fragment_to_dict(fragment) == part


def test_dynamic_tool_part_keeps_its_type() -> None:
    part = {"type": "dynamic-tool", "toolName": "lookup", "input": {"id": 3}}

    fragment = fragment_from_dict(part)

    assert isinstance(fragment, ToolInvocationFragment)
    assert fragment.tool_name == "lookup"
    assert fragment.dynamic is True
    assert fragment_to_dict(fragment) == part


def test_malformed_parts_become_other_fragments() -> None:
    assert fragment_from_dict("text") == OtherFragment("unknown", {"value": "text"})
    assert fragment_from_dict({"text": "no type"}) == OtherFragment("unknown", {"text": "no type"})
    assert fragment_from_dict({"type": "text", "text": 5}) == OtherFragment(
        "text", {"type": "text", "text": 5}
    )
    assert fragment_from_dict({"type": "tool-"}) == OtherFragment("tool-", {"type": "tool-"})
    assert fragment_from_dict({"type": "dynamic-tool"}).kind == "dynamic-tool"  # type: ignore[union-attr]


def test_message_from_dict_distinguishes_missing_parts() -> None:
    missing = message_from_dict({"id": "1", "role": "assistant"})
    empty = message_from_dict({"id": "2", "role": "assistant", "parts": []})
    garbage = message_from_dict({"id": "3", "role": "assistant", "parts": "oops"})

    assert missing.fragments is None
    assert empty.fragments == ()
    assert garbage.fragments == ()
    assert "parts" not in message_to_dict(missing)


def test_message_from_dict_normalizes_role_and_metadata() -> None:
    message = message_from_dict({"id": 7, "role": "USER", "parts": [], "metadata": "x"})

    assert message.id == "7"
    assert message.is_user
    assert message.metadata == {}
    assert message_from_dict({"role": "tool"}).role == "assistant"


def test_message_to_dict_includes_metadata_when_present() -> None:
    message = Message(id="a", role="assistant", fragments=(TextFragment("x"),), metadata={"k": "v"})

    assert message_to_dict(message) == {
        "id": "a",
        "role": "assistant",
        "parts": [{"type": "text", "text": "x"}],
        "metadata": {"k": "v"},
    }


def test_display_text_joins_text_fragments() -> None:
    message = Message(
        id="a",
        role="assistant",
        fragments=(TextFragment(" Hello"), ToolInvocationFragment("x"), TextFragment(" world ")),
    )

    assert display_text(message) == "Hello world"
    assert display_text(Message(id="b", role="assistant", fragments=None)) == ""


def test_tool_part_encodes_back_verbatim() -> None:
    part = {"type": "tool-web-search", "toolCallId": 7, "input": None, "state": None}

    fragment = fragment_from_dict(part)

    assert isinstance(fragment, ToolInvocationFragment)
    assert fragment_to_dict(fragment) == part


def test_constructed_tool_fragment_encodes_from_fields() -> None:
    fragment = ToolInvocationFragment("lookup", input={"id": 1}, tool_call_id="c1")

    assert fragment_to_dict(fragment) == {
        "type": "tool-lookup",
        "input": {"id": 1},
        "toolCallId": "c1",
    }
