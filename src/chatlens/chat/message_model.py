"""Chat message and fragment data models.

Assistant turns arrive from the serving backend as an ordered list of UI
"parts" (``{"type": "text", "text": ...}``, ``{"type": "tool-<name>", ...}``
and so on). This module decodes those parts into a small closed set of
fragment dataclasses and encodes them back for the rendering layer.
Decoding never raises: anything it does not understand becomes an
:class:`OtherFragment` carrying the original payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional, Sequence, Union

__all__ = [
    "ChatRole",
    "Fragment",
    "Message",
    "OtherFragment",
    "SystemErrorFragment",
    "TextFragment",
    "ToolInvocationFragment",
    "display_text",
    "fragment_from_dict",
    "fragment_to_dict",
    "message_from_dict",
    "message_to_dict",
]

ChatRole = Literal["user", "assistant", "system"]

TEXT_PART_TYPE = "text"
ERROR_PART_TYPE = "data-error"
DYNAMIC_TOOL_PART_TYPE = "dynamic-tool"
TOOL_PART_PREFIX = "tool-"


@dataclass(frozen=True, slots=True)
class TextFragment:
    """Plain markdown text emitted by a speaker."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolInvocationFragment:
    """A tool call issued by an agent; ``input`` is whatever the backend sent.

    Decoded fragments keep the part they came from in ``wire`` so that a
    tool call the sanitizer does not touch is encoded back verbatim.
    """

    tool_name: str
    input: Any = None
    tool_call_id: str | None = None
    state: str | None = None
    dynamic: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)
    wire: Mapping[str, Any] | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class SystemErrorFragment:
    """Internal error emitted by the backend stream."""

    payload: Any = None


@dataclass(frozen=True, slots=True)
class OtherFragment:
    """Any fragment kind the sanitizer does not interpret (widgets, files, ...)."""

    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)


Fragment = Union[TextFragment, ToolInvocationFragment, SystemErrorFragment, OtherFragment]


@dataclass(frozen=True, slots=True)
class Message:
    """One conversation turn.

    ``fragments`` is ``None`` when the upstream message carried no part list at
    all, which is distinct from an empty sequence.
    """

    id: str
    role: ChatRole
    fragments: Optional[tuple[Fragment, ...]] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_user(self) -> bool:
        return self.role == "user"


def fragment_from_dict(part: Any) -> Fragment:
    """Decode a single wire part into a fragment."""

    if not isinstance(part, Mapping):
        return OtherFragment(kind="unknown", payload={"value": part})
    kind = part.get("type")
    if not isinstance(kind, str) or not kind:
        return OtherFragment(kind="unknown", payload=dict(part))

    if kind == TEXT_PART_TYPE:
        text = part.get("text")
        if isinstance(text, str):
            return TextFragment(text=text)
        return OtherFragment(kind=kind, payload=dict(part))
    if kind == ERROR_PART_TYPE:
        return SystemErrorFragment(payload=part.get("data"))
    if kind == DYNAMIC_TOOL_PART_TYPE:
        tool_name = part.get("toolName")
        if isinstance(tool_name, str) and tool_name:
            return _tool_fragment(tool_name, part, known_keys=("type", "toolName"), dynamic=True)
        return OtherFragment(kind=kind, payload=dict(part))
    if kind.startswith(TOOL_PART_PREFIX) and len(kind) > len(TOOL_PART_PREFIX):
        return _tool_fragment(kind[len(TOOL_PART_PREFIX):], part, known_keys=("type",))
    return OtherFragment(kind=kind, payload=dict(part))


def fragment_to_dict(fragment: Fragment) -> Dict[str, Any]:
    """Encode a fragment back into its wire part."""

    if isinstance(fragment, TextFragment):
        return {"type": TEXT_PART_TYPE, "text": fragment.text}
    if isinstance(fragment, SystemErrorFragment):
        payload: Dict[str, Any] = {"type": ERROR_PART_TYPE}
        if fragment.payload is not None:
            payload["data"] = fragment.payload
        return payload
    if isinstance(fragment, ToolInvocationFragment):
        if fragment.wire is not None:
            return dict(fragment.wire)
        payload = dict(fragment.extra)
        if fragment.dynamic:
            payload["type"] = DYNAMIC_TOOL_PART_TYPE
            payload["toolName"] = fragment.tool_name
        else:
            payload["type"] = f"{TOOL_PART_PREFIX}{fragment.tool_name}"
        if fragment.input is not None:
            payload["input"] = fragment.input
        if fragment.tool_call_id is not None:
            payload["toolCallId"] = fragment.tool_call_id
        if fragment.state is not None:
            payload["state"] = fragment.state
        return payload
    return dict(fragment.payload)


def message_from_dict(payload: Mapping[str, Any]) -> Message:
    """Decode a wire message (``id``, ``role``, ``parts``, ``metadata``)."""

    raw_parts = payload.get("parts")
    fragments: tuple[Fragment, ...] | None
    if raw_parts is None:
        fragments = None
    elif isinstance(raw_parts, Sequence) and not isinstance(raw_parts, (str, bytes)):
        fragments = tuple(fragment_from_dict(part) for part in raw_parts)
    else:
        fragments = ()
    metadata = payload.get("metadata")
    return Message(
        id=str(payload.get("id") or ""),
        role=_coerce_role(payload.get("role")),
        fragments=fragments,
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


def message_to_dict(message: Message) -> Dict[str, Any]:
    """Encode a message for the rendering layer."""

    payload: Dict[str, Any] = {"id": message.id, "role": message.role}
    if message.fragments is not None:
        payload["parts"] = [fragment_to_dict(fragment) for fragment in message.fragments]
    if message.metadata:
        payload["metadata"] = dict(message.metadata)
    return payload


def display_text(message: Message) -> str:
    """Concatenate the text fragments of ``message`` as the user would read them."""

    if not message.fragments:
        return ""
    return "".join(
        fragment.text for fragment in message.fragments if isinstance(fragment, TextFragment)
    ).strip()


def _tool_fragment(
    tool_name: str,
    part: Mapping[str, Any],
    *,
    known_keys: tuple[str, ...],
    dynamic: bool = False,
) -> ToolInvocationFragment:
    consumed = set(known_keys) | {"input", "toolCallId", "state"}
    extra = {key: value for key, value in part.items() if key not in consumed}
    tool_call_id = part.get("toolCallId")
    state = part.get("state")
    return ToolInvocationFragment(
        tool_name=tool_name,
        input=part.get("input"),
        tool_call_id=str(tool_call_id) if tool_call_id is not None else None,
        state=str(state) if state is not None else None,
        dynamic=dynamic,
        extra=extra,
        wire=dict(part),
    )


def _coerce_role(value: Any) -> ChatRole:
    normalized = str(value or "").strip().lower()
    if normalized in ("user", "system"):
        return normalized  # type: ignore[return-value]
    return "assistant"
