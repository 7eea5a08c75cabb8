"""Display sanitization for multi-agent assistant messages.

The serving backend interleaves output from a primary agent and its
sub-agents inside one assistant message. Speaker changes are announced by a
text fragment of the form ``<name>speaker</name>``. Only the primary agent's
text should reach the user, internal error fragments never should, and the
primary agent's hand-off tool calls are shown as a quoted request instead of
an opaque tool widget.

The transform is a single fold per message::

    classify -> rewrite (gate decides visibility) -> append
                      \\-> identity markers move the gate

The gate starts open for every message so that text emitted before the first
marker is shown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from .message_model import (
    TEXT_PART_TYPE,
    ChatRole,
    Fragment,
    Message,
    OtherFragment,
    SystemErrorFragment,
    TextFragment,
    ToolInvocationFragment,
    fragment_from_dict,
    fragment_to_dict,
)

__all__ = [
    "Classification",
    "DEFAULT_CONFIG",
    "FragmentCategory",
    "SanitizerConfig",
    "VisibilityGate",
    "classify_fragment",
    "has_visible_content",
    "parse_identity_marker",
    "quote_tool_request",
    "rewrite_fragment",
    "sanitize_message",
    "sanitize_parts",
    "visible_messages",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_TOOL_CALL_ID = "databricks-tool-call"
DEFAULT_PRIMARY_AGENT_PREFIXES: tuple[str, ...] = ("ma-", "sa-")


class FragmentCategory(Enum):
    """Role a fragment plays in the fold."""

    DROP = "drop"
    TOOL_CALL = "tool_call"
    IDENTITY_MARKER = "identity_marker"
    PLAIN_TEXT = "plain_text"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True, slots=True)
class SanitizerConfig:
    """Constants the sanitizer keys on."""

    tool_call_id: str = DEFAULT_TOOL_CALL_ID
    primary_agent_prefixes: tuple[str, ...] = DEFAULT_PRIMARY_AGENT_PREFIXES
    name_open: str = "<name>"
    name_close: str = "</name>"
    request_field: str = "request"

    @classmethod
    def from_settings(cls, settings: Any) -> "SanitizerConfig":
        """Build a config from application settings, keeping defaults for blank values."""

        tool_call_id = str(getattr(settings, "tool_call_id", "") or "").strip()
        prefixes = tuple(
            prefix
            for prefix in (getattr(settings, "primary_agent_prefixes", None) or ())
            if isinstance(prefix, str) and prefix
        )
        return cls(
            tool_call_id=tool_call_id or DEFAULT_TOOL_CALL_ID,
            primary_agent_prefixes=prefixes or DEFAULT_PRIMARY_AGENT_PREFIXES,
        )


DEFAULT_CONFIG = SanitizerConfig()


@dataclass(frozen=True, slots=True)
class Classification:
    """Result of classifying one fragment.

    ``speaker`` is only set for identity markers and ``request`` only for
    tool calls.
    """

    category: FragmentCategory
    fragment: Any
    speaker: str | None = None
    request: Any = None


@dataclass(frozen=True, slots=True)
class VisibilityGate:
    """Whether plain text from the current speaker is shown."""

    content_allowed: bool = True

    def after_marker(self, speaker: str, primary_prefixes: Sequence[str]) -> "VisibilityGate":
        allowed = any(speaker.startswith(prefix) for prefix in primary_prefixes)
        return VisibilityGate(content_allowed=allowed)


def parse_identity_marker(text: str, config: SanitizerConfig = DEFAULT_CONFIG) -> str | None:
    """Return the speaker named by ``text`` or ``None`` when it is not a marker."""

    if not isinstance(text, str):
        return None
    if not (text.startswith(config.name_open) and text.endswith(config.name_close)):
        return None
    return text[len(config.name_open) : len(text) - len(config.name_close)]


def classify_fragment(fragment: Any, config: SanitizerConfig = DEFAULT_CONFIG) -> Classification:
    """Classify ``fragment``; the first matching rule wins."""

    if isinstance(fragment, SystemErrorFragment):
        return Classification(FragmentCategory.DROP, fragment)
    # text part without a string body
    if isinstance(fragment, OtherFragment) and fragment.kind == TEXT_PART_TYPE:
        return Classification(FragmentCategory.DROP, fragment)
    if (
        isinstance(fragment, ToolInvocationFragment)
        and not fragment.dynamic
        and fragment.tool_name == config.tool_call_id
    ):
        return Classification(
            FragmentCategory.TOOL_CALL,
            fragment,
            request=_extract_request(fragment.input, config.request_field),
        )
    if isinstance(fragment, TextFragment):
        speaker = parse_identity_marker(fragment.text, config)
        if speaker is not None:
            return Classification(FragmentCategory.IDENTITY_MARKER, fragment, speaker=speaker)
        return Classification(FragmentCategory.PLAIN_TEXT, fragment)
    return Classification(FragmentCategory.PASSTHROUGH, fragment)


def quote_tool_request(request: str) -> str:
    """Render a hand-off request as a markdown block quote."""

    return f'\n>"{request}"\n\n'


def rewrite_fragment(classification: Classification, content_allowed: bool) -> Fragment | None:
    """Map a classified fragment to at most one output fragment."""

    category = classification.category
    if category is FragmentCategory.DROP or category is FragmentCategory.IDENTITY_MARKER:
        return None
    if category is FragmentCategory.TOOL_CALL:
        request = classification.request
        if not content_allowed or not isinstance(request, str) or not request:
            return None
        return TextFragment(text=quote_tool_request(request))
    if category is FragmentCategory.PLAIN_TEXT:
        return classification.fragment if content_allowed else None
    return classification.fragment


def sanitize_message(message: Message, config: SanitizerConfig | None = None) -> Message:
    """Return the display copy of ``message``.

    User messages and messages without a fragment list come back unchanged.
    The input is never mutated and the call never raises; a fragment that
    cannot be processed is left out of the result.
    """

    if message.is_user or message.fragments is None:
        return message
    active = config or DEFAULT_CONFIG
    gate = VisibilityGate()
    output: list[Fragment] = []
    for fragment in message.fragments:
        try:
            classification = classify_fragment(fragment, active)
            produced = rewrite_fragment(classification, gate.content_allowed)
            if classification.category is FragmentCategory.IDENTITY_MARKER:
                gate = gate.after_marker(classification.speaker or "", active.primary_agent_prefixes)
        except Exception:  # pragma: no cover - malformed fragment payload
            LOGGER.debug("Skipping unreadable fragment in message %s", message.id, exc_info=True)
            continue
        if produced is not None:
            output.append(produced)
    if len(output) < len(message.fragments):
        LOGGER.debug(
            "Sanitized message %s: kept %d of %d fragment(s)",
            message.id,
            len(output),
            len(message.fragments),
        )
    return replace(message, fragments=tuple(output))


def has_visible_content(message: Message) -> bool:
    """Return ``False`` when a sanitized message should not be rendered at all."""

    return bool(message.fragments)


def visible_messages(
    messages: Iterable[Message], config: SanitizerConfig | None = None
) -> list[Message]:
    """Sanitize a conversation history, dropping messages with nothing to show."""

    visible: list[Message] = []
    for message in messages:
        cleaned = sanitize_message(message, config)
        if has_visible_content(cleaned):
            visible.append(cleaned)
    return visible


def sanitize_parts(
    parts: Iterable[Any],
    *,
    role: ChatRole = "assistant",
    config: SanitizerConfig | None = None,
) -> list[dict[str, Any]]:
    """Sanitize raw wire parts and return wire parts."""

    message = Message(id="", role=role, fragments=tuple(fragment_from_dict(part) for part in parts))
    cleaned = sanitize_message(message, config)
    return [fragment_to_dict(fragment) for fragment in cleaned.fragments or ()]


def _extract_request(payload: Any, field_name: str) -> Any:
    if isinstance(payload, Mapping):
        return payload.get(field_name)
    return None
