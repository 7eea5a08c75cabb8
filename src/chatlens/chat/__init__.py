"""Chat message models and display sanitization."""

from .message_model import (
    Message,
    OtherFragment,
    SystemErrorFragment,
    TextFragment,
    ToolInvocationFragment,
    message_from_dict,
    message_to_dict,
)
from .sanitizer import (
    SanitizerConfig,
    has_visible_content,
    sanitize_message,
    sanitize_parts,
    visible_messages,
)

__all__ = [
    "Message",
    "OtherFragment",
    "SanitizerConfig",
    "SystemErrorFragment",
    "TextFragment",
    "ToolInvocationFragment",
    "has_visible_content",
    "message_from_dict",
    "message_to_dict",
    "sanitize_message",
    "sanitize_parts",
    "visible_messages",
]
