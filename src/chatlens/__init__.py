"""chatlens: display sanitization and config API for multi-agent chat transcripts."""

from .chat import Message, SanitizerConfig, sanitize_message, sanitize_parts, visible_messages

__all__ = [
    "Message",
    "SanitizerConfig",
    "sanitize_message",
    "sanitize_parts",
    "visible_messages",
]

__version__ = "0.1.0"
