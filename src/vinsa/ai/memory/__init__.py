"""Conversation transcript and file-context helpers."""

from .conversation import CompactionResult, ConversationStore, Summarizer
from .file_context import FileInjection, inject_file_context

__all__ = [
    "CompactionResult",
    "ConversationStore",
    "FileInjection",
    "Summarizer",
    "inject_file_context",
]
