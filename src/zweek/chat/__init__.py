"""Chat mode - streaming conversation with a reasoning model."""

from __future__ import annotations

from zweek.chat.history import ConversationHistory, ConversationTurn, Role
from zweek.chat.section_parser import SectionParser, StreamPhase
from zweek.chat.session import ChatSession, ChatSink, answer_portion, build_prompt

__all__ = [
    "ChatSession",
    "ChatSink",
    "ConversationHistory",
    "ConversationTurn",
    "Role",
    "SectionParser",
    "StreamPhase",
    "answer_portion",
    "build_prompt",
]
