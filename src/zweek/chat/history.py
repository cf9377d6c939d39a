"""In-memory conversation history for a chat session.

Thread-safe: the worker thread appends finished exchanges while the UI thread
may be reading the transcript or running a slash command.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from zweek.errors import handle_errors

if TYPE_CHECKING:
    from zweek.history_store import HistoryStore

logger = logging.getLogger(__name__)


class Role(Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """One message in the conversation. Immutable once appended."""

    role: Role
    content: str


class ConversationHistory:
    """Append-only list of turns, always in USER/ASSISTANT pairs.

    Turns are only added through append_exchange(), so the history never
    contains a user turn without its reply. An optional HistoryStore receives
    a copy of every exchange; store failures are logged and never reach the
    caller.
    """

    def __init__(self, store: HistoryStore | None = None) -> None:
        self._turns: list[ConversationTurn] = []
        self._lock = threading.Lock()
        self._store = store

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    def turns(self) -> list[ConversationTurn]:
        """Snapshot of all turns in append order."""
        with self._lock:
            return list(self._turns)

    def append_exchange(self, user_message: str, assistant_response: str) -> None:
        """Append a user turn and its reply as one atomic step."""
        user = ConversationTurn(Role.USER, user_message)
        assistant = ConversationTurn(Role.ASSISTANT, assistant_response)
        with self._lock:
            self._turns.append(user)
            self._turns.append(assistant)
        self._mirror(user, assistant)

    def recent_exchanges(self, limit: int) -> list[tuple[str, str]]:
        """Return up to `limit` most recent (user, assistant) pairs, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            turns = self._turns[-2 * limit:]
        return [
            (turns[i].content, turns[i + 1].content)
            for i in range(0, len(turns) - 1, 2)
        ]

    def replace(self, turns: Iterable[ConversationTurn]) -> None:
        """Replace the in-memory transcript, e.g. after loading a saved session.

        Turns that do not form complete USER/ASSISTANT pairs are dropped.
        """
        paired: list[ConversationTurn] = []
        pending_user: ConversationTurn | None = None
        for turn in turns:
            if turn.role is Role.USER:
                pending_user = turn
            elif pending_user is not None:
                paired.extend((pending_user, turn))
                pending_user = None
        with self._lock:
            self._turns = paired
        logger.debug("History replaced with %d turns", len(paired))

    def clear(self) -> None:
        with self._lock:
            self._turns.clear()

    @handle_errors("mirror exchange to history store", log_level="warning")
    def _mirror(self, user: ConversationTurn, assistant: ConversationTurn) -> None:
        if self._store is None:
            return
        self._store.append_turn(user.role.value, user.content)
        self._store.append_turn(assistant.role.value, assistant.content)
