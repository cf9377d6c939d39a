"""Slash commands typed at the prompt.

Commands are resolved before intent classification; anything that does not
start with "/" is left for the router.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .chat.history import ConversationHistory, ConversationTurn, Role
from .chat.session import answer_portion
from .errors import PersistenceError
from .history_store import HistoryStore, SessionInfo

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Zweek Code - AI that runs on YOUR machine, not the cloud.

Available Commands:
  /help - Show this message
  /history [n] - Show last n chat messages
  /sessions - List available sessions
  /load <index|id> - Load a previous session
  /clear-history - Clear current session history
  /cd <path> - Change the working directory
  /ls [path] - List files in a directory

Keys:
  Esc - Interrupt the running response
  t - Show or hide the thinking pane (when the input is empty)
  PgUp/PgDn, Ctrl+Up/Down - Scroll; Ctrl+End returns to the live tail

No telemetry. No cloud. Just you and your code."""

DEFAULT_HISTORY_LIMIT = 10


@dataclass(frozen=True)
class CommandResult:
    """Outcome of command dispatch.

    Attributes:
        handled: Whether the input was a command.
        response: Text to show the user.
        clear_view: Whether the scrollback should be cleared before showing it.
    """

    handled: bool
    response: str = ""
    clear_view: bool = False


NOT_HANDLED = CommandResult(handled=False)


@dataclass(frozen=True)
class Command:
    """A single slash command."""

    name: str
    description: str
    handler: Callable[[str], CommandResult]


class CommandHandler:
    """Resolves slash commands against the conversation and its store."""

    def __init__(
        self,
        history: ConversationHistory,
        store: HistoryStore | None = None,
        working_dir: Path | None = None,
    ) -> None:
        self._history = history
        self._store = store
        self._working_dir = (working_dir or Path.cwd()).resolve()
        self._cached_sessions: list[SessionInfo] = []
        self._commands = {
            cmd.name: cmd
            for cmd in (
                Command("help", "Show available commands", self._help),
                Command("history", "Show recent chat messages", self._show_history),
                Command("sessions", "List saved sessions", self._list_sessions),
                Command("load", "Load a saved session", self._load_session),
                Command("clear-history", "Clear current session history", self._clear_history),
                Command("cd", "Change the working directory", self._change_dir),
                Command("ls", "List files in a directory", self._list_dir),
            )
        }

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def command_names(self) -> list[str]:
        return list(self._commands)

    def handle(self, text: str) -> CommandResult:
        """Run `text` if it is a slash command.

        Args:
            text: Raw user input.

        Returns:
            CommandResult; `handled` is False for anything not starting with "/".
        """
        stripped = text.strip()
        if not stripped.startswith("/"):
            return NOT_HANDLED

        name, _, args = stripped[1:].partition(" ")
        command = self._commands.get(name.lower())
        if command is None:
            return CommandResult(
                handled=True,
                response=f"Error: Unknown command /{name}. Type /help for a list of commands.",
            )

        logger.debug("Running command /%s %s", command.name, args)
        try:
            return command.handler(args.strip())
        except PersistenceError as e:
            logger.warning("Command /%s failed: %s", command.name, e.to_dict())
            return CommandResult(handled=True, response=f"Error: {e.message}")

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _help(self, args: str) -> CommandResult:
        return CommandResult(handled=True, response=HELP_TEXT)

    def _show_history(self, args: str) -> CommandResult:
        limit = DEFAULT_HISTORY_LIMIT
        if args:
            try:
                limit = int(args)
            except ValueError:
                logger.debug("Ignoring non-numeric /history limit %r", args)

        if self._store is not None:
            messages = [(m.role, m.content) for m in self._store.read_recent(limit)]
        else:
            turns = self._history.turns()
            messages = [(t.role.value, t.content) for t in turns[-limit:]] if limit > 0 else []

        if not messages:
            return CommandResult(handled=True, response="No chat history available.")

        lines = [f"Chat History (last {len(messages)} messages):"]
        lines.extend(f"[{role}]: {content}" for role, content in messages)
        return CommandResult(handled=True, response="\n".join(lines))

    def _list_sessions(self, args: str) -> CommandResult:
        if self._store is None:
            return CommandResult(handled=True, response="Error: History store not available.")

        self._cached_sessions = self._store.list_sessions()
        current = self._store.current_session_id
        lines = ["Available Sessions:"]
        if not self._cached_sessions:
            lines.append("(No saved sessions found)")
        for i, info in enumerate(self._cached_sessions, start=1):
            marker = "* " if info.session_id == current else "  "
            lines.append(f"{marker}[{i}] {info.session_id} ({info.message_count} messages)")
        return CommandResult(handled=True, response="\n".join(lines))

    def _load_session(self, args: str) -> CommandResult:
        if self._store is None:
            return CommandResult(handled=True, response="Error: History store not available.")
        if not args:
            return CommandResult(
                handled=True,
                response="Usage: /load <index> (run /sessions first to see indices)",
            )

        session_id = args
        if args.isdigit():
            if not self._cached_sessions:
                self._cached_sessions = self._store.list_sessions()
            index = int(args)
            if not 0 < index <= len(self._cached_sessions):
                return CommandResult(
                    handled=True,
                    response="Error: Invalid session index. Run /sessions to see available sessions.",
                )
            session_id = self._cached_sessions[index - 1].session_id

        messages = self._store.load_session(session_id)
        turns = [
            ConversationTurn(Role.USER if m.role == Role.USER.value else Role.ASSISTANT, m.content)
            for m in messages
        ]
        self._history.replace(turns)

        lines = [f"Session loaded: {session_id}"]
        for turn in turns:
            if turn.role is Role.USER:
                lines.append(f"> {turn.content}")
            else:
                lines.append(answer_portion(turn.content) or turn.content)
        return CommandResult(handled=True, response="\n".join(lines), clear_view=True)

    def _clear_history(self, args: str) -> CommandResult:
        if self._store is not None:
            self._store.clear_session()
        self._history.clear()
        return CommandResult(
            handled=True,
            response="Chat history cleared for this session.",
            clear_view=True,
        )

    def _resolve(self, path: str) -> Path:
        target = Path(path).expanduser()
        if not target.is_absolute():
            target = self._working_dir / target
        return target.resolve()

    def _change_dir(self, args: str) -> CommandResult:
        if not args:
            return CommandResult(handled=True, response="Usage: /cd <path>")

        target = self._resolve(args)
        if not target.is_dir():
            return CommandResult(handled=True, response=f"Error: Directory not found: {args}")

        self._working_dir = target
        logger.info("Working directory changed to %s", target)
        return CommandResult(handled=True, response=f"Changed directory to: {target}")

    def _list_dir(self, args: str) -> CommandResult:
        path = args or "."
        target = self._resolve(path)
        try:
            entries = sorted(target.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.debug("Cannot list %s: %s", target, e)
            entries = []

        if not entries:
            return CommandResult(handled=True, response=f"No files found in {path}")

        lines = [f"Files in {path}:"]
        lines.extend(f"{p.name}/" if p.is_dir() else p.name for p in entries)
        return CommandResult(handled=True, response="\n".join(lines))
