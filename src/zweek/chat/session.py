"""Streaming chat session.

Drives one exchange through the chat engine:

1. Ensure the chat model is loaded
2. Build a role-tagged prompt that opens a thinking section
3. Stream the reply, splitting thinking from answer as chunks arrive
4. Cut the reasoning off when it exceeds the chunk budget
5. Ask once for a continuation when the reply has no answer
6. Record the exchange in the conversation history

Cancellation is cooperative: the token is handed to the engine, which checks
it between chunks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from zweek.config import LIMITS, PROMPTS
from zweek.engine.base import CancellationToken, InferenceEngine
from zweek.errors import GenerationError
from zweek.settings import settings

from .history import ConversationHistory, ConversationTurn, Role
from .section_parser import SectionParser, StreamPhase

logger = logging.getLogger(__name__)

ChatSink = Callable[[StreamPhase, str], None]


def answer_portion(response: str) -> str:
    """Return the part of a stored response after the thinking delimiter."""
    _, sep, answer = response.partition(PROMPTS.THINK_CLOSE)
    if not sep:
        return ""
    return answer.strip()


def build_prompt(
    message: str,
    context: Sequence[ConversationTurn] = (),
    *,
    system: str = PROMPTS.CHAT_SYSTEM,
) -> str:
    """Render the chat template for one exchange.

    Prior assistant turns contribute only their answer; their reasoning would
    crowd the context window without helping the next reply.
    """
    parts = [PROMPTS.SYSTEM_TEMPLATE.format(system=system)]
    for turn in context:
        if turn.role is Role.USER:
            parts.append(PROMPTS.USER_TEMPLATE.format(content=turn.content))
        else:
            parts.append(PROMPTS.ASSISTANT_TEMPLATE.format(content=answer_portion(turn.content)))
    parts.append(PROMPTS.USER_TEMPLATE.format(content=message))
    parts.append(PROMPTS.ASSISTANT_OPEN)
    parts.append(PROMPTS.THINK_OPEN)
    return "".join(parts)


@dataclass
class _ExchangeState:
    """Mutable bookkeeping for one exchange."""

    thinking_chunk_count: int = 0
    budget_exceeded: bool = False
    generation_failed: bool = False


class ChatSession:
    """Chat mode: one reasoning model, one conversation.

    Example:
        session = ChatSession(OllamaEngine())
        reply = session.chat("What is a closure?", lambda phase, text: print(text, end=""))
    """

    def __init__(
        self,
        engine: InferenceEngine,
        *,
        model: str | None = None,
        history: ConversationHistory | None = None,
        thinking_budget: int = LIMITS.THINKING_CHUNK_BUDGET,
        max_tokens: int = LIMITS.CHAT_MAX_TOKENS,
        context_turns: int = settings.context_turns,
        system_prompt: str = PROMPTS.CHAT_SYSTEM,
    ) -> None:
        self._engine = engine
        self._model = model or settings.chat_model
        self._history = history if history is not None else ConversationHistory()
        self._thinking_budget = thinking_budget
        self._max_tokens = max_tokens
        self._context_turns = context_turns
        self._system_prompt = system_prompt

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def model(self) -> str:
        return self._model

    def chat(
        self,
        message: str,
        sink: ChatSink | None = None,
        *,
        context: Sequence[ConversationTurn] | None = None,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Run one exchange and return the full response.

        The response is the raw model text: thinking, the delimiter and the
        answer, plus any continuation output.

        Args:
            message: The user's message.
            sink: Receives (phase, text) deltas as they are parsed.
            context: Prior turns to render; defaults to the most recent
                exchanges in this session's history.
            cancel: External stop signal. Also set by the session when the
                thinking budget runs out.

        Returns:
            The response text, or a literal error string if the chat model
            cannot be loaded (in which case nothing is recorded).
        """
        if not self._engine.is_loaded and not self._engine.load(self._model):
            logger.error("Chat model %s could not be loaded", self._model)
            return PROMPTS.MODEL_NOT_LOADED

        emit: ChatSink = sink or (lambda phase, text: None)
        token = cancel if cancel is not None else CancellationToken()
        if context is None:
            context = self._recent_context()
        prompt = build_prompt(message, context, system=self._system_prompt)

        parser = SectionParser()
        state = _ExchangeState()
        raw: list[str] = []

        def feed(text: str) -> None:
            raw.append(text)
            thinking, answer = parser.consume(text)
            if thinking:
                emit(StreamPhase.THINKING, thinking)
            if answer:
                emit(StreamPhase.ANSWER, answer)

        def on_chunk(chunk: str) -> None:
            if state.budget_exceeded:
                return
            feed(chunk)
            if parser.phase is StreamPhase.THINKING:
                state.thinking_chunk_count += 1
                if state.thinking_chunk_count > self._thinking_budget:
                    state.budget_exceeded = True
                    token.cancel()
                    logger.warning(
                        "Thinking budget of %d chunks exceeded; truncating", self._thinking_budget
                    )
                    feed(f"{PROMPTS.THINK_CLOSE}\n{PROMPTS.THINKING_LIMIT_ANNOTATION}")

        try:
            self._engine.infer(prompt, "", self._max_tokens, on_chunk, token)
        except GenerationError as e:
            logger.error("Chat generation failed: %s", e.to_dict())
            state.generation_failed = True
            if parser.phase is StreamPhase.THINKING:
                feed(f"{PROMPTS.THINK_CLOSE}\n{e.message}")
            else:
                feed(e.message)

        thinking, _ = parser.finish()
        if thinking:
            emit(StreamPhase.THINKING, thinking)

        response = "".join(raw)
        externally_cancelled = token.is_cancelled and not state.budget_exceeded
        if (
            not parser.answer_text.strip()
            and not externally_cancelled
            and not state.generation_failed
        ):
            response = self._continue(prompt, response, emit, token)

        self._history.append_exchange(message, response)
        logger.info(
            "Exchange complete: %d thinking chunks, %d chars",
            state.thinking_chunk_count,
            len(response),
        )
        return response

    def _continue(
        self,
        prompt: str,
        first_response: str,
        emit: ChatSink,
        token: CancellationToken,
    ) -> str:
        """Ask once more for the answer, primed with the finished reasoning."""
        prefix = first_response
        if PROMPTS.THINK_CLOSE not in prefix:
            prefix += f"{PROMPTS.THINK_CLOSE}\n"
        logger.info("No answer after thinking; requesting continuation")

        def on_chunk(chunk: str) -> None:
            emit(StreamPhase.ANSWER, chunk)

        try:
            continuation = self._engine.infer(
                prompt + prefix, "", self._max_tokens, on_chunk, token
            )
        except GenerationError as e:
            logger.error("Continuation failed: %s", e.to_dict())
            continuation = e.message
            emit(StreamPhase.ANSWER, continuation)

        return prefix + continuation

    def _recent_context(self) -> list[ConversationTurn]:
        turns: list[ConversationTurn] = []
        for user, assistant in self._history.recent_exchanges(self._context_turns):
            turns.append(ConversationTurn(Role.USER, user))
            turns.append(ConversationTurn(Role.ASSISTANT, assistant))
        return turns
