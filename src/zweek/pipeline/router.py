"""Intent routing - decides which workflow handles a request.

A tiny router model, kept resident, labels each request as CODE, CHAT or
TOOL. The output is constrained by a grammar, but the label is still matched
loosely: anything the router cannot label sends the request to chat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from zweek.config import LIMITS, PROMPTS, ROUTER_LABELS
from zweek.engine.base import CancellationToken, InferenceEngine
from zweek.settings import settings

logger = logging.getLogger(__name__)


class Intent(Enum):
    """What the user is asking for."""

    CODE_GENERATION = "code"
    CHAT = "chat"
    TOOL = "tool"


class WorkflowType(Enum):
    """Which pipeline runs the request."""

    CODE_PIPELINE = "code_pipeline"
    CHAT_MODE = "chat_mode"
    TOOL_MODE = "tool_mode"


_WORKFLOWS = {
    Intent.CODE_GENERATION: WorkflowType.CODE_PIPELINE,
    Intent.CHAT: WorkflowType.CHAT_MODE,
    Intent.TOOL: WorkflowType.TOOL_MODE,
}

_LABEL_INTENTS = {
    "code": Intent.CODE_GENERATION,
    "chat": Intent.CHAT,
    "tool": Intent.TOOL,
}


def get_workflow(intent: Intent) -> WorkflowType:
    """Map an intent to its workflow. Unknown values go to chat."""
    if not isinstance(intent, Intent):
        return WorkflowType.CHAT_MODE
    return _WORKFLOWS.get(intent, WorkflowType.CHAT_MODE)


@dataclass(frozen=True)
class RoutingDecision:
    """Result of routing a request."""

    intent: Intent
    workflow: WorkflowType
    raw_output: str
    reason: str


class IntentClassifier:
    """Classifies requests with the resident router model."""

    def __init__(
        self,
        engine: InferenceEngine,
        *,
        model: str | None = None,
        max_tokens: int = LIMITS.ROUTER_MAX_TOKENS,
    ) -> None:
        """Initialize classifier.

        Args:
            engine: Engine dedicated to the router model.
            model: Router model name. Defaults to settings.router_model.
            max_tokens: Generation limit for the label.
        """
        self._engine = engine
        self._model = model or settings.router_model
        self._max_tokens = max_tokens

    def classify(self, text: str) -> Intent:
        """Return the intent for a request; CHAT when anything goes wrong."""
        return self.route(text).intent

    def route(self, text: str) -> RoutingDecision:
        """Classify a request and pick its workflow.

        Args:
            text: The user's request.

        Returns:
            RoutingDecision with the intent, workflow and raw router output.
        """
        if not self._engine.is_loaded and not self._engine.load(self._model, resident=True):
            logger.warning("Router model %s unavailable; defaulting to chat", self._model)
            return self._decision(Intent.CHAT, "", "Router model unavailable")

        prompt = PROMPTS.ROUTER_PROMPT.format(request=text)
        try:
            output = self._engine.infer(
                prompt, PROMPTS.ROUTER_GRAMMAR, self._max_tokens, None, CancellationToken()
            )
        except Exception as e:
            # Routing must never block a request - fall back to chat
            logger.warning(
                "Intent classification failed: %s. Defaulting to chat.",
                e,
                exc_info=True,
            )
            return self._decision(Intent.CHAT, "", "Router error")

        lowered = output.lower()
        for label in ROUTER_LABELS:
            if label in lowered:
                logger.debug("Router output %r -> %s", output, label)
                return self._decision(_LABEL_INTENTS[label], output, f"Router labeled '{label}'")

        logger.info("Unrecognized router output %r; defaulting to chat", output)
        return self._decision(Intent.CHAT, output, "No label in router output")

    @staticmethod
    def _decision(intent: Intent, raw_output: str, reason: str) -> RoutingDecision:
        return RoutingDecision(
            intent=intent,
            workflow=get_workflow(intent),
            raw_output=raw_output,
            reason=reason,
        )
