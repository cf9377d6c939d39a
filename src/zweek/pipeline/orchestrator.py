"""Request orchestration.

Runs each request on a worker thread:

1. Slash commands are answered directly
2. Otherwise the router picks a workflow
3. Chat requests stream through the ChatSession

The caller never blocks: submit() returns a GenerationTask handle at once.
Only one request runs at a time; a second submission while one is in flight
is rejected rather than queued.

Design:
- Worker -> owner: the callbacks in PipelineCallbacks, called on the worker
- Owner -> worker: the task's CancellationToken only
- shutdown() cancels and joins the in-flight task
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Sequence

from zweek.chat.history import ConversationHistory
from zweek.chat.session import ChatSession, ChatSink
from zweek.commands import CommandHandler, CommandResult
from zweek.config import LIMITS, PROMPTS, TIMEOUTS
from zweek.engine.base import CancellationToken, InferenceEngine
from zweek.engine.ollama import OllamaEngine
from zweek.errors import GenerationInProgressError, PersistenceError
from zweek.history_store import HistoryStore
from zweek.settings import settings
from zweek.ui.view_model import PipelineStage, ScrollbackViewModel

from .router import IntentClassifier, WorkflowType

logger = logging.getLogger(__name__)


@dataclass
class PipelineCallbacks:
    """Hooks the front end installs. All but on_submit run on the worker thread."""

    on_submit: Callable[[str], None] | None = None
    on_progress: Callable[[str], None] | None = None
    on_stage: Callable[[PipelineStage], None] | None = None
    on_stream: ChatSink | None = None
    on_response: Callable[[str], None] | None = None
    on_command: Callable[[CommandResult], None] | None = None
    on_complete: Callable[["GenerationTask"], None] | None = None


class GenerationTask:
    """Handle for one request running on a worker thread.

    Example:
        task = orchestrator.submit("explain generators")
        ...
        task.cancel()          # from the UI thread
        task.wait(timeout=5)
        print(task.result)
    """

    def __init__(self, request: str) -> None:
        self.request = request
        self.token = CancellationToken()
        self.result: str | None = None
        self.error: BaseException | None = None
        self._cancel_requested = False
        self._done = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def cancelled(self) -> bool:
        """Whether the owner asked to stop (a budget cut-off does not count)."""
        return self._cancel_requested

    def cancel(self) -> None:
        """Ask the engine to stop at its next chunk boundary."""
        self._cancel_requested = True
        self.token.cancel()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the task finishes. Returns False on timeout."""
        return self._done.wait(timeout)

    def _start(self, target: Callable[["GenerationTask"], None]) -> None:
        self._thread = threading.Thread(
            target=target, args=(self,), name="zweek-generation", daemon=True
        )
        self._thread.start()

    def _finish(self) -> None:
        self._done.set()


class Orchestrator:
    """Routes requests to workflows and manages the worker task.

    Usage:
        orchestrator = Orchestrator(session, classifier, commands, callbacks)
        task = orchestrator.submit(text)
        orchestrator.cancel()      # Esc
        orchestrator.shutdown()    # on exit
    """

    def __init__(
        self,
        session: ChatSession,
        classifier: IntentClassifier,
        commands: CommandHandler | None = None,
        callbacks: PipelineCallbacks | None = None,
        *,
        engines: Sequence[InferenceEngine] = (),
        store: HistoryStore | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            session: Chat session used by the chat workflow.
            classifier: Intent classifier for non-command input.
            commands: Slash command handler; None disables commands.
            callbacks: Front-end hooks.
            engines: Engines to unload at shutdown.
            store: History store to close at shutdown.
        """
        self._session = session
        self._classifier = classifier
        self._commands = commands
        self.callbacks = callbacks or PipelineCallbacks()
        self._engines = tuple(engines)
        self._store = store
        self._lock = threading.Lock()
        self._current: GenerationTask | None = None

    @property
    def session(self) -> ChatSession:
        return self._session

    @property
    def current_task(self) -> GenerationTask | None:
        with self._lock:
            return self._current

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._current is not None and not self._current.done

    def submit(self, text: str) -> GenerationTask:
        """Start processing a request on a worker thread.

        Raises:
            GenerationInProgressError: If a request is still running.
        """
        with self._lock:
            if self._current is not None and not self._current.done:
                raise GenerationInProgressError()
            task = GenerationTask(text)
            self._current = task

        if self.callbacks.on_submit is not None:
            self.callbacks.on_submit(text)
        task._start(self._run)
        return task

    def cancel(self) -> bool:
        """Cancel the running task. Returns False if nothing was running."""
        task = self.current_task
        if task is None or task.done:
            return False
        logger.info("Cancelling request %r", task.request[:60])
        task.cancel()
        return True

    def shutdown(self, timeout: float = TIMEOUTS.WORKER_JOIN) -> None:
        """Cancel and join the in-flight task, then release engines and store."""
        task = self.current_task
        if task is not None and not task.done:
            task.cancel()
            if not task.wait(timeout):
                logger.warning("Worker did not stop within %.1fs; abandoning it", timeout)
        for engine in self._engines:
            engine.unload()
        if self._store is not None:
            self._store.close()
        logger.debug("Orchestrator shut down")

    def process_request(self, text: str, token: CancellationToken | None = None) -> str:
        """Handle one request synchronously and return the response text.

        Commands return their own text. Chat returns the full model response;
        the other workflows return their placeholder message.
        """
        cb = self.callbacks
        token = token or CancellationToken()

        if self._commands is not None:
            result = self._commands.handle(text)
            if result.handled:
                if cb.on_command is not None:
                    cb.on_command(result)
                self._stage(PipelineStage.COMPLETE)
                return result.response

        self._stage(PipelineStage.CLASSIFYING)
        self._progress("Classifying intent...")
        decision = self._classifier.route(text)
        logger.info("Routed request to %s (%s)", decision.workflow.value, decision.reason)

        if decision.workflow is WorkflowType.CODE_PIPELINE:
            self._progress("Starting code generation pipeline...")
            response = self._run_code_pipeline(text)
        elif decision.workflow is WorkflowType.TOOL_MODE:
            self._progress("Running tools...")
            response = self._run_tool_mode(text)
        else:
            self._progress("Entering chat mode...")
            response = self._run_chat_mode(text, token)

        self._stage(PipelineStage.COMPLETE)
        return response

    # -------------------------------------------------------------------------
    # Workflows
    # -------------------------------------------------------------------------

    def _run_code_pipeline(self, text: str) -> str:
        # Multi-model code generation is not built yet
        self._stage(PipelineStage.PLANNING)
        self._progress("[PLAN] Analyzing request...")
        self._respond(PROMPTS.CODE_PIPELINE_PENDING)
        return PROMPTS.CODE_PIPELINE_PENDING

    def _run_tool_mode(self, text: str) -> str:
        self._stage(PipelineStage.TOOL_EXECUTION)
        self._respond(PROMPTS.TOOL_MODE_PENDING)
        return PROMPTS.TOOL_MODE_PENDING

    def _run_chat_mode(self, text: str, token: CancellationToken) -> str:
        self._stage(PipelineStage.CHATTING)
        response = self._session.chat(text, self.callbacks.on_stream, cancel=token)
        # Streamed output is already on screen; only a load failure needs showing
        self._respond(response if response == PROMPTS.MODEL_NOT_LOADED else "")
        return response

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def _run(self, task: GenerationTask) -> None:
        try:
            task.result = self.process_request(task.request, task.token)
        except Exception as e:
            logger.exception("Request failed: %s", task.request[:60])
            task.error = e
            self._stage(PipelineStage.ERROR)
        finally:
            task._finish()
            if self.callbacks.on_complete is not None:
                self.callbacks.on_complete(task)

    def _stage(self, stage: PipelineStage) -> None:
        if self.callbacks.on_stage is not None:
            self.callbacks.on_stage(stage)

    def _progress(self, message: str) -> None:
        if self.callbacks.on_progress is not None:
            self.callbacks.on_progress(message)

    def _respond(self, response: str) -> None:
        if self.callbacks.on_response is not None:
            self.callbacks.on_response(response)


# =============================================================================
# Wiring
# =============================================================================


def view_callbacks(view: ScrollbackViewModel) -> PipelineCallbacks:
    """Callbacks that render pipeline events into a scrollback view-model."""

    def on_response(response: str) -> None:
        if response:
            view.add_message(response)

    def on_command(result: CommandResult) -> None:
        if result.clear_view:
            view.clear()
        view.add_message(result.response)

    def on_complete(task: GenerationTask) -> None:
        if task.error is not None:
            view.add_error(str(task.error))
        elif task.cancelled:
            view.add_message("[Interrupted]")

    return PipelineCallbacks(
        on_submit=view.begin_exchange,
        on_progress=view.add_message,
        on_stage=lambda stage: view.set_stage(stage, announce=False),
        on_stream=view.append_stream,
        on_response=on_response,
        on_command=on_command,
        on_complete=on_complete,
    )


def open_history_store() -> HistoryStore | None:
    """Open the configured history store; None if disabled or unavailable."""
    if not settings.persist_history:
        return None
    try:
        return HistoryStore(settings.history_db_path)
    except PersistenceError as e:
        logger.warning("History persistence disabled: %s", e.to_dict())
        return None


def build_orchestrator(callbacks: PipelineCallbacks | None = None) -> Orchestrator:
    """Assemble the default pipeline: two Ollama engines, history, commands."""
    store = open_history_store()
    history = ConversationHistory(store)
    chat_engine = OllamaEngine(context_length=LIMITS.CHAT_CONTEXT)
    router_engine = OllamaEngine(context_length=LIMITS.ROUTER_CONTEXT)
    session = ChatSession(chat_engine, model=settings.chat_model, history=history)
    classifier = IntentClassifier(router_engine, model=settings.router_model)
    commands = CommandHandler(history, store)
    return Orchestrator(
        session,
        classifier,
        commands,
        callbacks,
        engines=(chat_engine, router_engine),
        store=store,
    )


__all__ = [
    "GenerationTask",
    "Orchestrator",
    "PipelineCallbacks",
    "build_orchestrator",
    "open_history_store",
    "view_callbacks",
]
