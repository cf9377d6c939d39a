"""Zweek Shell CLI - the assistant in a plain terminal.

Runs a single request, or an interactive loop when no prompt is given.
The answer streams to stdout; reasoning, progress and status go to stderr
so the output can be piped.

Usage:
    zweek-shell "explain python generators"
    zweek-shell --show-thinking "why is the sky blue"
    zweek-shell                 # interactive
    zweek-shell --check         # is Ollama reachable, which models are pulled

Ctrl+C interrupts the running response; a second Ctrl+C exits.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn

from .chat.section_parser import StreamPhase
from .commands import CommandResult
from .config import BRANDING
from .engine.ollama import OllamaEngine
from .errors import GenerationInProgressError
from .logging_setup import configure_logging
from .pipeline.orchestrator import GenerationTask, Orchestrator, PipelineCallbacks, build_orchestrator
from .settings import settings

logger = logging.getLogger(__name__)

_EXIT_WORDS = {"exit", "quit", ":q"}
_POLL_SECONDS = 0.1


def read_user_input(prompt_text: str = "") -> str:
    """Read input from user, trying /dev/tty if stdin is unavailable.

    Args:
        prompt_text: Optional prompt to display (not used if reading from /dev/tty).

    Returns:
        User input string, stripped.
    """
    if sys.stdin.isatty():
        # stdin is connected to terminal, use normal input
        if prompt_text:
            return input(prompt_text).strip()
        return input().strip()

    # stdin is not a tty (piped/redirected), try /dev/tty
    try:
        with open("/dev/tty", "r") as tty:
            return tty.readline().strip()
    except OSError:
        # Can't open /dev/tty, fall back to stdin
        if prompt_text:
            return input(prompt_text).strip()
        return input().strip()


def colorize(text: str, color: str) -> str:
    """Apply ANSI color codes if stdout is a TTY."""
    if not sys.stdout.isatty():
        return text

    colors = {
        "cyan": "\033[36m",
        "green": "\033[32m",
        "yellow": "\033[33m",
        "red": "\033[31m",
        "bold": "\033[1m",
        "dim": "\033[2m",
        "reset": "\033[0m",
    }
    return f"{colors.get(color, '')}{text}{colors['reset']}"


def print_header() -> None:
    """Print the banner."""
    for line in BRANDING.LOGO:
        print(colorize(line, "cyan"), file=sys.stderr)
    print(colorize(f"{BRANDING.VERSION} | {BRANDING.TAGLINE}", "dim"), file=sys.stderr)
    print(file=sys.stderr)


class TerminalOutput:
    """Writes pipeline events to the terminal.

    Thinking text is dimmed on stderr when shown; the answer goes to stdout.
    """

    def __init__(self, *, show_thinking: bool = False, quiet: bool = False) -> None:
        self.show_thinking = show_thinking
        self.quiet = quiet
        self._phase: StreamPhase | None = None

    def callbacks(self) -> PipelineCallbacks:
        return PipelineCallbacks(
            on_submit=self.on_submit,
            on_progress=self.on_progress,
            on_stream=self.on_stream,
            on_response=self.on_response,
            on_command=self.on_command,
        )

    def on_submit(self, text: str) -> None:
        self._phase = None

    def on_progress(self, message: str) -> None:
        if not self.quiet:
            print(colorize(message, "dim"), file=sys.stderr)

    def on_stream(self, phase: StreamPhase, text: str) -> None:
        if phase is StreamPhase.THINKING:
            if self.show_thinking:
                sys.stderr.write(colorize(text, "dim"))
                sys.stderr.flush()
            self._phase = phase
            return

        if self._phase is not StreamPhase.ANSWER:
            if self._phase is StreamPhase.THINKING and self.show_thinking:
                print(file=sys.stderr)
            if not self.quiet:
                print(colorize("Final Answer:", "green"), file=sys.stderr)
            self._phase = StreamPhase.ANSWER
        sys.stdout.write(text)
        sys.stdout.flush()

    def on_response(self, response: str) -> None:
        if response:
            color = "red" if response.startswith("Error:") else "reset"
            print(colorize(response, color))
        elif self._phase is StreamPhase.ANSWER:
            # End the streamed answer with a newline
            print()

    def on_command(self, result: CommandResult) -> None:
        print(result.response)


def run_exchange(orchestrator: Orchestrator, prompt: str) -> int:
    """Run one request to completion, turning Ctrl+C into a cancel.

    Returns:
        Exit code: 0 on success, 1 on failure, 130 if interrupted.
    """
    try:
        task = orchestrator.submit(prompt)
    except GenerationInProgressError as e:
        print(colorize(f"Error: {e.message}", "red"), file=sys.stderr)
        return 1

    interrupted = False
    while not task.done:
        try:
            task.wait(_POLL_SECONDS)
        except KeyboardInterrupt:
            if interrupted:
                raise
            interrupted = True
            print(colorize("\n[Interrupting...]", "yellow"), file=sys.stderr)
            orchestrator.cancel()

    return _exit_code(task, interrupted)


def _exit_code(task: GenerationTask, interrupted: bool) -> int:
    if task.error is not None:
        print(colorize(f"Error: {task.error}", "red"), file=sys.stderr)
        return 1
    if interrupted:
        return 130
    return 0


def run_repl(orchestrator: Orchestrator) -> int:
    """Interactive loop until EOF or an exit word."""
    print(colorize(BRANDING.WELCOME[0], "bold"), file=sys.stderr)
    print(colorize("Type /help for commands, 'exit' to quit.", "dim"), file=sys.stderr)
    while True:
        try:
            line = read_user_input(colorize("❯ ", "green"))
        except (EOFError, KeyboardInterrupt):
            print(file=sys.stderr)
            return 0
        if not line:
            continue
        if line.lower() in _EXIT_WORDS:
            return 0
        run_exchange(orchestrator, line)


def print_engine_status() -> int:
    """Report Ollama reachability and pulled models."""
    engine = OllamaEngine()
    health = engine.check_health()
    if not health.reachable:
        print(colorize(f"Ollama unreachable at {settings.ollama_url}: {health.error}", "red"))
        print("Start it with 'ollama serve'.")
        return 1

    print(colorize(f"Ollama reachable at {settings.ollama_url}", "green"))
    names = set()
    for model in engine.list_models():
        names.add(model.name)
        size = f" ({model.size_gb} GB)" if model.size_gb else ""
        print(f"  {model.name}{size}")
    for role, model in (("chat", settings.chat_model), ("router", settings.router_model)):
        found = model in names or f"{model}:latest" in names
        status = colorize("ok", "green") if found else colorize("missing", "red")
        print(f"{role} model {model}: {status}")
    return 0


def main() -> NoReturn:
    """Main entry point for shell CLI."""
    configure_logging()

    parser = argparse.ArgumentParser(
        prog="zweek-shell",
        description="Zweek local AI coding assistant in your terminal",
        epilog="""
Examples:
  zweek-shell "what does functools.partial do"
  zweek-shell -t "explain the GIL"     # Show the model's reasoning
  zweek-shell -q "one-line answer"     # Answer only
  echo "question" | zweek-shell        # Prompt from stdin
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "prompt",
        nargs="*",
        help="Request to run once; omit for an interactive session",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress header and progress messages (answer only)",
    )
    parser.add_argument(
        "--show-thinking",
        "-t",
        action="store_true",
        help="Stream the model's reasoning to stderr",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check the Ollama server and configured models, then exit",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"%(prog)s {BRANDING.VERSION}",
    )

    args = parser.parse_args()

    if args.check:
        sys.exit(print_engine_status())

    prompt = " ".join(args.prompt).strip()
    if not prompt and not sys.stdin.isatty():
        prompt = sys.stdin.read().strip()

    if not args.quiet:
        print_header()

    output = TerminalOutput(show_thinking=args.show_thinking, quiet=args.quiet)
    orchestrator = build_orchestrator(output.callbacks())
    try:
        if prompt:
            exit_code = run_exchange(orchestrator, prompt)
        else:
            exit_code = run_repl(orchestrator)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        exit_code = 130
    except Exception as e:
        logger.exception("Shell CLI failed")
        print(colorize(f"Error: {e}", "red"), file=sys.stderr)
        exit_code = 1
    finally:
        orchestrator.shutdown()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
