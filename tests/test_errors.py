"""Tests for the error hierarchy and handle_errors decorator."""

from __future__ import annotations

import logging

import pytest

from zweek.errors import (
    ConfigurationError,
    EngineError,
    EngineUnavailableError,
    GenerationError,
    GenerationInProgressError,
    PersistenceError,
    ZweekError,
    handle_errors,
)


class TestHierarchy:
    """Tests for error types and their structured form."""

    def test_engine_errors_share_base(self) -> None:
        assert issubclass(EngineUnavailableError, EngineError)
        assert issubclass(GenerationError, EngineError)
        assert issubclass(EngineError, ZweekError)

    def test_to_dict_drops_empty_context(self) -> None:
        error = GenerationError("failed", engine="ollama")
        assert error.to_dict() == {
            "type": "generation",
            "message": "failed",
            "recoverable": False,
            "engine": "ollama",
        }

    def test_unavailable_is_recoverable(self) -> None:
        error = EngineUnavailableError(
            "Model 'x' not found", model="x", suggestion="Run 'ollama pull x'"
        )
        assert error.recoverable
        assert error.context["suggestion"] == "Run 'ollama pull x'"

    def test_timeouts_are_recoverable(self) -> None:
        assert GenerationError("slow", timeout_seconds=120.0).recoverable
        assert not GenerationError("broken").recoverable

    def test_in_progress_default_message(self) -> None:
        error = GenerationInProgressError()
        assert "still being generated" in str(error)
        assert error.recoverable

    def test_persistence_path_truncated(self) -> None:
        error = PersistenceError("bad", path="x" * 500)
        assert len(error.context["path"]) == 203

    def test_configuration_context(self) -> None:
        error = ConfigurationError(
            "Invalid value", setting="ZWEEK_CONTEXT_TURNS", expected="integer"
        )
        assert error.to_dict()["setting"] == "ZWEEK_CONTEXT_TURNS"


class TestHandleErrors:
    """Tests for the handle_errors decorator."""

    def test_returns_value_on_success(self) -> None:
        @handle_errors("add")
        def add(a: int, b: int) -> int:
            return a + b

        assert add(1, 2) == 3

    def test_returns_default_and_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        @handle_errors("read config", log_level="warning", default="fallback")
        def read() -> str:
            raise OSError("missing")

        with caplog.at_level(logging.WARNING, logger="zweek.errors"):
            assert read() == "fallback"
        assert "Failed to read config: missing" in caplog.text

    def test_reraise_wraps_foreign_errors(self) -> None:
        @handle_errors("parse", reraise=True)
        def parse() -> None:
            raise ValueError("bad input")

        with pytest.raises(ZweekError) as exc_info:
            parse()
        assert exc_info.value.context["error_type"] == "ValueError"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_reraise_keeps_zweek_errors(self) -> None:
        @handle_errors("store", reraise=True)
        def store() -> None:
            raise PersistenceError("locked")

        with pytest.raises(PersistenceError):
            store()
