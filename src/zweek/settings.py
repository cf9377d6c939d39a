from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}",
            setting=name,
            expected="integer",
        ) from e


def _default_data_dir() -> Path:
    raw = os.environ.get("ZWEEK_DATA_DIR")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".zweek"


@dataclass(frozen=True)
class Settings:
    """Static settings for the local assistant.

    Keep defaults local and auditable; no network endpoints beyond localhost.
    """

    data_dir: Path = _default_data_dir()
    history_db_path: Path = data_dir / "history.db"
    log_path: Path = data_dir / "zweek.log"
    log_level: str = os.environ.get("ZWEEK_LOG_LEVEL", "INFO")
    log_max_bytes: int = _env_int("ZWEEK_LOG_MAX_BYTES", 1_000_000)
    log_backup_count: int = _env_int("ZWEEK_LOG_BACKUP_COUNT", 3)

    # Local Ollama server hosting both models.
    ollama_url: str = os.environ.get("ZWEEK_OLLAMA_URL", "http://127.0.0.1:11434")

    # Reasoning model used by chat mode. Must emit a "</think>" delimiter.
    chat_model: str = os.environ.get("ZWEEK_CHAT_MODEL", "qwen3:1.7b")

    # Small model used only for intent classification (kept resident).
    router_model: str = os.environ.get("ZWEEK_ROUTER_MODEL", "smollm:135m")

    # How long Ollama keeps a non-resident model in memory after a request.
    keep_alive: str = os.environ.get("ZWEEK_KEEP_ALIVE", "5m")

    # Prior exchanges rendered into the chat prompt.
    context_turns: int = _env_int("ZWEEK_CONTEXT_TURNS", 3)

    # Mirror conversation turns into the SQLite history store.
    persist_history: bool = _env_bool("ZWEEK_PERSIST_HISTORY", True)


settings = Settings()
