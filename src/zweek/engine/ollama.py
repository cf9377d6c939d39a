"""Ollama Engine - Local inference via the Ollama HTTP API.

Implements the InferenceEngine protocol with:
- Raw-mode streaming generation (the caller owns the prompt template)
- JSON-schema output constraints for the router grammar
- Retry with exponential backoff for transient failures while loading
- Cooperative cancellation between streamed chunks
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
import tenacity

from zweek.config import LIMITS, TIMEOUTS
from zweek.errors import EngineUnavailableError, GenerationError
from zweek.settings import settings

from .base import CancellationToken, ChunkCallback, EngineHealth, ModelInfo

logger = logging.getLogger(__name__)

# Sampling chain used for every generation.
_SAMPLING_OPTIONS: dict[str, Any] = {
    "top_k": 40,
    "top_p": 0.95,
    "temperature": 0.7,
    "repeat_penalty": 1.1,
    "repeat_last_n": 64,
}


# =============================================================================
# Retry Configuration
# =============================================================================


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    return isinstance(exc, (httpx.TimeoutException, httpx.ConnectError))


_retry_transient = tenacity.retry(
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=1, min=1, max=4),
    retry=tenacity.retry_if_exception(_is_retryable),
    before_sleep=lambda rs: logger.debug(
        "Retrying Ollama request (attempt %d)", rs.attempt_number + 1
    ),
    reraise=True,
)


# =============================================================================
# Ollama Engine
# =============================================================================


class OllamaEngine:
    """Inference engine backed by a local Ollama server.

    Each instance holds one model. "Loading" verifies the model is pulled and
    asks Ollama to bring it into memory; a resident model is pinned with
    ``keep_alive=-1`` so the router stays warm between requests.

    Example:
        engine = OllamaEngine(context_length=LIMITS.ROUTER_CONTEXT)
        engine.load("smollm:135m", resident=True)
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        context_length: int = LIMITS.CHAT_CONTEXT,
    ) -> None:
        """Initialize the engine.

        Args:
            url: Ollama server URL. Defaults to settings.ollama_url.
            context_length: Context window requested for each generation.
        """
        self._url = (url or settings.ollama_url).rstrip("/")
        self._context_length = context_length
        self._model: str | None = None
        self._resident = False

    @property
    def engine_type(self) -> str:
        return "ollama"

    @property
    def model(self) -> str | None:
        return self._model

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def load(self, model: str, *, resident: bool = False) -> bool:
        """Verify the model exists and warm it up.

        Returns False (and logs why) instead of raising, so callers can turn
        a failed load into a user-facing message.
        """
        if self._model == model and self._resident == resident:
            return True
        if self._model is not None:
            self.unload()

        try:
            available = {m.name for m in self._fetch_models()}
            if model not in available and f"{model}:latest" not in available:
                raise EngineUnavailableError(
                    f"Model '{model}' not found",
                    engine=self.engine_type,
                    model=model,
                    url=self._url,
                    suggestion=f"Run 'ollama pull {model}' to download it.",
                )
            self._warm_up(model, self._keep_alive(resident))
        except EngineUnavailableError as e:
            logger.warning("Cannot load model: %s", e.to_dict())
            return False
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Cannot load model %s from %s: %s", model, self._url, e)
            return False

        self._model = model
        self._resident = resident
        logger.info("Loaded model %s (resident=%s)", model, resident)
        return True

    def unload(self) -> None:
        """Ask Ollama to evict the current model. Errors are logged only."""
        model = self._model
        self._model = None
        self._resident = False
        if model is None:
            return
        try:
            with httpx.Client(timeout=TIMEOUTS.ENGINE_CHECK) as client:
                res = client.post(
                    f"{self._url}/api/generate",
                    json={"model": model, "keep_alive": 0},
                )
                res.raise_for_status()
            logger.debug("Unloaded model %s", model)
        except httpx.HTTPError as e:
            logger.warning("Failed to unload model %s: %s", model, e)

    def infer(
        self,
        prompt: str,
        grammar: str,
        max_tokens: int,
        on_chunk: ChunkCallback | None,
        cancel: CancellationToken | None,
    ) -> str:
        """Stream a raw completion.

        Does NOT retry on failure (streaming is not idempotent). Closing the
        response on cancellation drops the connection, which makes Ollama
        stop generating.
        """
        if self._model is None:
            raise GenerationError("No model loaded", engine=self.engine_type)
        if cancel is not None and cancel.is_cancelled:
            return ""

        payload = self._build_payload(prompt, grammar, max_tokens)
        url = f"{self._url}/api/generate"
        pieces: list[str] = []

        try:
            with httpx.Client(timeout=TIMEOUTS.GENERATION) as client:
                with client.stream("POST", url, json=payload) as response:
                    response.raise_for_status()
                    for line in response.iter_lines():
                        if cancel is not None and cancel.is_cancelled:
                            logger.debug("Generation cancelled after %d chunks", len(pieces))
                            break
                        if not line:
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            continue
                        if data.get("error"):
                            raise GenerationError(
                                str(data["error"]), engine=self.engine_type, model=self._model
                            )
                        piece = data.get("response", "")
                        if piece:
                            pieces.append(piece)
                            if on_chunk is not None:
                                on_chunk(piece)
                        if data.get("done", False):
                            break

        except httpx.ConnectError as e:
            raise GenerationError(
                f"Cannot connect to Ollama at {self._url}. Is 'ollama serve' running?",
                engine=self.engine_type,
                model=self._model,
            ) from e

        except httpx.TimeoutException as e:
            raise GenerationError(
                f"Ollama generation timed out after {TIMEOUTS.GENERATION}s",
                engine=self.engine_type,
                model=self._model,
                timeout_seconds=TIMEOUTS.GENERATION,
            ) from e

        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise GenerationError(
                    f"Model '{self._model}' not found. "
                    f"Run 'ollama pull {self._model}' to download it.",
                    engine=self.engine_type,
                    model=self._model,
                ) from e
            raise GenerationError(
                f"Ollama HTTP error: {e}", engine=self.engine_type, model=self._model
            ) from e

        except httpx.HTTPError as e:
            raise GenerationError(
                f"Generation failed: {e}", engine=self.engine_type, model=self._model
            ) from e

        return "".join(pieces)

    def list_models(self) -> list[ModelInfo]:
        """List models pulled into the local Ollama server."""
        try:
            return self._fetch_models()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to list Ollama models: %s", e)
            return []

    def check_health(self) -> EngineHealth:
        """Check Ollama server health."""
        try:
            with httpx.Client(timeout=TIMEOUTS.ENGINE_MODELS) as client:
                res = client.get(f"{self._url}/api/tags")
                res.raise_for_status()
                models = res.json().get("models", [])

            return EngineHealth(
                reachable=True,
                model_count=len(models),
                current_model=self._model,
            )

        except (httpx.HTTPError, ValueError) as e:
            return EngineHealth(reachable=False, error=str(e))

    # -------------------------------------------------------------------------
    # Private Methods
    # -------------------------------------------------------------------------

    def _keep_alive(self, resident: bool) -> int | str:
        return -1 if resident else settings.keep_alive

    def _build_payload(self, prompt: str, grammar: str, max_tokens: int) -> dict[str, Any]:
        """Build the raw generate request payload."""
        payload: dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "raw": True,
            "stream": True,
            "keep_alive": self._keep_alive(self._resident),
            "options": {
                **_SAMPLING_OPTIONS,
                "num_predict": int(max_tokens),
                "num_ctx": self._context_length,
            },
        }
        if grammar:
            try:
                payload["format"] = json.loads(grammar)
            except json.JSONDecodeError:
                # Not a schema; Ollama also accepts the bare "json" format name
                payload["format"] = grammar
        return payload

    def _fetch_models(self) -> list[ModelInfo]:
        with httpx.Client(timeout=TIMEOUTS.ENGINE_CHECK) as client:
            res = client.get(f"{self._url}/api/tags")
            res.raise_for_status()
            data = res.json()

        models = []
        for m in data.get("models", []):
            if not (isinstance(m, dict) and isinstance(m.get("name"), str)):
                continue
            details = m.get("details") or {}
            size_bytes = m.get("size", 0)
            size_gb = size_bytes / (1024**3) if size_bytes else None
            families = details.get("families") or []
            models.append(
                ModelInfo(
                    name=m["name"],
                    size_gb=round(size_gb, 1) if size_gb else None,
                    family=details.get("family"),
                    families=[str(f) for f in families],
                )
            )
        return models

    @_retry_transient
    def _warm_up(self, model: str, keep_alive: int | str) -> None:
        """Load the model into memory with an empty generate request."""
        with httpx.Client(timeout=TIMEOUTS.MODEL_LOAD) as client:
            res = client.post(
                f"{self._url}/api/generate",
                json={"model": model, "keep_alive": keep_alive},
            )
            res.raise_for_status()
