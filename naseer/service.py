"""Service facade: the single entry point that owns one GenerationEngine.

The facade is an ordinary object. Hosts create one and pass it around; only
the C-ABI shim (`naseer.capi`) keeps a process-lifetime instance.

Thread-safety:
    Every lifecycle, config and generation call takes `service.lock`, so
    concurrent callers are serialized (single-flight). Callers that need to
    group several calls atomically may hold the lock themselves (it is
    re-entrant).
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from ._version import __version__
from .engine.generation_engine import EngineConfig, GenerationEngine
from .engine.types import GenerateResult, LoadResult, LoadStatus

logger = logging.getLogger(__name__)

MODEL_INFO = f"NaseerAI on-device model runtime v{__version__}"


class ModelService:
    """Owns at most one `GenerationEngine` at a time."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        engine_factory: Callable[[], GenerationEngine] | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._engine_factory = engine_factory or (lambda: GenerationEngine(config=self._config))
        self._engine: GenerationEngine | None = None
        self.lock = threading.RLock()

    @property
    def engine(self) -> GenerationEngine | None:
        return self._engine

    @property
    def has_engine(self) -> bool:
        return self._engine is not None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self, path: Any) -> LoadResult:
        """Tear down any current engine, then create a new one and load `path`.

        Unsupported or broken model files still succeed (status FALLBACK);
        FAILED is reserved for malformed arguments and setup exceptions.
        """
        with self.lock:
            self.cleanup()
            try:
                engine = self._engine_factory()
            except Exception as exc:
                logger.exception("engine construction failed")
                return LoadResult(status=LoadStatus.FAILED, error_kind="exception", error=str(exc))

            self._engine = engine
            try:
                return engine.load(path)
            except ValueError as exc:
                return LoadResult(status=LoadStatus.FAILED, error_kind="invalid_argument", error=str(exc))
            except Exception as exc:
                logger.exception("model setup failed for %r", path)
                return LoadResult(status=LoadStatus.FAILED, path=str(path), error_kind="exception", error=str(exc))

    def cleanup(self) -> None:
        """Release the engine. Safe to call when nothing is loaded."""
        with self.lock:
            engine, self._engine = self._engine, None
            if engine is not None:
                engine.unload()

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def generate(
        self,
        prompt: str | None,
        max_tokens: int | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> str | None:
        """Return generated text, or None when there is no engine or no prompt."""
        result = self.generate_result(prompt, max_tokens, cancel=cancel)
        return None if result is None else result.text

    def generate_result(
        self,
        prompt: str | None,
        max_tokens: int | None = None,
        *,
        cancel: threading.Event | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> GenerateResult | None:
        with self.lock:
            if self._engine is None or prompt is None:
                return None
            return self._engine.generate_result(prompt, max_tokens, cancel=cancel, on_text=on_text)

    # -------------------------------------------------------------------------
    # Status / configuration
    # -------------------------------------------------------------------------

    def is_loaded(self) -> bool:
        with self.lock:
            return self._engine is not None and self._engine.is_loaded

    def model_info(self) -> str:
        return MODEL_INFO

    def describe(self) -> dict[str, Any]:
        with self.lock:
            engine = self._engine
            return {
                "info": MODEL_INFO,
                "loaded": engine is not None and engine.is_loaded,
                "model": None if engine is None else engine.model_info().to_dict(),
            }

    def set_temperature(self, temperature: float) -> None:
        with self.lock:
            if self._engine is not None:
                self._engine.set_temperature(temperature)

    def set_top_k(self, top_k: int) -> None:
        with self.lock:
            if self._engine is not None:
                self._engine.set_top_k(top_k)

    def set_top_p(self, top_p: float) -> None:
        with self.lock:
            if self._engine is not None:
                self._engine.set_top_p(top_p)
