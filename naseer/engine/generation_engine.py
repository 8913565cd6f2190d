"""Generation engine (single model, single-flight).

This module provides the load / generate state machine:
- model lifecycle through `ModelLoader` -> `ModelHandle`
- lazy inference-context creation
- prompt processing + token-by-token decode loop
- fallback to canned responses when no usable model is present

It deliberately contains no locking: callers serialize access (see
`naseer.service.ModelService`).
"""

from __future__ import annotations

import codecs
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from .backends.base import ContextParams, ModelLoadParams
from .errors import DecodeError, GenerationError, LoadError, TokenBufferTooSmall, TokenizeError
from .fallback import FallbackResponder
from .loader import ModelHandle, ModelLoader
from .sampling import GenerationConfig, make_generator, sample_token
from .tokenizer import Tokenizer
from .types import EngineState, GenerateResult, LoadResult, LoadStatus, ModelInfo

logger = logging.getLogger(__name__)

MODEL_NOT_LOADED = "Error: Model not loaded"


@dataclass(frozen=True)
class EngineConfig:
    """Engine-wide fixed parameters."""

    context: ContextParams = field(default_factory=ContextParams)
    load: ModelLoadParams = field(default_factory=ModelLoadParams)
    vocab_path: str | None = None
    default_max_tokens: int = 256


class GenerationEngine:
    """Owns at most one `ModelHandle` and generates text from it.

    States:
        UNLOADED       no handle
        LOADED         handle present (native or fallback-only), no context
        CONTEXT_READY  native context created and reused across calls

    Thread-safety:
        Not thread-safe. A generate call mutates the native context.
    """

    def __init__(
        self,
        *,
        config: EngineConfig | None = None,
        generation_config: GenerationConfig | None = None,
        loader: ModelLoader | None = None,
        responder: FallbackResponder | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._loader = loader or ModelLoader(load_params=self._config.load)
        self._responder = responder or FallbackResponder()
        self._tokenizer = tokenizer or Tokenizer()
        self.generation_config = generation_config or GenerationConfig()
        self._handle: ModelHandle | None = None
        self._rng: Any = None
        self._rng_seed: int | None = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def handle(self) -> ModelHandle | None:
        return self._handle

    @property
    def responder(self) -> FallbackResponder:
        return self._responder

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    @property
    def state(self) -> EngineState:
        if self._handle is None:
            return EngineState.UNLOADED
        if self._handle.has_context:
            return EngineState.CONTEXT_READY
        return EngineState.LOADED

    @property
    def is_loaded(self) -> bool:
        return self._handle is not None

    @property
    def uses_fallback(self) -> bool:
        h = self._handle
        return h is None or h.use_pattern_fallback or not h.has_native_model

    def model_info(self) -> ModelInfo:
        h = self._handle
        if h is None:
            return ModelInfo(
                model_path=None,
                model_format=None,
                state=self.state,
                use_pattern_fallback=True,
            )
        return ModelInfo(
            model_path=h.path,
            model_format=h.model_format,
            state=self.state,
            use_pattern_fallback=self.uses_fallback,
            vocab_size=h.vocab_size,
            hidden_size=h.hidden_size,
            num_layers=h.num_layers,
            extra={"generation": self.generation_config.to_dict()},
        )

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_temperature(self, temperature: float) -> None:
        self.generation_config.set_temperature(temperature)

    def set_top_k(self, top_k: int) -> None:
        self.generation_config.set_top_k(top_k)

    def set_top_p(self, top_p: float) -> None:
        self.generation_config.set_top_p(top_p)

    # -------------------------------------------------------------------------
    # Loading / Unloading
    # -------------------------------------------------------------------------

    def load(self, path: str) -> LoadResult:
        """Load a model file, falling back to canned answers on any failure.

        Raises:
            ValueError: If `path` is not a non-empty string.
        """
        if not isinstance(path, str) or not path:
            raise ValueError(f"Model path must be a non-empty string, got {path!r}")

        self.unload()

        try:
            self._handle = self._loader.load(path)
        except LoadError as exc:
            logger.warning("model load failed (%s): %s; using fallback responses", exc.kind, exc)
            self._handle = ModelHandle.fallback(path)
            return LoadResult(status=LoadStatus.FALLBACK, path=path, error_kind=exc.kind, error=str(exc))
        except Exception as exc:
            logger.warning("model inspection raised %s: %s; using fallback responses", type(exc).__name__, exc)
            self._handle = ModelHandle.fallback(path)
            return LoadResult(status=LoadStatus.FALLBACK, path=path, error_kind="inspection", error=str(exc))

        return LoadResult(status=LoadStatus.LOADED, path=path)

    def unload(self) -> None:
        """Release the handle (context first, then model)."""
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()
            logger.info("unloaded model %s", handle.path)

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> str:
        """Generate text for `prompt`. Never raises for load/inference failures."""
        return self.generate_result(prompt, max_tokens, cancel=cancel).text

    def generate_result(
        self,
        prompt: str,
        max_tokens: int | None = None,
        *,
        cancel: threading.Event | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> GenerateResult:
        """Generate text for `prompt` and report how it was produced.

        Args:
            prompt: Input text.
            max_tokens: Maximum tokens to generate (default from EngineConfig).
            cancel: Checked between generation steps; when set, generation
                stops with finish_reason "cancelled".
            on_text: Called with each newly decoded chunk of model text.
        """
        if not isinstance(prompt, str):
            raise ValueError(f"Prompt must be a string, got {type(prompt).__name__}")
        if max_tokens is None:
            max_tokens = self._config.default_max_tokens

        if self._handle is None:
            return GenerateResult(text=MODEL_NOT_LOADED, finish_reason="not_loaded", source="none")

        if self.uses_fallback:
            return self._respond_with_fallback(prompt, finish_reason="fallback")

        try:
            return self._generate_native(prompt, int(max_tokens), cancel=cancel, on_text=on_text)
        except GenerationError as exc:
            logger.warning("inference failed (%s): %s; answering from fallback rules", exc.kind, exc)
            result = self._respond_with_fallback(prompt, finish_reason="error")
            result.error = f"{exc.kind}: {exc}"
            return result
        except Exception as exc:
            logger.warning("inference raised %s; answering from fallback rules", type(exc).__name__, exc_info=True)
            result = self._respond_with_fallback(prompt, finish_reason="error")
            result.error = f"inference: {exc}"
            return result

    def _respond_with_fallback(self, prompt: str, *, finish_reason: str) -> GenerateResult:
        if not self._tokenizer.is_loaded:
            self._tokenizer.load_vocabulary(self._config.vocab_path)
        rule, text = self._responder.resolve(prompt)
        logger.debug("fallback rule %r answered", rule.name)
        return GenerateResult(
            text=text,
            finish_reason=finish_reason,
            source="fallback",
            prompt_tokens=len(self._tokenizer.encode(prompt)),
            completion_tokens=len(self._tokenizer.encode(text)),
        )

    def _generator(self) -> Any:
        seed = self.generation_config.seed
        if seed is None:
            self._rng, self._rng_seed = None, None
        elif self._rng is None or seed != self._rng_seed:
            self._rng, self._rng_seed = make_generator(seed), seed
        return self._rng

    def _tokenize(self, handle: ModelHandle, prompt: str) -> list[int]:
        backend = handle.backend
        capacity = len(prompt.encode("utf-8")) + 1
        try:
            return backend.tokenize(handle.model, prompt, capacity)
        except TokenBufferTooSmall as exc:
            logger.debug("token buffer %d too small; retrying with %d", capacity, exc.required)
            try:
                return backend.tokenize(handle.model, prompt, exc.required)
            except TokenBufferTooSmall as exc2:
                raise TokenizeError(f"Failed to tokenize prompt: {exc2}") from exc2

    def _generate_native(
        self,
        prompt: str,
        max_tokens: int,
        *,
        cancel: threading.Event | None,
        on_text: Callable[[str], None] | None,
    ) -> GenerateResult:
        handle = self._handle
        backend = handle.backend
        params = self._config.context

        context = handle.ensure_context(params)
        backend.reset_context(context)

        tokens = self._tokenize(handle, prompt)
        if not tokens:
            raise TokenizeError("Prompt produced no tokens.")
        if len(tokens) >= params.n_ctx:
            raise TokenizeError(
                f"Prompt is {len(tokens)} tokens; context window is {params.n_ctx}."
            )

        # Prompt processing; a prompt of at most n_batch tokens is one decode.
        for start in range(0, len(tokens), params.n_batch):
            backend.decode(context, tokens[start : start + params.n_batch])

        eos = backend.eos_token(handle.model)
        rng = self._generator()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pieces: list[str] = []
        n_past = len(tokens)
        n_generated = 0
        finish_reason = "length"

        while n_generated < max_tokens:
            if cancel is not None and cancel.is_set():
                finish_reason = "cancelled"
                break

            token = sample_token(backend.get_logits(context), self.generation_config, generator=rng)
            if token == eos:
                finish_reason = "stop"
                break

            chunk = decoder.decode(backend.token_to_piece(handle.model, token))
            if chunk:
                pieces.append(chunk)
                if on_text is not None:
                    on_text(chunk)
            n_generated += 1

            if n_past >= params.n_ctx:
                break
            try:
                backend.decode(context, [token])
            except DecodeError as exc:
                logger.warning("decode failed after %d tokens (%s); returning partial output", n_generated, exc)
                finish_reason = "stop"
                break
            n_past += 1

        tail = decoder.decode(b"", final=True)
        if tail:
            pieces.append(tail)
            if on_text is not None:
                on_text(tail)

        return GenerateResult(
            text="".join(pieces),
            finish_reason=finish_reason,
            source="model",
            prompt_tokens=len(tokens),
            completion_tokens=n_generated,
        )
