"""Model file loading.

`ModelLoader.load()` dispatches on the file extension and returns a
`ModelHandle` that exclusively owns the native model (and, later, the
inference context). Formats that are recognized but have no backend are
reported as `UnsupportedFormatError`; no placeholder metadata is produced.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from . import registry
from .backends.base import BaseBackend, ContextParams, ModelLoadParams
from .errors import LoadError, NativeLoadError, UnsupportedFormatError

logger = logging.getLogger(__name__)

# Leading magic bytes checked before handing a file to the backend.
_FORMAT_MAGIC: dict[str, bytes] = {
    "gguf": b"GGUF",
}


def is_supported_format(path: str) -> bool:
    """True iff the (case-insensitive) extension of `path` is recognized."""
    return registry.format_for_path(path) is not None


class ModelHandle:
    """Exclusive owner of a native model and its inference context.

    `close()` releases the context before the model, unconditionally, and is
    safe to call more than once.
    """

    def __init__(
        self,
        *,
        backend: BaseBackend | None,
        model: Any,
        path: str,
        model_format: str | None,
        vocab_size: int = 0,
        hidden_size: int = 0,
        num_layers: int = 0,
        use_pattern_fallback: bool = False,
    ) -> None:
        self.backend = backend
        self.model = model
        self.context: Any = None
        self.path = path
        self.model_format = model_format
        self.vocab_size = int(vocab_size)
        self.hidden_size = int(hidden_size)
        self.num_layers = int(num_layers)
        self.use_pattern_fallback = bool(use_pattern_fallback)

    @classmethod
    def fallback(cls, path: str, model_format: str | None = None) -> "ModelHandle":
        """A handle with no native resources that only serves canned answers."""
        return cls(
            backend=None,
            model=None,
            path=path,
            model_format=model_format,
            use_pattern_fallback=True,
        )

    @property
    def has_native_model(self) -> bool:
        return self.backend is not None and self.model is not None

    @property
    def has_context(self) -> bool:
        return self.context is not None

    def ensure_context(self, params: ContextParams) -> Any:
        """Create the inference context on first use and return it."""
        if self.context is None:
            if not self.has_native_model:
                raise RuntimeError("Cannot create a context without a native model.")
            self.context = self.backend.create_context(self.model, params)
            logger.debug(
                "created inference context n_ctx=%d n_batch=%d n_threads=%d",
                params.n_ctx,
                params.n_batch,
                params.n_threads,
            )
        return self.context

    def close(self) -> None:
        context, self.context = self.context, None
        model, self.model = self.model, None
        try:
            if context is not None and self.backend is not None:
                self.backend.free_context(context)
        finally:
            if model is not None and self.backend is not None:
                self.backend.free_model(model)

    def __enter__(self) -> "ModelHandle":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"ModelHandle(path={self.path!r}, format={self.model_format!r}, "
            f"native={self.has_native_model}, context={self.has_context}, "
            f"fallback={self.use_pattern_fallback})"
        )


BackendFactory = Callable[[], BaseBackend]


class ModelLoader:
    """Turns a model file path into a `ModelHandle`.

    Args:
        backends: Optional format -> backend factory mapping. When omitted,
            backends are resolved through the global registry.
        load_params: Native load options passed to the backend.
    """

    def __init__(
        self,
        *,
        backends: Mapping[str, BackendFactory] | None = None,
        load_params: ModelLoadParams | None = None,
    ) -> None:
        self._backends = dict(backends) if backends is not None else None
        self._load_params = load_params or ModelLoadParams()

    def _backend_for(self, model_format: str) -> BaseBackend:
        if self._backends is None:
            return registry.get_backend(model_format)
        factory = self._backends.get(model_format)
        if factory is None:
            raise UnsupportedFormatError(f"No backend can load format {model_format!r}.")
        return factory()

    def load(self, path: str) -> ModelHandle:
        """
        Load a model file.

        Raises:
            UnsupportedFormatError: Unknown extension, or recognized format with
                no backend.
            NativeLoadError: File unreadable, wrong magic, or the backend
                returned no model.
        """
        model_format = registry.format_for_path(path)
        if model_format is None:
            ext = registry.file_extension(path) or "<none>"
            raise UnsupportedFormatError(f"Unrecognized model file extension: {ext}", path=path)

        try:
            backend = self._backend_for(model_format)
        except UnsupportedFormatError as exc:
            exc.path = path
            raise

        self._check_readable(path, model_format)

        backend.init_runtime()
        model = backend.load_model(path, self._load_params)
        if not model:
            raise NativeLoadError(f"Backend returned no model for {path}", path=path)

        try:
            vocab_size, hidden_size, num_layers = backend.model_metadata(model)
        except Exception as exc:
            backend.free_model(model)
            raise NativeLoadError(f"Failed to read model metadata: {exc}", path=path) from exc

        logger.info(
            "loaded %s model %s (vocab=%d, hidden=%d, layers=%d)",
            model_format,
            path,
            vocab_size,
            hidden_size,
            num_layers,
        )
        return ModelHandle(
            backend=backend,
            model=model,
            path=path,
            model_format=model_format,
            vocab_size=vocab_size,
            hidden_size=hidden_size,
            num_layers=num_layers,
            use_pattern_fallback=False,
        )

    def _check_readable(self, path: str, model_format: str) -> None:
        magic = _FORMAT_MAGIC.get(model_format, b"")
        try:
            with open(path, "rb") as f:
                head = f.read(len(magic))
        except OSError as exc:
            raise NativeLoadError(f"Cannot read model file {path}: {exc}", path=path) from exc
        if magic and head != magic:
            raise NativeLoadError(
                f"Not a valid {model_format} file (bad magic {head!r}): {path}", path=path
            )


__all__ = ["LoadError", "ModelHandle", "ModelLoader", "is_supported_format"]
