"""Model format registry.

Maps file extensions to model formats, and model formats to the backend
classes that can truly load them.
"""

import os
from typing import Type

from .backends.base import BaseBackend
from .backends.llama_cpp import LlamaCppBackend
from .errors import UnsupportedFormatError

# Extension (lower-cased, with dot) -> format name
_FORMAT_REGISTRY: dict[str, str] = {
    ".gguf": "gguf",
    ".safetensors": "safetensors",
    ".bin": "pytorch",
    ".pt": "pytorch",
    ".pth": "pytorch",
}

# Format name -> backend class. Formats without an entry are recognized but
# cannot be loaded.
_BACKEND_REGISTRY: dict[str, Type[BaseBackend]] = {
    "gguf": LlamaCppBackend,
}


def file_extension(path: str) -> str:
    """Return the lower-cased extension of `path` including the dot, or ""."""
    return os.path.splitext(path)[1].lower()


def format_for_path(path: str) -> str | None:
    """Return the model format for `path`, or None if the extension is unknown."""
    return _FORMAT_REGISTRY.get(file_extension(path))


def get_backend(model_format: str) -> BaseBackend:
    """
    Get a backend instance for the given model format.

    Args:
        model_format: Name of the model format (e.g., "gguf").

    Returns:
        A backend instance for the format.

    Raises:
        UnsupportedFormatError: If no backend is registered for the format.
    """
    if model_format not in _BACKEND_REGISTRY:
        available = ", ".join(_BACKEND_REGISTRY.keys())
        raise UnsupportedFormatError(
            f"No backend can load format {model_format!r}. Loadable formats: {available}"
        )
    return _BACKEND_REGISTRY[model_format]()


def register_backend(model_format: str, backend_cls: Type[BaseBackend]) -> None:
    """
    Register a backend for a model format.

    Args:
        model_format: Name of the model format.
        backend_cls: Backend class (must inherit from BaseBackend).
    """
    _BACKEND_REGISTRY[model_format] = backend_cls


def register_extension(extension: str, model_format: str) -> None:
    """Recognize `extension` (e.g. ".gguf") as `model_format`."""
    ext = extension.lower()
    if not ext.startswith("."):
        ext = "." + ext
    _FORMAT_REGISTRY[ext] = model_format


def list_formats() -> list[str]:
    """Return the sorted list of recognized format names."""
    return sorted(set(_FORMAT_REGISTRY.values()))


def list_loadable_formats() -> list[str]:
    """Return list of format names with a registered backend."""
    return list(_BACKEND_REGISTRY.keys())


def recognized_extensions() -> list[str]:
    return sorted(_FORMAT_REGISTRY.keys())
