"""Runtime environment checks for the native inference backend."""

from __future__ import annotations

import functools
import logging
import threading

logger = logging.getLogger(__name__)

_backend_init_lock = threading.Lock()
_backend_initialized = False


@functools.lru_cache(maxsize=1)
def is_llama_cpp_available() -> bool:
    """Check if the llama.cpp Python bindings can be imported."""
    try:
        import llama_cpp  # noqa: F401
        return True
    except ImportError:
        return False


@functools.lru_cache(maxsize=1)
def is_torch_available() -> bool:
    """Check if torch is available for sampling."""
    try:
        import torch  # noqa: F401
        return True
    except ImportError:
        return False


def check_llama_cpp_required() -> None:
    """Raise ImportError if the llama.cpp bindings are not available."""
    if not is_llama_cpp_available():
        raise ImportError(
            "GGUF inference requires llama-cpp-python. "
            "Install it with: pip install llama-cpp-python>=0.3.9"
        )


def ensure_backend_initialized() -> None:
    """Initialize process-wide llama.cpp state exactly once.

    Safe to call once per process or once per load.
    """
    global _backend_initialized

    if _backend_initialized:
        return
    with _backend_init_lock:
        if _backend_initialized:
            return
        check_llama_cpp_required()
        import llama_cpp

        llama_cpp.llama_backend_init()
        _backend_initialized = True
        logger.debug("llama.cpp backend initialized")


def is_backend_initialized() -> bool:
    return _backend_initialized
