"""C-compatible boundary over a process-lifetime `ModelService`.

The functions mirror the native `model_interface.h` surface used by the host
application:

    int init_model(const char* model_path);          0 ok, -1 failure
    void cleanup_model();
    char* generate_text(const char* prompt, int max_tokens);
    void free_string(char* str);
    int is_model_loaded();
    const char* get_model_info();                     static, do not free
    void set_temperature(float); void set_top_k(int); void set_top_p(float);

Strings crossing the boundary are UTF-8 `bytes` (or `str`). `generate_text`
returns the address of a NUL-terminated buffer that stays valid until it is
passed to `free_string`.
"""

from __future__ import annotations

import ctypes
import logging
import threading
from typing import Union

from .service import MODEL_INFO, ModelService

logger = logging.getLogger(__name__)

CString = Union[bytes, str, None]

_service = ModelService()
_MODEL_INFO_BUFFER = ctypes.create_string_buffer(MODEL_INFO.encode("utf-8"))

# Owned buffers handed out by generate_text(), keyed by address.
_buffers: dict[int, ctypes.Array] = {}
_buffers_lock = threading.Lock()


def _to_text(value: CString) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def get_service() -> ModelService:
    """The service instance behind this boundary."""
    return _service


def init_model(model_path: CString) -> int:
    try:
        return _service.init(_to_text(model_path)).status_code
    except Exception:
        logger.exception("init_model failed")
        return -1


def cleanup_model() -> None:
    _service.cleanup()


def generate_text(prompt: CString, max_tokens: int) -> int | None:
    """Return the address of an owned UTF-8 buffer, or None.

    None means no engine exists, `prompt` is None, or generation raised.
    """
    try:
        text = _service.generate(_to_text(prompt), int(max_tokens))
    except Exception:
        logger.exception("generate_text failed")
        return None
    if text is None:
        return None

    buf = ctypes.create_string_buffer(text.encode("utf-8"))
    addr = ctypes.addressof(buf)
    with _buffers_lock:
        _buffers[addr] = buf
    return addr


def free_string(ptr: int | None) -> None:
    """Release a buffer returned by `generate_text`. Other values are ignored."""
    if not ptr:
        return
    with _buffers_lock:
        _buffers.pop(int(ptr), None)


def read_string(ptr: int | None) -> str | None:
    """Decode a buffer returned by `generate_text` without releasing it."""
    if not ptr:
        return None
    with _buffers_lock:
        if int(ptr) not in _buffers:
            raise ValueError(f"Not a live buffer from generate_text: {ptr:#x}")
    return ctypes.string_at(ptr).decode("utf-8")


def outstanding_buffers() -> int:
    with _buffers_lock:
        return len(_buffers)


def is_model_loaded() -> int:
    return 1 if _service.is_loaded() else 0


def get_model_info() -> bytes:
    return _MODEL_INFO_BUFFER.value


def set_temperature(temperature: float) -> None:
    _service.set_temperature(float(temperature))


def set_top_k(top_k: int) -> None:
    _service.set_top_k(int(top_k))


def set_top_p(top_p: float) -> None:
    _service.set_top_p(float(top_p))
