"""Backend for GGUF models via llama.cpp (llama-cpp-python low-level bindings)."""

from __future__ import annotations

import ctypes
import logging
from typing import Any, Sequence

from ...runtime import check_llama_cpp_required, ensure_backend_initialized
from ..errors import ContextError, DecodeError, NativeLoadError, TokenBufferTooSmall
from .base import BaseBackend, ContextParams, ModelLoadParams

logger = logging.getLogger(__name__)

_PIECE_BUFFER_SIZE = 256


class LlamaCppBackend(BaseBackend):
    """
    Thin wrapper over the llama.cpp C API as exposed by `llama_cpp`.

    All calls go straight to the native library; `llama_cpp` is imported
    lazily so the rest of the package works without it installed.

    Thread Safety:
        llama.cpp contexts are NOT thread-safe. Callers must serialize all
        calls that touch the same context.
    """

    def init_runtime(self) -> None:
        ensure_backend_initialized()

    # -------------------------------------------------------------------------
    # Model / context lifecycle
    # -------------------------------------------------------------------------

    def load_model(self, path: str, params: ModelLoadParams) -> Any:
        check_llama_cpp_required()
        import llama_cpp

        mparams = llama_cpp.llama_model_default_params()
        mparams.n_gpu_layers = int(params.n_gpu_layers)
        mparams.use_mmap = bool(params.use_mmap)
        mparams.use_mlock = bool(params.use_mlock)

        model = llama_cpp.llama_model_load_from_file(path.encode("utf-8"), mparams)
        if not model:
            raise NativeLoadError(f"llama.cpp failed to load model: {path}", path=path)
        return model

    def model_metadata(self, model: Any) -> tuple[int, int, int]:
        import llama_cpp

        vocab = llama_cpp.llama_model_get_vocab(model)
        return (
            int(llama_cpp.llama_vocab_n_tokens(vocab)),
            int(llama_cpp.llama_model_n_embd(model)),
            int(llama_cpp.llama_model_n_layer(model)),
        )

    def create_context(self, model: Any, params: ContextParams) -> Any:
        import llama_cpp

        cparams = llama_cpp.llama_context_default_params()
        cparams.n_ctx = int(params.n_ctx)
        cparams.n_batch = int(params.n_batch)
        cparams.n_threads = int(params.n_threads)
        cparams.n_threads_batch = int(params.n_threads)

        ctx = llama_cpp.llama_init_from_model(model, cparams)
        if not ctx:
            raise ContextError(
                f"llama.cpp failed to create a context (n_ctx={params.n_ctx}, n_batch={params.n_batch})"
            )
        return ctx

    def reset_context(self, context: Any) -> None:
        import llama_cpp

        # llama.cpp renamed the KV-cache API across releases.
        memory_clear = getattr(llama_cpp, "llama_memory_clear", None)
        if memory_clear is not None:
            memory_clear(llama_cpp.llama_get_memory(context), True)
            return
        kv_clear = getattr(llama_cpp, "llama_kv_self_clear", None) or llama_cpp.llama_kv_cache_clear
        kv_clear(context)

    def free_context(self, context: Any) -> None:
        import llama_cpp

        llama_cpp.llama_free(context)

    def free_model(self, model: Any) -> None:
        import llama_cpp

        llama_cpp.llama_model_free(model)

    # -------------------------------------------------------------------------
    # Inference primitives
    # -------------------------------------------------------------------------

    def tokenize(self, model: Any, text: str, n_tokens_max: int) -> list[int]:
        import llama_cpp

        vocab = llama_cpp.llama_model_get_vocab(model)
        data = text.encode("utf-8")
        n_tokens_max = max(int(n_tokens_max), 1)
        buf = (llama_cpp.llama_token * n_tokens_max)()

        # add_special=True (BOS), parse_special=True
        n = llama_cpp.llama_tokenize(vocab, data, len(data), buf, n_tokens_max, True, True)
        if n < 0:
            raise TokenBufferTooSmall(-n)
        return list(buf[:n])

    def decode(self, context: Any, tokens: Sequence[int]) -> None:
        import llama_cpp

        n = len(tokens)
        arr = (llama_cpp.llama_token * n)(*tokens)
        batch = llama_cpp.llama_batch_get_one(arr, n)
        rc = llama_cpp.llama_decode(context, batch)
        if rc != 0:
            raise DecodeError(f"llama_decode returned {rc}", code=int(rc))

    def get_logits(self, context: Any) -> Any:
        import llama_cpp
        import torch

        model = llama_cpp.llama_get_model(context)
        n_vocab = int(llama_cpp.llama_vocab_n_tokens(llama_cpp.llama_model_get_vocab(model)))
        ptr = llama_cpp.llama_get_logits_ith(context, -1)
        if not ptr:
            raise DecodeError("llama.cpp returned no logits for the last position")

        # Copy out of the native buffer; the next decode overwrites it.
        arr = (ctypes.c_float * n_vocab).from_address(ctypes.addressof(ptr.contents))
        return torch.frombuffer(arr, dtype=torch.float32).clone()

    def token_to_piece(self, model: Any, token: int) -> bytes:
        import llama_cpp

        vocab = llama_cpp.llama_model_get_vocab(model)
        buf = ctypes.create_string_buffer(_PIECE_BUFFER_SIZE)
        n = llama_cpp.llama_token_to_piece(vocab, int(token), buf, _PIECE_BUFFER_SIZE, 0, False)
        if n < 0:
            size = -n
            buf = ctypes.create_string_buffer(size)
            n = llama_cpp.llama_token_to_piece(vocab, int(token), buf, size, 0, False)
            if n < 0:
                logger.debug("token_to_piece failed for token %d", token)
                return b""
        return buf.raw[:n]

    def eos_token(self, model: Any) -> int:
        import llama_cpp

        return int(llama_cpp.llama_vocab_eos(llama_cpp.llama_model_get_vocab(model)))
