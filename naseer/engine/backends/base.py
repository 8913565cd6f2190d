"""Base backend interface for native inference libraries."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence


@dataclass(frozen=True)
class ModelLoadParams:
    """Native model load options (CPU only, memory-mapped, unlocked)."""

    n_gpu_layers: int = 0
    use_mmap: bool = True
    use_mlock: bool = False


@dataclass(frozen=True)
class ContextParams:
    """Inference context sizing."""

    n_ctx: int = 2048
    n_batch: int = 512
    n_threads: int = 4


class BaseBackend(ABC):
    """
    Abstract base class for native inference backends.

    A backend only wraps native calls; it keeps no per-model state of its
    own. The native model and context objects it returns are owned by a
    `ModelHandle`, which hands them back to `free_context` / `free_model`.
    """

    def init_runtime(self) -> None:
        """
        Initialize process-wide backend state.

        Must be idempotent. Default implementation does nothing.
        """
        pass

    @abstractmethod
    def load_model(self, path: str, params: ModelLoadParams) -> Any:
        """
        Load a model file.

        Returns:
            Native model reference.

        Raises:
            NativeLoadError: If the backend reports no model.
        """

    @abstractmethod
    def model_metadata(self, model: Any) -> tuple[int, int, int]:
        """Return (vocab_size, hidden_size, num_layers) for a loaded model."""

    @abstractmethod
    def create_context(self, model: Any, params: ContextParams) -> Any:
        """
        Create an inference context bound to `model`.

        Raises:
            ContextError: If the backend cannot allocate the context.
        """

    def reset_context(self, context: Any) -> None:
        """Forget all decoded positions so the next decode starts at 0.

        Default implementation does nothing; override for stateful contexts.
        """
        pass

    @abstractmethod
    def tokenize(self, model: Any, text: str, n_tokens_max: int) -> list[int]:
        """
        Tokenize `text` into at most `n_tokens_max` token ids.

        Raises:
            TokenBufferTooSmall: If more than `n_tokens_max` ids are needed;
                `required` carries the needed length.
        """

    @abstractmethod
    def decode(self, context: Any, tokens: Sequence[int]) -> None:
        """
        Run the forward pass for `tokens`, advancing the context state.

        Raises:
            DecodeError: If the backend reports a non-zero status.
        """

    @abstractmethod
    def get_logits(self, context: Any) -> Any:
        """Return the logit vector for the last decoded position.

        Any 1-D float sequence accepted by `torch.as_tensor` works.
        """

    @abstractmethod
    def token_to_piece(self, model: Any, token: int) -> bytes:
        """Return the raw UTF-8 bytes for one token (may be a partial code point)."""

    @abstractmethod
    def eos_token(self, model: Any) -> int:
        """Return the end-of-sequence token id."""

    @abstractmethod
    def free_context(self, context: Any) -> None:
        pass

    @abstractmethod
    def free_model(self, model: Any) -> None:
        pass
