"""Engine result and status types.

These types are used internally by the engine and the service facade.
They are independent of the C-ABI shim and of any HTTP layer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Literal


class EngineState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    CONTEXT_READY = "context_ready"


class LoadStatus(str, Enum):
    LOADED = "loaded"  # real backend model
    FALLBACK = "fallback"  # canned answers only
    FAILED = "failed"  # malformed arguments or setup exception


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading a model file."""

    status: LoadStatus
    path: str | None = None
    error_kind: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not LoadStatus.FAILED

    @property
    def status_code(self) -> int:
        """0 on success (real or fallback), -1 on failure."""
        return 0 if self.ok else -1

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "path": self.path,
            "error_kind": self.error_kind,
            "error": self.error,
        }


FinishReason = Literal["stop", "length", "cancelled", "error", "fallback", "not_loaded"]


@dataclass
class GenerateResult:
    """Response from a single generate call."""

    text: str
    finish_reason: FinishReason = "stop"
    source: Literal["model", "fallback", "none"] = "model"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ModelInfo:
    """Information about the model held by an engine."""

    model_path: str | None
    model_format: str | None
    state: EngineState
    use_pattern_fallback: bool
    vocab_size: int = 0
    hidden_size: int = 0
    num_layers: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data
