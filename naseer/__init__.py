"""
NaseerAI - offline text generation runtime for on-device models.

Loads a GGUF model through llama.cpp and generates text for a prompt. When no
usable model is present, or inference fails, it answers from a priority-ordered
set of canned, safety-oriented responses instead of failing.

Quick Start:
    from naseer import ModelService

    service = ModelService()
    result = service.init("models/phi-2.Q4_K_M.gguf")
    print(result.status)             # LoadStatus.LOADED or LoadStatus.FALLBACK
    print(service.generate("How do I purify water?", 128))

Submodules:
    - naseer.engine: Loader, generation engine, sampling, fallback responder
    - naseer.service: ModelService facade (one engine per service)
    - naseer.capi: C-ABI shaped functions over a process-lifetime service
    - naseer.runtime: Backend availability checks
"""

from naseer._version import __version__

from naseer.engine.errors import (
    ContextError,
    DecodeError,
    GenerationError,
    LoadError,
    NaseerError,
    NativeLoadError,
    TokenizeError,
    UnsupportedFormatError,
)
from naseer.engine.fallback import FallbackResponder, FallbackRule
from naseer.engine.generation_engine import MODEL_NOT_LOADED, EngineConfig, GenerationEngine
from naseer.engine.loader import ModelHandle, ModelLoader, is_supported_format
from naseer.engine.sampling import GenerationConfig
from naseer.engine.tokenizer import Tokenizer, Vocabulary
from naseer.engine.types import EngineState, GenerateResult, LoadResult, LoadStatus, ModelInfo
from naseer.service import MODEL_INFO, ModelService

from naseer.runtime import is_llama_cpp_available, is_torch_available

__all__ = [
    # Version
    "__version__",
    # Facade
    "ModelService",
    "MODEL_INFO",
    # Engine
    "GenerationEngine",
    "EngineConfig",
    "GenerationConfig",
    "MODEL_NOT_LOADED",
    "ModelLoader",
    "ModelHandle",
    "is_supported_format",
    "FallbackResponder",
    "FallbackRule",
    "Tokenizer",
    "Vocabulary",
    # Types
    "EngineState",
    "GenerateResult",
    "LoadResult",
    "LoadStatus",
    "ModelInfo",
    # Errors
    "NaseerError",
    "LoadError",
    "UnsupportedFormatError",
    "NativeLoadError",
    "GenerationError",
    "ContextError",
    "TokenizeError",
    "DecodeError",
    # Runtime
    "is_llama_cpp_available",
    "is_torch_available",
]
