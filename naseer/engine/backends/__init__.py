# Native inference backends
#
# Each backend implements a common contract for:
#   - Loading a model file into a native model handle
#   - Creating an inference context bound to that model
#   - Tokenize / decode / logits / token-to-text primitives
#
# The loader resolves backends through the registry so the engine stays
# backend-agnostic.

from .base import BaseBackend, ContextParams, ModelLoadParams

__all__ = ["BaseBackend", "ContextParams", "ModelLoadParams"]
