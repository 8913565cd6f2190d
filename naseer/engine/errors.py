"""Error hierarchy for model loading and generation.

Load and inference failures are turned into diagnostics on the result types
(`LoadResult`, `GenerateResult`) by the engine; these exceptions carry the
cause up to that point.
"""

from __future__ import annotations


class NaseerError(Exception):
    """Base class for all runtime errors."""


class LoadError(NaseerError):
    """A model file could not be turned into a usable ModelHandle."""

    kind = "load"

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class UnsupportedFormatError(LoadError):
    """The file extension is unknown, or no backend can truly load it."""

    kind = "unsupported_format"


class NativeLoadError(LoadError):
    """The file is unreadable or the native backend returned no model."""

    kind = "native"


class GenerationError(NaseerError):
    """Real inference failed for a single generate call."""

    kind = "generation"


class ContextError(GenerationError):
    kind = "context"


class TokenizeError(GenerationError):
    kind = "tokenize"


class TokenBufferTooSmall(TokenizeError):
    """Raised by a backend when the token buffer cannot hold the prompt.

    `required` is the buffer length the backend reported.
    """

    def __init__(self, required: int) -> None:
        super().__init__(f"Token buffer too small; backend requires {required} tokens.")
        self.required = int(required)


class DecodeError(GenerationError):
    kind = "decode"

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
