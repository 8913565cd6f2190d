import os
import sys

import pytest


# Ensure the repository root is on sys.path so tests can import local entrypoints
# like apps.server.app and apps.cli.main without requiring an editable install.
_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)


from naseer.engine.backends.base import BaseBackend  # noqa: E402
from naseer.engine.errors import ContextError, DecodeError, TokenBufferTooSmall  # noqa: E402
from naseer.engine.generation_engine import EngineConfig, GenerationEngine  # noqa: E402
from naseer.engine.loader import ModelLoader  # noqa: E402
from naseer.engine.sampling import GenerationConfig  # noqa: E402

EOS = 0
BOS = 7
WORD = 4

_PIECES = {
    EOS: b"",
    1: b"Hello",
    2: b" world",
    3: b"!",
    WORD: b" w",
    5: b"\xc3",  # first half of "é"
    6: b"\xa9",  # second half of "é"
    BOS: b"",
}


class FakeBackend(BaseBackend):
    """In-memory backend: one token per prompt word, scripted output tokens.

    `script` is the sequence of token ids the fake "model" prefers at each
    step; once exhausted it prefers EOS.
    """

    n_vocab = 8

    def __init__(
        self,
        *,
        script=(1, 2, 3),
        tokenize_required=None,
        tokenize_always_too_small=False,
        fail_context=False,
        fail_prompt_decode=False,
        fail_step_decode_at=None,
        load_returns_none=False,
        fail_free_context=False,
    ):
        self.script = list(script)
        self.tokenize_required = tokenize_required
        self.tokenize_always_too_small = tokenize_always_too_small
        self.fail_context = fail_context
        self.fail_prompt_decode = fail_prompt_decode
        self.fail_step_decode_at = fail_step_decode_at
        self.load_returns_none = load_returns_none
        self.fail_free_context = fail_free_context

        self.events = []
        self.decoded = []
        self.tokenize_calls = []
        self.load_params = None
        self.context_params = None
        self._step = 0
        self._step_decodes = 0

    def init_runtime(self):
        self.events.append("init_runtime")

    def load_model(self, path, params):
        self.events.append("load_model")
        self.load_params = params
        if self.load_returns_none:
            return None
        return object()

    def model_metadata(self, model):
        return (self.n_vocab, 16, 2)

    def create_context(self, model, params):
        self.context_params = params
        if self.fail_context:
            raise ContextError("no memory for context")
        self.events.append("create_context")
        return object()

    def reset_context(self, context):
        self.events.append("reset_context")
        self._step = 0
        self._step_decodes = 0

    def tokenize(self, model, text, n_tokens_max):
        self.tokenize_calls.append(n_tokens_max)
        ids = [BOS] + [WORD] * len(text.split())
        if self.tokenize_always_too_small:
            raise TokenBufferTooSmall(n_tokens_max + 1)
        needed = len(ids) if self.tokenize_required is None else self.tokenize_required
        if n_tokens_max < needed:
            raise TokenBufferTooSmall(needed)
        return ids

    def decode(self, context, tokens):
        self.decoded.append(list(tokens))
        # Prompt slices are decoded before any logits are read.
        if self._step > 0:
            self._step_decodes += 1
            if self.fail_step_decode_at is not None and self._step_decodes == self.fail_step_decode_at:
                raise DecodeError("step decode failed", code=1)
            return
        if self.fail_prompt_decode:
            raise DecodeError("prompt decode failed", code=1)

    def get_logits(self, context):
        idx = self.script[self._step] if self._step < len(self.script) else EOS
        self._step += 1
        logits = [0.0] * self.n_vocab
        logits[idx] = 10.0
        return logits

    def token_to_piece(self, model, token):
        return _PIECES.get(token, b"")

    def eos_token(self, model):
        return EOS

    def free_context(self, context):
        self.events.append("free_context")
        if self.fail_free_context:
            raise RuntimeError("free_context failed")

    def free_model(self, model):
        self.events.append("free_model")


def write_gguf(path, payload=b"\x03\x00\x00\x00"):
    path.write_bytes(b"GGUF" + payload)
    return str(path)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def gguf_path(tmp_path):
    return write_gguf(tmp_path / "model.gguf")


@pytest.fixture
def make_engine():
    """Build an engine whose loader resolves "gguf" to the given fake backend."""

    def _make(backend=None, *, config=None, generation_config=None):
        backend = backend or FakeBackend()
        loader = ModelLoader(backends={"gguf": lambda: backend})
        return GenerationEngine(
            config=config or EngineConfig(),
            generation_config=generation_config or GenerationConfig(do_sample=False),
            loader=loader,
        )

    return _make


@pytest.fixture(autouse=True)
def _reset_capi_service():
    """The C-ABI shim holds one process-lifetime service; start each test clean."""
    yield
    from naseer import capi

    capi.cleanup_model()
