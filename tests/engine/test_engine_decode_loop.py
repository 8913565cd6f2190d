import threading

import pytest

pytest.importorskip("torch")

from conftest import BOS, WORD, FakeBackend  # noqa: E402
from naseer.engine.backends.base import ContextParams  # noqa: E402
from naseer.engine.fallback import GREETING_RESPONSE  # noqa: E402
from naseer.engine.generation_engine import EngineConfig  # noqa: E402
from naseer.engine.sampling import GenerationConfig  # noqa: E402
from naseer.engine.types import EngineState  # noqa: E402


def _loaded(make_engine, gguf_path, backend=None, **kwargs):
    backend = backend or FakeBackend()
    engine = make_engine(backend, **kwargs)
    engine.load(gguf_path)
    return engine, backend


def test_generates_until_eos(make_engine, gguf_path):
    engine, backend = _loaded(make_engine, gguf_path)

    result = engine.generate_result("say hi", 50)
    assert result.text == "Hello world!"
    assert result.finish_reason == "stop"
    assert result.source == "model"
    assert result.prompt_tokens == 3
    assert result.completion_tokens == 3
    assert result.error is None

    # Prompt in one decode, then one decode per accepted token.
    assert backend.decoded == [[BOS, WORD, WORD], [1], [2], [3]]
    assert engine.state is EngineState.CONTEXT_READY


def test_max_tokens_stops_with_length(make_engine, gguf_path):
    engine, backend = _loaded(make_engine, gguf_path)

    result = engine.generate_result("say hi", 2)
    assert result.text == "Hello world"
    assert result.finish_reason == "length"
    assert result.completion_tokens == 2
    assert backend.decoded[1:] == [[1], [2]]


def test_zero_max_tokens(make_engine, gguf_path):
    engine, _ = _loaded(make_engine, gguf_path)
    result = engine.generate_result("say hi", 0)
    assert result.text == ""
    assert result.finish_reason == "length"


def test_context_is_reused_and_reset_per_call(make_engine, gguf_path):
    engine, backend = _loaded(make_engine, gguf_path)

    assert engine.generate("one", 10) == "Hello world!"
    assert engine.generate("two", 10) == "Hello world!"
    assert backend.events.count("create_context") == 1
    assert backend.events.count("reset_context") == 2


def test_prompt_is_decoded_in_batches(make_engine, gguf_path):
    config = EngineConfig(context=ContextParams(n_ctx=64, n_batch=2))
    engine, backend = _loaded(make_engine, gguf_path, config=config)

    engine.generate("a b c d", 10)
    assert backend.decoded[:3] == [[BOS, WORD], [WORD, WORD], [WORD]]


def test_context_window_limit(make_engine, gguf_path):
    config = EngineConfig(context=ContextParams(n_ctx=4))
    backend = FakeBackend(script=(1, 2, 3, 1, 2))
    engine, _ = _loaded(make_engine, gguf_path, backend, config=config)

    result = engine.generate_result("hi", 10)
    assert result.text == "Hello world!"
    assert result.finish_reason == "length"
    assert result.completion_tokens == 3


def test_prompt_longer_than_context_uses_fallback(make_engine, gguf_path):
    config = EngineConfig(context=ContextParams(n_ctx=4))
    engine, _ = _loaded(make_engine, gguf_path, config=config)

    result = engine.generate_result("hello there my old friend", 10)
    assert result.source == "fallback"
    assert result.finish_reason == "error"
    assert result.error.startswith("tokenize:")
    assert result.text == GREETING_RESPONSE


def test_token_buffer_retry(make_engine, gguf_path):
    backend = FakeBackend(tokenize_required=64)
    engine, _ = _loaded(make_engine, gguf_path, backend)

    assert engine.generate("say hi", 10) == "Hello world!"
    assert backend.tokenize_calls == [len("say hi") + 1, 64]


def test_token_buffer_retry_only_once(make_engine, gguf_path):
    backend = FakeBackend(tokenize_always_too_small=True)
    engine, _ = _loaded(make_engine, gguf_path, backend)

    result = engine.generate_result("hello", 10)
    assert len(backend.tokenize_calls) == 2
    assert result.finish_reason == "error"
    assert result.error.startswith("tokenize:")
    assert result.text == GREETING_RESPONSE


def test_context_failure_is_retried_next_call(make_engine, gguf_path):
    backend = FakeBackend(fail_context=True)
    engine, _ = _loaded(make_engine, gguf_path, backend)

    result = engine.generate_result("hello", 10)
    assert result.finish_reason == "error"
    assert result.error.startswith("context:")
    assert engine.state is EngineState.LOADED

    backend.fail_context = False
    assert engine.generate("hello", 10) == "Hello world!"
    assert engine.state is EngineState.CONTEXT_READY


def test_prompt_decode_failure_uses_fallback(make_engine, gguf_path):
    engine, _ = _loaded(make_engine, gguf_path, FakeBackend(fail_prompt_decode=True))

    result = engine.generate_result("hello", 10)
    assert result.source == "fallback"
    assert result.error.startswith("decode:")


def test_step_decode_failure_returns_partial_output(make_engine, gguf_path):
    engine, _ = _loaded(make_engine, gguf_path, FakeBackend(fail_step_decode_at=2))

    result = engine.generate_result("hello", 10)
    assert result.text == "Hello world"
    assert result.finish_reason == "stop"
    assert result.source == "model"
    assert result.error is None


def test_multibyte_pieces_are_joined(make_engine, gguf_path):
    engine, _ = _loaded(make_engine, gguf_path, FakeBackend(script=(5, 6)))
    assert engine.generate("accent", 10) == "é"


def test_cancel_before_first_token(make_engine, gguf_path):
    engine, _ = _loaded(make_engine, gguf_path)
    cancel = threading.Event()
    cancel.set()

    result = engine.generate_result("hello", 10, cancel=cancel)
    assert result.text == ""
    assert result.finish_reason == "cancelled"


def test_cancel_between_steps_and_streaming(make_engine, gguf_path):
    engine, _ = _loaded(make_engine, gguf_path)
    cancel = threading.Event()
    chunks = []

    def on_text(chunk):
        chunks.append(chunk)
        cancel.set()

    result = engine.generate_result("hello", 10, cancel=cancel, on_text=on_text)
    assert chunks == ["Hello"]
    assert result.text == "Hello"
    assert result.finish_reason == "cancelled"


def test_sampling_with_top_k_one_matches_greedy(make_engine, gguf_path):
    engine, _ = _loaded(
        make_engine,
        gguf_path,
        generation_config=GenerationConfig(top_k=1, seed=7),
    )
    assert engine.generate("hello", 10) == "Hello world!"


def test_unexpected_backend_error_uses_fallback(make_engine, gguf_path):
    class BrokenLogitsBackend(FakeBackend):
        def get_logits(self, context):
            raise RuntimeError("native logits buffer unavailable")

    engine, _ = _loaded(make_engine, gguf_path, BrokenLogitsBackend())

    result = engine.generate_result("hello", 10)
    assert result.text == GREETING_RESPONSE
    assert result.source == "fallback"
    assert result.finish_reason == "error"
    assert result.error == "inference: native logits buffer unavailable"


def test_truncated_multibyte_tail_is_replaced(make_engine, gguf_path):
    engine, _ = _loaded(make_engine, gguf_path, FakeBackend(script=(1, 5)))
    chunks = []

    result = engine.generate_result("x", 2, on_text=chunks.append)
    assert result.text == "Hello\ufffd"
    assert result.finish_reason == "length"
    assert result.completion_tokens == 2
    assert chunks == ["Hello", "\ufffd"]
