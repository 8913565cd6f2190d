import pytest

from naseer import capi
from naseer.engine.fallback import DEFAULT_RESPONSE, GREETING_RESPONSE
from naseer.engine.generation_engine import MODEL_NOT_LOADED
from naseer.service import MODEL_INFO


def test_end_to_end_with_fallback_model():
    assert capi.init_model(b"model.xyz") == 0
    assert capi.is_model_loaded() == 1

    ptr = capi.generate_text(b"hello", 50)
    assert ptr
    assert capi.read_string(ptr) == GREETING_RESPONSE
    assert capi.outstanding_buffers() == 1

    capi.free_string(ptr)
    assert capi.outstanding_buffers() == 0
    with pytest.raises(ValueError):
        capi.read_string(ptr)

    capi.cleanup_model()
    assert capi.is_model_loaded() == 0


def test_generate_without_init_returns_null():
    assert capi.generate_text(b"hello", 10) is None


def test_null_prompt_returns_null():
    capi.init_model("model.xyz")
    assert capi.generate_text(None, 10) is None


def test_failed_init_returns_sentinel_text():
    assert capi.init_model(None) == -1
    assert capi.is_model_loaded() == 0

    ptr = capi.generate_text(b"hi", 5)
    try:
        assert capi.read_string(ptr) == MODEL_NOT_LOADED
    finally:
        capi.free_string(ptr)


def test_free_string_ignores_unknown_pointers():
    capi.free_string(None)
    capi.free_string(0)
    capi.free_string(0xDEADBEEF)


def test_model_info_is_static():
    assert capi.get_model_info() == MODEL_INFO.encode("utf-8")
    assert capi.get_model_info() == capi.get_model_info()


def test_setters_clamp_through_the_boundary():
    capi.set_temperature(3.0)  # no engine: ignored
    capi.init_model(b"model.xyz")
    capi.set_temperature(3.0)
    capi.set_top_k(0)
    capi.set_top_p(0.5)

    cfg = capi.get_service().engine.generation_config
    assert (cfg.temperature, cfg.top_k, cfg.top_p) == (2.0, 1, 0.5)


def test_non_ascii_prompt():
    capi.init_model("model.xyz")
    ptr = capi.generate_text("مرحبا".encode("utf-8"), 10)
    try:
        assert capi.read_string(ptr) == DEFAULT_RESPONSE
    finally:
        capi.free_string(ptr)


def test_cleanup_twice():
    capi.cleanup_model()
    capi.cleanup_model()
    assert capi.is_model_loaded() == 0
