import pytest

pytest.importorskip("fastapi", reason="fastapi not installed")


def _client(service=None, **kwargs):
    from fastapi.testclient import TestClient

    from apps.server.app import create_app
    from naseer.service import ModelService

    service = service or ModelService()
    return TestClient(create_app(service=service, model_id="naseer-test", **kwargs)), service


def test_health():
    client, _ = _client()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_model_lifecycle():
    from naseer.service import MODEL_INFO

    client, service = _client()

    data = client.get("/v1/model").json()
    assert data["id"] == "naseer-test"
    assert data["info"] == MODEL_INFO
    assert data["loaded"] is False

    resp = client.post("/v1/model", json={"path": "model.xyz"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "fallback"
    assert resp.json()["error_kind"] == "unsupported_format"

    data = client.get("/v1/model").json()
    assert data["loaded"] is True
    assert data["model"]["use_pattern_fallback"] is True

    resp = client.delete("/v1/model")
    assert resp.status_code == 200
    assert resp.json() == {"loaded": False}
    assert not service.has_engine


@pytest.mark.parametrize("body", [{}, {"path": ""}, {"path": 3}])
def test_load_requires_a_path(body):
    client, _ = _client()
    assert client.post("/v1/model", json=body).status_code == 400


def test_body_must_be_an_object():
    client, _ = _client()
    assert client.post("/v1/model", json=["model.xyz"]).status_code == 400


def test_generate_requires_a_model():
    client, _ = _client()
    resp = client.post("/v1/generate", json={"prompt": "hello"})
    assert resp.status_code == 409


def test_generate_fallback_answer():
    from naseer.engine.fallback import GREETING_RESPONSE

    client, service = _client()
    service.init("model.xyz")

    resp = client.post("/v1/generate", json={"prompt": "hello", "max_tokens": 50})
    assert resp.status_code == 200
    data = resp.json()
    assert data["text"] == GREETING_RESPONSE
    assert data["source"] == "fallback"
    assert data["finish_reason"] == "fallback"
    assert data["model"] == "naseer-test"


def test_generate_not_loaded_sentinel():
    from naseer.engine.generation_engine import MODEL_NOT_LOADED

    client, service = _client()
    service.init(None)

    data = client.post("/v1/generate", json={"prompt": "hello"}).json()
    assert data["text"] == MODEL_NOT_LOADED
    assert data["finish_reason"] == "not_loaded"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"prompt": None},
        {"prompt": 5},
        {"prompt": "hi", "max_tokens": "10"},
        {"prompt": "hi", "max_tokens": True},
        {"prompt": "hi", "max_tokens": -1},
        {"prompt": "hi", "max_tokens": 1.5},
    ],
)
def test_generate_validation(body):
    client, service = _client()
    service.init("model.xyz")
    assert client.post("/v1/generate", json=body).status_code == 400


def test_max_tokens_cap():
    client, service = _client(http_max_completion_tokens=16)
    service.init("model.xyz")

    assert client.post("/v1/generate", json={"prompt": "hi", "max_tokens": 17}).status_code == 400
    assert client.post("/v1/generate", json={"prompt": "hi", "max_tokens": 16}).status_code == 200


def test_invalid_cap_is_rejected():
    from apps.server.app import create_app
    from naseer.service import ModelService

    with pytest.raises(ValueError):
        create_app(service=ModelService(), http_max_completion_tokens=0)


def test_update_config_clamps():
    client, service = _client()
    assert client.put("/v1/config", json={"temperature": 1.0}).status_code == 409

    service.init("model.xyz")
    resp = client.put("/v1/config", json={"temperature": 9, "top_k": 0, "top_p": 0.5})
    assert resp.status_code == 200
    data = resp.json()
    assert data["temperature"] == 2.0
    assert data["top_k"] == 1
    assert data["top_p"] == 0.5


@pytest.mark.parametrize("body", [{"temperature": "hot"}, {"top_k": None}, {"top_p": False}])
def test_update_config_rejects_non_numbers(body):
    client, service = _client()
    service.init("model.xyz")
    assert client.put("/v1/config", json=body).status_code == 400


@pytest.mark.parametrize("raw", [b'{"top_k": Infinity}', b'{"temperature": NaN}', b'{"top_p": -Infinity}'])
def test_update_config_rejects_non_finite_numbers(raw):
    client, service = _client()
    service.init("model.xyz")
    resp = client.put("/v1/config", content=raw, headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert service.engine.generation_config.top_k == 40
