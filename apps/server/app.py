"""FastAPI app exposing the model service over local HTTP.

The HTTP layer lives under `apps/` and can depend on heavier deps (FastAPI, uvicorn).
All model execution is delegated to the service facade (`naseer/service.py`),
which serializes calls with its own lock.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
from typing import Any

from fastapi import FastAPI, HTTPException, Request

from naseer import __version__
from naseer.engine.types import LoadStatus
from naseer.service import ModelService

logger = logging.getLogger(__name__)


def create_app(
    *,
    service: ModelService,
    model_id: str = "naseer",
    http_max_completion_tokens: int | None = None,
    default_max_tokens: int = 256,
) -> FastAPI:
    app = FastAPI(title="NaseerAI Local Server", version=__version__)

    if http_max_completion_tokens is not None:
        try:
            http_max_completion_tokens = int(http_max_completion_tokens)
        except Exception as exc:
            raise ValueError("http_max_completion_tokens must be an integer") from exc
        if http_max_completion_tokens <= 0:
            raise ValueError("http_max_completion_tokens must be > 0")

    async def _wait_for_disconnect(request: Request, poll_s: float = 0.1) -> None:
        while True:
            if await request.is_disconnected():
                return
            await asyncio.sleep(poll_s)

    async def _run_with_disconnect_cancellation(
        request: Request, coro: Any, cancel: threading.Event
    ) -> Any:
        task = asyncio.create_task(coro)
        disconnect_task = asyncio.create_task(_wait_for_disconnect(request))
        # Yield to let both tasks start (handles coroutines that return synchronously).
        await asyncio.sleep(0)
        done, _ = await asyncio.wait(
            {task, disconnect_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if disconnect_task in done:
            # The worker thread cannot be interrupted; ask the decode loop to stop.
            cancel.set()
            try:
                await task
            except Exception:
                logger.debug("generation failed after client disconnect", exc_info=True)
            raise HTTPException(status_code=499, detail="Client disconnected")

        disconnect_task.cancel()
        try:
            await disconnect_task
        except asyncio.CancelledError:
            pass
        return task.result()

    async def _json_dict_or_empty(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except Exception:
            return {}
        if isinstance(payload, dict):
            return payload
        raise HTTPException(status_code=400, detail="Request body must be a JSON object.")

    def _number(payload: dict[str, Any], key: str, cast: type) -> Any:
        value = payload[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise HTTPException(status_code=400, detail=f"'{key}' must be a finite number.")
        return cast(value)

    # -------------------------------------------------------------------------
    # Health & Model
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/model")
    async def get_model() -> dict[str, Any]:
        info = await asyncio.to_thread(service.describe)
        info["id"] = model_id
        return info

    @app.post("/v1/model")
    async def load_model(request: Request) -> Any:
        payload = await _json_dict_or_empty(request)
        path = payload.get("path")
        if not isinstance(path, str) or not path:
            raise HTTPException(status_code=400, detail="'path' is required and must be a non-empty string.")

        result = await asyncio.to_thread(service.init, path)
        if result.status is LoadStatus.FAILED:
            status = 400 if result.error_kind == "invalid_argument" else 500
            raise HTTPException(status_code=status, detail=result.error or "Model initialization failed.")
        return result.to_dict()

    @app.delete("/v1/model")
    async def unload_model() -> Any:
        await asyncio.to_thread(service.cleanup)
        return {"loaded": False}

    @app.put("/v1/config")
    async def update_config(request: Request) -> Any:
        payload = await _json_dict_or_empty(request)
        if not service.has_engine:
            raise HTTPException(status_code=409, detail="No model initialized. POST /v1/model first.")

        setters = {
            "temperature": (service.set_temperature, float),
            "top_k": (service.set_top_k, int),
            "top_p": (service.set_top_p, float),
        }
        updates = [(setters[key][0], _number(payload, key, setters[key][1])) for key in setters if key in payload]

        def _apply() -> dict[str, Any] | None:
            # Waits behind any in-flight generation.
            with service.lock:
                for setter, value in updates:
                    setter(value)
                engine = service.engine
                return None if engine is None else engine.generation_config.to_dict()

        config = await asyncio.to_thread(_apply)
        if config is None:
            raise HTTPException(status_code=409, detail="Model was unloaded.")
        return config

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    @app.post("/v1/generate")
    async def generate(request: Request) -> Any:
        payload = await _json_dict_or_empty(request)

        prompt = payload.get("prompt")
        if not isinstance(prompt, str):
            raise HTTPException(status_code=400, detail="'prompt' is required and must be a string.")

        max_tokens = payload.get("max_tokens", default_max_tokens)
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int):
            raise HTTPException(status_code=400, detail="'max_tokens' must be an integer.")
        if max_tokens < 0:
            raise HTTPException(status_code=400, detail="'max_tokens' must be >= 0.")
        if http_max_completion_tokens is not None and max_tokens > http_max_completion_tokens:
            raise HTTPException(
                status_code=400,
                detail=f"'max_tokens' exceeds server limit ({http_max_completion_tokens}).",
            )

        if not service.has_engine:
            raise HTTPException(status_code=409, detail="No model initialized. POST /v1/model first.")

        cancel = threading.Event()
        result = await _run_with_disconnect_cancellation(
            request,
            asyncio.to_thread(service.generate_result, prompt, max_tokens, cancel=cancel),
            cancel,
        )
        if result is None:
            raise HTTPException(status_code=409, detail="Model was unloaded.")

        data = result.to_dict()
        data["model"] = model_id
        return data

    return app
