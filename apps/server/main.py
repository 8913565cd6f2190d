"""NaseerAI local server entrypoint (FastAPI + uvicorn).

Example:
    python -m apps.server.main --model models/phi-2.Q4_K_M.gguf --host 127.0.0.1 --port 8787
"""

from __future__ import annotations

import argparse
import os

from apps.server.app import create_app
from naseer.engine.backends.base import ContextParams
from naseer.engine.generation_engine import EngineConfig
from naseer.engine.types import LoadStatus
from naseer.service import ModelService


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="NaseerAI local inference server")
    p.add_argument("--model", required=True, help="Model file path (.gguf; other files use fallback answers)")
    p.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    p.add_argument("--port", type=int, default=8787, help="Bind port (default: 8787)")

    p.add_argument("--n-ctx", type=int, default=2048, help="Context window in tokens (default: 2048)")
    p.add_argument("--n-batch", type=int, default=512, help="Prompt batch size (default: 512)")
    p.add_argument("--n-threads", type=int, default=4, help="Backend worker threads (default: 4)")
    p.add_argument("--vocab", default=None, help="Vocabulary file for the fallback tokenizer")
    p.add_argument(
        "--max-tokens",
        type=int,
        default=256,
        help="Default max_tokens when a request omits it (default: 256)",
    )
    p.add_argument(
        "--http-max-completion-tokens",
        type=int,
        default=0,
        help="Reject requests with max_tokens above this cap (0 = unlimited)",
    )

    p.add_argument("--temperature", type=float, default=None, help="Initial sampling temperature")
    p.add_argument("--top-k", type=int, default=None, help="Initial top-k")
    p.add_argument("--top-p", type=float, default=None, help="Initial top-p")
    p.add_argument("--log-level", default="info", help="uvicorn log level (default: info)")
    return p.parse_args()


def main() -> None:
    args = _parse_args()

    config = EngineConfig(
        context=ContextParams(n_ctx=args.n_ctx, n_batch=args.n_batch, n_threads=args.n_threads),
        vocab_path=args.vocab,
        default_max_tokens=args.max_tokens,
    )
    service = ModelService(config)

    print(
        "[server] loading model... "
        f"model={args.model!r} n_ctx={args.n_ctx} n_batch={args.n_batch} n_threads={args.n_threads}",
        flush=True,
    )
    result = service.init(args.model)
    if result.status is LoadStatus.FAILED:
        raise SystemExit(f"[server] model initialization failed: {result.error}")
    if result.status is LoadStatus.FALLBACK:
        print(
            f"[server] model unavailable ({result.error_kind}: {result.error}); serving fallback responses",
            flush=True,
        )
    else:
        print("[server] model loaded", flush=True)

    if args.temperature is not None:
        service.set_temperature(args.temperature)
    if args.top_k is not None:
        service.set_top_k(args.top_k)
    if args.top_p is not None:
        service.set_top_p(args.top_p)

    model_id = os.path.splitext(os.path.basename(args.model.rstrip("/")))[0] or "naseer"
    app = create_app(
        service=service,
        model_id=model_id,
        http_max_completion_tokens=None
        if args.http_max_completion_tokens <= 0
        else int(args.http_max_completion_tokens),
        default_max_tokens=args.max_tokens,
    )

    try:
        import uvicorn
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("uvicorn is required to run the server.") from exc

    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)
    finally:
        service.cleanup()


if __name__ == "__main__":
    main()
