"""`naseer`: NaseerAI CLI (runs the model in-process).

This is the CLI entrypoint. Run from source with:
  `python -m apps.cli.main --help`
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Sequence, TextIO

from apps.cli.output import format_fields, format_stats, print_json
from naseer.engine.backends.base import ContextParams
from naseer.engine.generation_engine import EngineConfig
from naseer.engine.types import LoadStatus
from naseer.service import ModelService

_REPL_HELP = "Commands: /info, /temperature X, /top_k N, /top_p X, /exit"


def _add_model_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--model", required=True, help="Model file path (.gguf; other files use fallback answers)")
    p.add_argument("--n-ctx", type=int, default=2048, help="Context window in tokens (default: 2048)")
    p.add_argument("--n-threads", type=int, default=4, help="Backend worker threads (default: 4)")
    p.add_argument("--vocab", default=None, help="Vocabulary file for the fallback tokenizer")


def _add_sampling_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--max-tokens", type=int, default=256, help="Maximum new tokens (default: 256)")
    p.add_argument("--temperature", type=float, default=None, help="Sampling temperature (0.1-2.0)")
    p.add_argument("--top-k", type=int, default=None, help="Top-k (1-100)")
    p.add_argument("--top-p", type=float, default=None, help="Top-p (0.1-1.0)")
    p.add_argument("--greedy", action="store_true", help="Greedy arg-max decoding")
    p.add_argument("--seed", type=int, default=None, help="Sampling seed")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="naseer", description="NaseerAI offline text generation")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a single completion")
    _add_model_args(gen)
    _add_sampling_args(gen)
    gen.add_argument("--stats", action="store_true", help="Print source / finish reason / token counts")
    gen.add_argument("--json", action="store_true", help="Machine-readable JSON output")
    gen.add_argument("prompt", help="Prompt text")

    repl = sub.add_parser("repl", help="Interactive prompt loop")
    _add_model_args(repl)
    _add_sampling_args(repl)

    info = sub.add_parser("info", help="Load a model and print what was loaded")
    _add_model_args(info)
    info.add_argument("--json", action="store_true", help="Machine-readable JSON output")

    return p


def _build_service(args: argparse.Namespace, *, err: TextIO) -> ModelService | None:
    config = EngineConfig(
        context=ContextParams(n_ctx=args.n_ctx, n_threads=args.n_threads),
        vocab_path=args.vocab,
        default_max_tokens=getattr(args, "max_tokens", 256),
    )
    service = ModelService(config)
    result = service.init(args.model)
    if result.status is LoadStatus.FAILED:
        print(f"error: {result.error}", file=err)
        return None
    if result.status is LoadStatus.FALLBACK:
        print(f"note: model unavailable ({result.error_kind}); using built-in responses", file=err)

    if getattr(args, "temperature", None) is not None:
        service.set_temperature(args.temperature)
    if getattr(args, "top_k", None) is not None:
        service.set_top_k(args.top_k)
    if getattr(args, "top_p", None) is not None:
        service.set_top_p(args.top_p)

    engine = service.engine
    if engine is not None:
        if getattr(args, "greedy", False):
            engine.generation_config.do_sample = False
        if getattr(args, "seed", None) is not None:
            engine.generation_config.seed = args.seed
    return service


def cmd_generate(args: argparse.Namespace, *, out: TextIO, err: TextIO) -> int:
    service = _build_service(args, err=err)
    if service is None:
        return 1
    try:
        result = service.generate_result(args.prompt, args.max_tokens)
        if result is None:
            print("error: no model initialized", file=err)
            return 1
        if args.json:
            print_json(result.to_dict(), file=out)
        else:
            print(result.text, file=out)
            if args.stats:
                print(format_stats(result), file=err)
        return 0
    finally:
        service.cleanup()


def cmd_info(args: argparse.Namespace, *, out: TextIO, err: TextIO) -> int:
    service = _build_service(args, err=err)
    if service is None:
        return 1
    try:
        info = service.describe()
        if args.json:
            print_json(info, file=out)
            return 0
        model = info["model"] or {}
        print(
            format_fields(
                [
                    ("runtime", info["info"]),
                    ("path", model.get("model_path")),
                    ("format", model.get("model_format")),
                    ("state", model.get("state")),
                    ("fallback", model.get("use_pattern_fallback")),
                    ("vocab_size", model.get("vocab_size")),
                    ("hidden_size", model.get("hidden_size")),
                    ("num_layers", model.get("num_layers")),
                ]
            ),
            file=out,
        )
        return 0
    finally:
        service.cleanup()


def _handle_repl_command(service: ModelService, line: str, *, out: TextIO) -> bool:
    """Apply a /command. Returns False when the REPL should exit."""
    cmd, _, arg = line[1:].partition(" ")
    cmd = cmd.strip().lower()
    arg = arg.strip()

    if cmd in {"exit", "quit"}:
        return False
    if cmd == "info":
        print_json(service.describe(), file=out)
        return True

    setters: dict[str, tuple[Callable[..., None], type]] = {
        "temperature": (service.set_temperature, float),
        "top_k": (service.set_top_k, int),
        "top_p": (service.set_top_p, float),
    }
    if cmd in setters and arg:
        setter, cast = setters[cmd]
        try:
            setter(cast(arg))
        except ValueError:
            print(f"invalid value for /{cmd}: {arg!r}", file=out)
            return True
        engine = service.engine
        if engine is not None:
            print(f"{cmd} = {getattr(engine.generation_config, cmd)}", file=out)
        return True

    print(_REPL_HELP, file=out)
    return True


def repl(
    service: ModelService,
    *,
    max_tokens: int,
    input_fn: Callable[[str], str] = input,
    out: TextIO = sys.stdout,
) -> int:
    print(_REPL_HELP, file=out)
    while True:
        try:
            line = input_fn("> ")
        except (EOFError, KeyboardInterrupt):
            print(file=out)
            return 0

        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not _handle_repl_command(service, line, out=out):
                return 0
            continue

        streamed: list[str] = []

        def _on_text(chunk: str) -> None:
            streamed.append(chunk)
            out.write(chunk)
            out.flush()

        result = service.generate_result(line, max_tokens, on_text=_on_text)
        if result is None:
            print("error: no model initialized", file=out)
            return 1
        if not streamed:
            out.write(result.text)
        out.write("\n")
        out.flush()


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    out, err = sys.stdout, sys.stderr

    if args.command == "generate":
        return cmd_generate(args, out=out, err=err)
    if args.command == "info":
        return cmd_info(args, out=out, err=err)
    if args.command == "repl":
        service = _build_service(args, err=err)
        if service is None:
            return 1
        try:
            return repl(service, max_tokens=args.max_tokens, out=out)
        finally:
            service.cleanup()

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
