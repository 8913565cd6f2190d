from __future__ import annotations

import json
import sys
from typing import Any, Iterable, TextIO

from naseer.engine.types import GenerateResult


def print_json(obj: Any, *, file: TextIO | None = None) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, sort_keys=True), file=file or sys.stdout)


def format_fields(rows: Iterable[tuple[str, Any]]) -> str:
    rows_list = [(k, "-" if v is None else str(v)) for k, v in rows]
    width = max((len(k) for k, _ in rows_list), default=0)
    return "\n".join(f"{k.ljust(width)}  {v}" for k, v in rows_list)


def format_stats(result: GenerateResult) -> str:
    parts = [
        f"source={result.source}",
        f"finish={result.finish_reason}",
        f"prompt_tokens={result.prompt_tokens}",
        f"completion_tokens={result.completion_tokens}",
    ]
    if result.error:
        parts.append(f"error={result.error!r}")
    return "[" + " ".join(parts) + "]"
