"""Sampling configuration and next-token selection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import torch

TEMPERATURE_RANGE = (0.1, 2.0)
TOP_K_RANGE = (1, 100)
TOP_P_RANGE = (0.1, 1.0)


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    lo, hi = bounds
    return max(lo, min(hi, value))


@dataclass
class GenerationConfig:
    """Mutable sampling parameters.

    Out-of-range values are clamped, never rejected. Changes take effect on
    the next generate call.
    """

    temperature: float = 0.7
    top_k: int = 40
    top_p: float = 0.95
    do_sample: bool = True
    seed: int | None = None

    def __post_init__(self) -> None:
        self.set_temperature(self.temperature)
        self.set_top_k(self.top_k)
        self.set_top_p(self.top_p)

    def set_temperature(self, temperature: float) -> None:
        self.temperature = float(_clamp(float(temperature), TEMPERATURE_RANGE))

    def set_top_k(self, top_k: int) -> None:
        self.top_k = int(_clamp(int(top_k), TOP_K_RANGE))

    def set_top_p(self, top_p: float) -> None:
        self.top_p = float(_clamp(float(top_p), TOP_P_RANGE))

    def to_dict(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "do_sample": self.do_sample,
            "seed": self.seed,
        }


def make_generator(seed: int | None) -> "torch.Generator | None":
    """Return a CPU generator seeded with `seed`, or None for the global RNG."""
    if seed is None:
        return None
    import torch

    gen = torch.Generator(device="cpu")
    gen.manual_seed(int(seed))
    return gen


def filter_logits(logits: "torch.Tensor", *, top_k: int, top_p: float) -> "torch.Tensor":
    """Mask logits outside the top-k set and the top-p nucleus with -inf."""
    import torch

    out = logits.clone()
    n = out.shape[-1]

    if 0 < top_k < n:
        kth = torch.topk(out, top_k).values[-1]
        out[out < kth] = float("-inf")

    if top_p < 1.0:
        sorted_logits, sorted_idx = torch.sort(out, descending=True)
        probs = torch.softmax(sorted_logits, dim=-1)
        cumulative = torch.cumsum(probs, dim=-1)
        # Drop a token once the mass before it already reaches top_p; the
        # highest-probability token always survives.
        remove = (cumulative - probs) >= top_p
        remove[0] = False
        sorted_logits[remove] = float("-inf")
        out = torch.full_like(out, float("-inf")).scatter(0, sorted_idx, sorted_logits)

    return out


def sample_token(
    logits: Any,
    config: GenerationConfig,
    *,
    generator: "torch.Generator | None" = None,
) -> int:
    """Pick the next token id from a 1-D logit vector.

    Greedy arg-max when `config.do_sample` is False; otherwise temperature
    scaling, top-k and top-p filtering, then a multinomial draw.
    """
    import torch

    logits_t = torch.as_tensor(logits).reshape(-1)
    if logits_t.numel() == 0:
        raise ValueError("Cannot sample from an empty logit vector.")

    if not config.do_sample:
        return int(torch.argmax(logits_t).item())

    # Numerical stability: work in fp32 regardless of the backend dtype.
    logits_f = logits_t.float() / float(config.temperature)
    logits_f = filter_logits(logits_f, top_k=config.top_k, top_p=config.top_p)
    probs = torch.softmax(logits_f, dim=-1)

    if torch.isnan(probs).any() or torch.isinf(probs).any() or (probs < 0).any():
        probs = torch.nan_to_num(probs, nan=0.0, posinf=0.0, neginf=0.0)
        probs = torch.clamp(probs, min=0.0)
        z = probs.sum()
        if z <= 0:
            return int(torch.argmax(logits_t).item())
        probs = probs / z

    return int(torch.multinomial(probs, 1, generator=generator).item())
