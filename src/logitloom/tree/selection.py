from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True, slots=True)
class TopLogprob:
    token: str
    logprob: float


def sort_candidates(candidates: Sequence[TopLogprob]) -> list[TopLogprob]:
    """Descending by logprob; ties keep backend order."""
    return sorted(candidates, key=lambda c: c.logprob, reverse=True)


def slice_to_prob(
    candidates: Sequence[TopLogprob], cover_prob: float
) -> list[TopLogprob]:
    """
    Shortest prefix of ``candidates`` (sorted descending) whose cumulative
    probability reaches ``cover_prob``. Returns everything if the mass never
    gets there.
    """
    if cover_prob <= 0:
        return []
    if cover_prob >= 1:
        return list(candidates)
    cumprob = 0.0
    i = 0
    while cumprob < cover_prob and i < len(candidates):
        cumprob += math.exp(candidates[i].logprob)
        i += 1
    return list(candidates[:i])


def select_candidates(
    candidates: Sequence[TopLogprob], cover_prob: float, max_width: int
) -> list[TopLogprob]:
    """Probability-mass cutoff and fan-out cap; the tighter bound wins."""
    return slice_to_prob(candidates, cover_prob)[: max(0, max_width)]


__all__ = ["TopLogprob", "sort_candidates", "slice_to_prob", "select_candidates"]
