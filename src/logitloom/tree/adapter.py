"""
Normalize a backend choice into one internal shape.

Chat completions report logprobs as ``{"content": [{"token", "top_logprobs": [...]}, ...]}``
while legacy completions use parallel ``tokens`` / ``top_logprobs`` arrays with a
``{token: logprob}`` mapping per position. ``classify_logprobs`` is the only place
that looks at the shape; everything downstream works on ``QueriedLogprobs``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from ..errors import MissingLogprobsError
from ..logger import logger
from ..nodes import BranchFinishReason
from .selection import TopLogprob, select_candidates, sort_candidates


@dataclass
class ChatLogprobs:
    content: list[dict[str, Any]]


@dataclass
class CompletionLogprobs:
    tokens: list[str]
    top_logprobs: list[Mapping[str, float]]


RawLogprobs = Union[ChatLogprobs, CompletionLogprobs]


@dataclass
class Position:
    chosen_token: str
    # applies to the chosen token only; sibling branches may still be alive
    finish_reason: BranchFinishReason | None
    top_logprobs: list[TopLogprob] = field(default_factory=list)


@dataclass
class LogprobsResult:
    positions: list[Position]


@dataclass
class FinishResult:
    """The whole branch that was queried is finished."""

    finish_reason: BranchFinishReason


QueriedLogprobs = Union[LogprobsResult, FinishResult]


def classify_logprobs(logprobs: Mapping[str, Any] | None) -> RawLogprobs | None:
    if not logprobs:
        return None
    if "content" in logprobs:
        content = logprobs.get("content")
        if not content:
            return None
        return ChatLogprobs(content=list(content))
    tokens = logprobs.get("tokens")
    top = logprobs.get("top_logprobs")
    if tokens and top is not None:
        return CompletionLogprobs(tokens=list(tokens), top_logprobs=list(top))
    return None


def coerce_finish_reason(raw: str | None) -> BranchFinishReason | None:
    """Map a backend finish reason to a terminal reason; ``length`` is not terminal."""
    if raw is None or raw == "length":
        return None
    try:
        return BranchFinishReason(raw)
    except ValueError:
        logger.warning("Unknown finish_reason %r, treating as stop", raw)
        return BranchFinishReason.STOP


def _positions(raw: RawLogprobs) -> list[tuple[str, list[TopLogprob]]]:
    if isinstance(raw, ChatLogprobs):
        return [
            (
                entry["token"],
                [
                    TopLogprob(token=alt["token"], logprob=float(alt["logprob"]))
                    for alt in entry.get("top_logprobs") or []
                ],
            )
            for entry in raw.content
        ]
    return [
        (
            token,
            [
                TopLogprob(token=alt, logprob=float(logprob))
                for alt, logprob in (mapping or {}).items()
            ],
        )
        for token, mapping in zip(raw.tokens, raw.top_logprobs)
    ]


def adapt_choice(
    choice: Mapping[str, Any], *, cover_prob: float, max_width: int
) -> QueriedLogprobs:
    raw_reason = choice.get("finish_reason")
    raw = classify_logprobs(choice.get("logprobs"))

    if raw is None:
        if raw_reason == "length":
            # can show up even when max_tokens was computed correctly
            logger.warning(
                "Response finished with 'length' and no logprobs; treating as stop"
            )
            return FinishResult(BranchFinishReason.STOP)
        if raw_reason is None:
            logger.error_raise(
                "Response missing logprobs and finish_reason",
                exc=MissingLogprobsError,
            )
        return FinishResult(coerce_finish_reason(raw_reason) or BranchFinishReason.STOP)

    finish_reason = coerce_finish_reason(raw_reason)
    positions = _positions(raw)
    last = len(positions) - 1
    return LogprobsResult(
        positions=[
            Position(
                chosen_token=chosen,
                finish_reason=finish_reason if i == last else None,
                top_logprobs=select_candidates(
                    sort_candidates(alternatives), cover_prob, max_width
                ),
            )
            for i, (chosen, alternatives) in enumerate(positions)
        ]
    )


__all__ = [
    "ChatLogprobs",
    "CompletionLogprobs",
    "Position",
    "LogprobsResult",
    "FinishResult",
    "QueriedLogprobs",
    "classify_logprobs",
    "coerce_finish_reason",
    "adapt_choice",
]
