from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, NotRequired, TypedDict


class BranchFinishReason(str, Enum):
    STOP = "stop"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"
    FUNCTION_CALL = "function_call"


class TokenDict(TypedDict):
    id: str
    text: str
    logprob: float
    prob: float
    branchFinished: str | None
    children: list["TokenDict"]


class ModelSettingsDict(TypedDict, total=False):
    kind: str
    systemPrompt: NotRequired[str]
    prompt: NotRequired[str]
    prefill: NotRequired[str]


def new_token_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Token:
    """
    One candidate token in the loom.

    ``branch_finished`` is non-null when the backend ended the sequence on this
    exact token; such a node never gets children.
    """

    text: str
    logprob: float
    prob: float | None = None
    branch_finished: BranchFinishReason | None = None
    children: list[Token] = field(default_factory=list)
    id: str = field(default_factory=new_token_id)

    def __post_init__(self) -> None:
        if self.prob is None:
            self.prob = math.exp(self.logprob)
        if self.branch_finished is not None and not isinstance(
            self.branch_finished, BranchFinishReason
        ):
            self.branch_finished = BranchFinishReason(self.branch_finished)

    def to_dict(self) -> TokenDict:
        return {
            "id": self.id,
            "text": self.text,
            "logprob": self.logprob,
            "prob": self.prob,  # type: ignore[typeddict-item]
            "branchFinished": self.branch_finished.value
            if self.branch_finished
            else None,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Token:
        finished = data.get("branchFinished")
        return cls(
            id=data["id"],
            text=data["text"],
            logprob=float(data["logprob"]),
            prob=float(data["prob"]) if data.get("prob") is not None else None,
            branch_finished=BranchFinishReason(finished) if finished else None,
            children=[cls.from_dict(child) for child in data.get("children") or []],
        )


def copy_tree(roots: Iterable[Token]) -> list[Token]:
    """Deep copy of a forest; ids are preserved."""
    return [
        Token(
            id=root.id,
            text=root.text,
            logprob=root.logprob,
            prob=root.prob,
            branch_finished=root.branch_finished,
            children=copy_tree(root.children),
        )
        for root in roots
    ]


def roots_to_dicts(roots: Iterable[Token]) -> list[TokenDict]:
    return [root.to_dict() for root in roots]


def roots_from_dicts(rows: Iterable[dict[str, Any]]) -> list[Token]:
    return [Token.from_dict(row) for row in rows]
