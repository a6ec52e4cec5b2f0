from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Literal, Optional

from ..api_sniffer import UNKNOWN_API, ApiInfo
from ..client import CompletionsClient
from ..nodes import Token

ModelType = Literal["chat", "base"]

# receives a deep copy of the whole forest; a truthy return asks the run to stop
ProgressCallback = Callable[[list[Token]], Optional[bool]]


class CancelToken:
    """Cooperative interruption flag, checked after every progress report."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def _no_progress(roots: list[Token]) -> bool:
    return False


@dataclass
class TreeOptions:
    client: CompletionsClient
    model: str
    prompt: str = ""
    prefill: str = ""
    system_prompt: str | None = None
    model_type: ModelType = "chat"
    depth: int = 5
    max_width: int = 3
    cover_prob: float = 0.8
    api_info: ApiInfo = UNKNOWN_API
    progress: ProgressCallback = _no_progress
    cancel: CancelToken = field(default_factory=CancelToken)

    def with_changes(self, **changes) -> "TreeOptions":
        return replace(self, **changes)


__all__ = ["CancelToken", "ModelType", "ProgressCallback", "TreeOptions"]
