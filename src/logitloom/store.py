from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, Optional

from .api_sniffer import UNKNOWN_API, ApiInfo, is_probably_localhost, sniff_api
from .client import CompletionsClient, OpenAICompletionsClient
from .errors import InvalidTreeFileError
from .logger import logger
from .nodes import ModelSettingsDict, Token, roots_from_dicts, roots_to_dicts
from .tree import CancelToken, TreeOptions, build_tree, expand_tree, path_to_node_with_id

TREE_VERSION = "logit-loom-tree-v1"


def write_json(path: str, obj: Any):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)


def load_json(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@dataclass
class SerializedTree:
    model_name: str
    model_settings: ModelSettingsDict
    roots: list[Token] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isLogitLoomTreeVersion": TREE_VERSION,
            "modelName": self.model_name,
            "modelSettings": dict(self.model_settings),
            "roots": roots_to_dicts(self.roots),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SerializedTree":
        if not isinstance(data, dict) or data.get("isLogitLoomTreeVersion") != TREE_VERSION:
            raise InvalidTreeFileError("File was not a logitloom tree.")
        return cls(
            model_name=data.get("modelName") or "",
            model_settings=data.get("modelSettings") or {"kind": "chat"},
            roots=roots_from_dicts(data.get("roots") or []),
        )


def save_tree(path: str, tree: SerializedTree):
    write_json(path, tree.to_dict())
    logger.info("Tree written to: %s", path)


def load_tree(path: str) -> SerializedTree:
    try:
        data = load_json(path)
    except json.JSONDecodeError as exc:
        raise InvalidTreeFileError(f"{path} is not valid JSON: {exc}") from exc
    return SerializedTree.from_dict(data)


class RunState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass(frozen=True)
class TreeValue:
    kind: Literal["tree", "error"] = "tree"
    roots: Optional[list[Token]] = field(default_factory=list)
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class State:
    running: bool = False
    interrupting: bool = False
    run_state: RunState = RunState.IDLE
    value: TreeValue = field(default_factory=TreeValue)
    api_info_cache: dict[str, ApiInfo] = field(default_factory=dict)


@dataclass
class RunRequest:
    base_url: str
    api_key: str
    model_name: str
    model_type: Literal["chat", "base"] = "chat"
    prompt: str = ""
    prefill: str = ""
    system_prompt: str | None = None
    depth: int = 5
    max_width: int = 3
    cover_prob: float = 0.8
    from_node_id: str | None = None
    sniff: bool = True


Listener = Callable[[], None]
ClientFactory = Callable[[RunRequest], CompletionsClient]
Sniffer = Callable[[str, str], Awaitable[ApiInfo]]


def _default_client(request: RunRequest) -> CompletionsClient:
    return OpenAICompletionsClient(base_url=request.base_url, api_key=request.api_key)


class TreeStore:
    """
    Holds the current tree and run flags. Owned by whatever hosts the loom
    (the CLI here); listeners are called after every state change.
    """

    def __init__(
        self,
        *,
        client_factory: ClientFactory = _default_client,
        sniffer: Sniffer = sniff_api,
    ):
        self._state = State()
        self._listeners: list[Listener] = []
        self._client_factory = client_factory
        self._sniffer = sniffer
        self._cancel: CancelToken | None = None

    def get_state(self) -> State:
        return self._state

    def update_state(self, fn: Callable[[State], State]) -> State:
        self._state = fn(self._state)
        for listener in list(self._listeners):
            listener()
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_tree(self, roots: list[Token]) -> None:
        if self._state.running:
            return
        self.update_state(lambda s: replace(s, value=TreeValue(kind="tree", roots=roots)))

    def token_and_prefix(self, node_id: str) -> str | None:
        """Text of the node with ``node_id`` and everything before it."""
        roots = self._state.value.roots
        if roots is None:
            return None
        path = path_to_node_with_id(node_id, roots)
        if path is None:
            return None
        return "".join(t.text for t in path)

    def interrupt(self) -> None:
        if not self._state.running or self._state.interrupting:
            return
        if self._cancel is not None:
            self._cancel.cancel()
        self.update_state(lambda s: replace(s, interrupting=True))

    async def api_info(self, base_url: str, api_key: str) -> ApiInfo:
        # local servers get restarted with different backends, so always re-probe
        if not is_probably_localhost(base_url):
            cached = self._state.api_info_cache.get(base_url)
            if cached is not None:
                return cached
        info = await self._sniffer(base_url, api_key)
        self.update_state(
            lambda s: replace(
                s, api_info_cache={**s.api_info_cache, base_url: info}
            )
        )
        return info

    def _progress(self, roots: list[Token]) -> bool:
        self.update_state(lambda s: replace(s, value=TreeValue(kind="tree", roots=roots)))
        return self._state.interrupting

    async def run(self, request: RunRequest) -> list[Token]:
        """
        Build a new tree, or expand ``request.from_node_id`` in the current one.
        On failure the error is recorded next to the last good tree and re-raised.
        """
        if self._state.running:
            raise RuntimeError("A run is already in progress")

        existing = self._state.value.roots
        if request.from_node_id is not None and existing is None:
            raise RuntimeError(
                f"No tree loaded, can't expand {request.from_node_id!r}"
            )

        cancel = self._cancel = CancelToken()
        self.update_state(
            lambda s: replace(s, running=True, interrupting=False, run_state=RunState.BUILDING)
        )
        client: CompletionsClient | None = None
        try:
            client = self._client_factory(request)
            api_info = (
                await self.api_info(request.base_url, request.api_key)
                if request.sniff
                else UNKNOWN_API
            )
            if api_info.extra_warning:
                logger.warning(api_info.extra_warning)
            opts = TreeOptions(
                client=client,
                model=request.model_name,
                model_type=request.model_type,
                prompt=request.prompt,
                prefill=request.prefill,
                system_prompt=request.system_prompt,
                depth=request.depth,
                max_width=request.max_width,
                cover_prob=request.cover_prob,
                api_info=api_info,
                progress=self._progress,
                cancel=cancel,
            )
            if request.from_node_id is None:
                roots = await build_tree(opts)
            else:
                roots = await expand_tree(opts, existing or [], request.from_node_id)
            # decided here; an interrupt during client teardown has nothing left to stop
            interrupted = cancel.cancelled
        except Exception as exc:
            logger.error("Run failed: %s: %s", type(exc).__name__, exc)
            self.update_state(
                lambda s: replace(
                    s,
                    running=False,
                    interrupting=False,
                    run_state=RunState.ERRORED,
                    value=TreeValue(kind="error", error=exc, roots=s.value.roots),
                )
            )
            raise
        finally:
            self._cancel = None
            close = getattr(client, "close", None) if client is not None else None
            if close is not None:
                await close()

        final = RunState.INTERRUPTED if interrupted else RunState.COMPLETED
        self.update_state(
            lambda s: replace(
                s,
                running=False,
                interrupting=False,
                run_state=final,
                value=TreeValue(kind="tree", roots=roots),
            )
        )
        return roots


__all__ = [
    "TREE_VERSION",
    "RunRequest",
    "RunState",
    "SerializedTree",
    "State",
    "TreeStore",
    "TreeValue",
    "load_json",
    "load_tree",
    "save_tree",
    "write_json",
]
