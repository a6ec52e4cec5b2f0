from __future__ import annotations

import math
from typing import Any

import pytest

from logitloom.logger import logger

# toy next-token distribution: "a" is always the greedy pick, "c" ends the text
TOY_DIST = [("a", 0.6), ("b", 0.3), ("c", 0.1)]


def chat_position(token: str, alternatives: list[tuple[str, float]]) -> dict:
    return {
        "token": token,
        "logprob": dict(alternatives).get(token, -10.0),
        "top_logprobs": [{"token": t, "logprob": lp} for t, lp in alternatives],
    }


def chat_response(positions: list[dict] | None, finish_reason: str | None) -> dict:
    return {
        "choices": [
            {
                "index": 0,
                "finish_reason": finish_reason,
                "message": {"role": "assistant", "content": ""},
                "logprobs": {"content": positions} if positions is not None else None,
            }
        ]
    }


class ToyModelClient:
    """
    Greedy fake backend: every position offers TOY_DIST (returned worst-first to
    make sure the loom re-sorts), the chosen token is always "a", and text that
    ends in "c" is finished.
    """

    def __init__(self):
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def _alternatives(self, n: int) -> list[tuple[str, float]]:
        top = [(t, math.log(p)) for t, p in TOY_DIST][:n]
        return list(reversed(top))

    async def chat_complete(self, request: dict) -> dict:
        self.requests.append(request)
        last = request["messages"][-1]
        text = last["content"] if last["role"] == "assistant" else ""
        if text.endswith("c"):
            return chat_response(None, "stop")
        positions = [
            chat_position("a", self._alternatives(request["top_logprobs"]))
            for _ in range(request["max_tokens"])
        ]
        return chat_response(positions, "length")

    async def complete(self, request: dict) -> dict:
        self.requests.append(request)
        if request["prompt"].endswith("c"):
            return {"choices": [{"finish_reason": "stop", "logprobs": None}]}
        alts = self._alternatives(request["logprobs"])
        n = request["max_tokens"]
        return {
            "choices": [
                {
                    "finish_reason": "length",
                    "logprobs": {
                        "tokens": ["a"] * n,
                        "token_logprobs": [math.log(0.6)] * n,
                        "top_logprobs": [dict(alts) for _ in range(n)],
                    },
                }
            ]
        }

    async def close(self):
        self.closed = True


class ScriptedClient:
    """Returns canned responses in order; an exception in the script is raised."""

    def __init__(self, responses: list[Any]):
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    async def _next(self, request: dict) -> dict:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def chat_complete(self, request: dict) -> dict:
        return await self._next(request)

    async def complete(self, request: dict) -> dict:
        return await self._next(request)


@pytest.fixture
def toy_client() -> ToyModelClient:
    return ToyModelClient()


@pytest.fixture
def loom_caplog(caplog):
    """caplog wired to the logitloom logger, which does not propagate to root."""
    logger.addHandler(caplog.handler)
    try:
        yield caplog
    finally:
        logger.removeHandler(caplog.handler)
