from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from logitloom.client import OpenAICompletionsClient


class _Completion:
    def __init__(self, payload):
        self.payload = payload

    def model_dump(self):
        return self.payload


class _Endpoint:
    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    async def create(self, **params):
        self.calls.append(params)
        return _Completion(self.payload)


def _client_with_fake_sdk():
    client = OpenAICompletionsClient(base_url="http://localhost:8000/v1", api_key="sk-test")
    chat = _Endpoint({"choices": [{"finish_reason": "stop"}]})
    legacy = _Endpoint({"choices": [{"finish_reason": "length"}]})
    client._client = SimpleNamespace(
        chat=SimpleNamespace(completions=chat), completions=legacy
    )
    return client, chat, legacy


def test_provider_flags_go_to_extra_body():
    client, chat, _ = _client_with_fake_sdk()
    response = asyncio.run(
        client.chat_complete(
            {
                "model": "m",
                "messages": [{"role": "user", "content": "hi"}],
                "logprobs": True,
                "top_logprobs": 3,
                "max_tokens": 2,
                "temperature": 0.0,
                "continue_final_message": True,
            }
        )
    )
    assert response == {"choices": [{"finish_reason": "stop"}]}
    (params,) = chat.calls
    assert params["extra_body"] == {"continue_final_message": True}
    assert "continue_final_message" not in params
    assert params["top_logprobs"] == 3


def test_completion_request_passthrough():
    client, _, legacy = _client_with_fake_sdk()
    asyncio.run(
        client.complete(
            {"model": "m", "prompt": "abc", "logprobs": 3, "max_tokens": 1, "temperature": 0.0}
        )
    )
    (params,) = legacy.calls
    assert "extra_body" not in params
    assert params["prompt"] == "abc"


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(RuntimeError):
        OpenAICompletionsClient(base_url="http://localhost:8000/v1")
