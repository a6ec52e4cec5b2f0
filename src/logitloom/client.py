from __future__ import annotations

import os
from typing import Any, Dict, Protocol

from dotenv import load_dotenv

from .logger import logger

load_dotenv()


class CompletionsClient(Protocol):
    """What the tree builder needs from a backend: one request, one response."""

    async def chat_complete(self, request: Dict[str, Any]) -> Dict[str, Any]: ...

    async def complete(self, request: Dict[str, Any]) -> Dict[str, Any]: ...


class OpenAICompletionsClient:
    """
    ``CompletionsClient`` on top of ``openai.AsyncOpenAI``. Works against any
    OpenAI-compatible base URL; responses are returned as plain dicts so that
    non-standard fields some providers add survive.

    Environment variables:
        OPENAI_API_KEY / OPENAI_BASE_URL: used when not passed explicitly
        LOGITLOOM_TIMEOUT: request timeout in seconds (default: 30)
        LOGITLOOM_RETRIES: max retry attempts (default: 2)
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL")
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY must be set or an api_key passed")
        self.timeout = (
            timeout
            if timeout is not None
            else float(os.getenv("LOGITLOOM_TIMEOUT", "30"))
        )
        self.max_retries = (
            max_retries
            if max_retries is not None
            else int(os.getenv("LOGITLOOM_RETRIES", "2"))
        )
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as exc:  # pragma: no cover - import guard
                raise RuntimeError(
                    "openai package is required to query a backend. "
                    "Install with `uv add openai`."
                ) from exc
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=self.max_retries,
            )
        return self._client

    @staticmethod
    def _split_extra(request: Dict[str, Any], known: set[str]) -> Dict[str, Any]:
        # provider flags like continue_final_message are not SDK parameters
        params = {k: v for k, v in request.items() if k in known}
        extra = {k: v for k, v in request.items() if k not in known}
        if extra:
            params["extra_body"] = extra
        return params

    async def chat_complete(self, request: Dict[str, Any]) -> Dict[str, Any]:
        client = self._ensure_client()
        logger.debug(
            "chat request: model=%s messages=%d max_tokens=%s",
            request.get("model"),
            len(request.get("messages") or []),
            request.get("max_tokens"),
        )
        params = self._split_extra(
            request,
            {"model", "messages", "logprobs", "top_logprobs", "max_tokens", "temperature"},
        )
        completion = await client.chat.completions.create(**params)
        return completion.model_dump()

    async def complete(self, request: Dict[str, Any]) -> Dict[str, Any]:
        client = self._ensure_client()
        logger.debug(
            "completion request: model=%s prompt_len=%d max_tokens=%s",
            request.get("model"),
            len(request.get("prompt") or ""),
            request.get("max_tokens"),
        )
        params = self._split_extra(
            request, {"model", "prompt", "logprobs", "max_tokens", "temperature"}
        )
        completion = await client.completions.create(**params)
        return completion.model_dump()

    async def close(self) -> None:
        """Close the transport; requests still in flight are aborted."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "OpenAICompletionsClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = ["CompletionsClient", "OpenAICompletionsClient"]
