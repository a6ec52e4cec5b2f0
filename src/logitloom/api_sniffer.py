"""
Guess which provider sits behind an OpenAI-compatible base URL.

Providers disagree on how an assistant prefill must be sent (a trailing
assistant message, extra flags on that message, extra flags on the request
body) and whether logprobs are available at all. The ``/models`` listing is
usually enough to tell them apart.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional

import httpx

from .logger import logger

Support = Literal["yes", "no", "unknown"]


@dataclass(frozen=True)
class PrefillStyle:
    kind: Literal["trailing", "flags"] = "trailing"
    flags: dict[str, Any] = field(default_factory=dict)
    target: Literal["body", "message"] | None = None


@dataclass(frozen=True)
class ApiInfo:
    provider: str = "unknown"
    supports_logprobs: Support = "unknown"
    supports_prefill: Support = "unknown"
    prefill_style: PrefillStyle | None = None
    # some providers only return logprobs with a non-default temperature
    needs_temperature: float | None = None
    only_supports_models: list[str] | None = None
    extra_warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


UNKNOWN_API = ApiInfo()

_TRAILING = PrefillStyle(kind="trailing")


def _header_configs(api_key: str) -> list[dict[str, str]]:
    # browsers reject some of these on CORS preflight, so fall back to fewer
    return [
        {
            "Authorization": f"Bearer {api_key}",
            "x-api-key": api_key,
            "anthropic-dangerous-direct-browser-access": "true",
        },
        {
            "Authorization": f"Bearer {api_key}",
            "x-api-key": api_key,
        },
        {
            "Authorization": f"Bearer {api_key}",
        },
    ]


def classify_models(payload: dict[str, Any]) -> ApiInfo:
    """Match a ``/models`` listing against known provider signatures."""
    data = payload.get("data") or []
    models = [
        m["id"] for m in data if isinstance(m, dict) and isinstance(m.get("id"), str)
    ]
    owners = [m.get("owned_by") for m in data if isinstance(m, dict)]

    if any(m.startswith("chutesai/") for m in models):
        return ApiInfo(
            provider="chutes",
            supports_logprobs="unknown",
            supports_prefill="unknown",
            prefill_style=_TRAILING,
        )
    if "koboldcpp" in owners:
        return ApiInfo(
            provider="kobold-cpp",
            supports_logprobs="yes",
            supports_prefill="unknown",
            prefill_style=_TRAILING,
            extra_warning=(
                "Prefill support was merged into KoboldCpp recently, "
                "make sure you're on the latest version."
            ),
        )
    if "vllm" in owners:
        return ApiInfo(
            provider="vllm",
            supports_logprobs="yes",
            supports_prefill="yes",
            prefill_style=PrefillStyle(
                kind="flags",
                flags={"continue_final_message": True, "add_generation_prompt": False},
                target="body",
            ),
            extra_warning=(
                "Relaunch vLLM with VLLM_USE_V1=0 if you notice tokens like 'Ġhello'. "
                "See vllm-project/vllm#16838"
            ),
        )
    if "openrouter/auto" in models:
        return ApiInfo(
            provider="openrouter",
            supports_logprobs="unknown",
            supports_prefill="unknown",
            prefill_style=_TRAILING,
        )
    if "Hyperbolic" in owners:
        return ApiInfo(
            provider="hyperbolic",
            supports_logprobs="unknown",
            supports_prefill="unknown",
            prefill_style=_TRAILING,
        )
    if "chatgpt-4o-latest" in models:
        return ApiInfo(
            provider="openai",
            supports_logprobs="yes",
            supports_prefill="no",
        )
    if "deepseek-chat" in models:
        return ApiInfo(
            provider="deepseek",
            supports_logprobs="yes",
            supports_prefill="yes",
            prefill_style=PrefillStyle(
                kind="flags", flags={"prefix": True}, target="message"
            ),
            needs_temperature=1.0,
            only_supports_models=["deepseek-chat"],
        )
    return UNKNOWN_API


async def _probe(client: httpx.AsyncClient, base_url: str, api_key: str) -> ApiInfo:
    response: httpx.Response | None = None
    last_error: Optional[Exception] = None
    for headers in _header_configs(api_key):
        try:
            response = await client.get(f"{base_url}/models", headers=headers)
            break
        except httpx.HTTPError as exc:
            logger.debug("GET %s/models failed, trying fewer headers: %s", base_url, exc)
            last_error = exc

    if response is None:
        if last_error is not None:
            raise last_error
        return UNKNOWN_API

    logger.debug("/models response for %s: %s", base_url, response.status_code)

    if response.status_code == 200:
        try:
            payload = response.json()
        except ValueError:
            logger.warning("GET %s/models: 200, but not JSON", base_url)
            return UNKNOWN_API
        if not isinstance(payload, dict):
            return UNKNOWN_API
        return classify_models(payload)

    if "anthropic-version" in response.text:
        return ApiInfo(
            provider="anthropic",
            supports_logprobs="no",
            supports_prefill="yes",
            prefill_style=_TRAILING,
        )
    return UNKNOWN_API


async def sniff_api(
    base_url: str,
    api_key: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    attempts: int = 3,
) -> ApiInfo:
    """
    Probe ``{base_url}/models``, walking up the path when nothing is found
    (DeepSeek serves ``/models`` but not ``/beta/models``). Never raises;
    unreachable or unrecognized backends give ``UNKNOWN_API``.
    """
    base_url = base_url.rstrip("/")
    should_close = False
    if http_client is None:
        timeout = float(os.getenv("LOGITLOOM_SNIFF_TIMEOUT", "10"))
        http_client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        should_close = True

    try:
        for _ in range(attempts):
            try:
                info = await _probe(http_client, base_url, api_key)
                if info.provider != "unknown":
                    logger.info("Detected provider %s at %s", info.provider, base_url)
                    return info
            except Exception as exc:
                # malformed URLs surface as ValueError/OverflowError, not HTTPError
                logger.warning(
                    "/models error for %s: %s: %s", base_url, type(exc).__name__, exc
                )
            base_url = base_url[: base_url.rfind("/")] if "/" in base_url else ""
            if "://" not in base_url:
                break
    finally:
        if should_close:
            await http_client.aclose()

    logger.info("Could not identify provider; capabilities unknown")
    return UNKNOWN_API


def is_probably_localhost(url: str) -> bool:
    return any(
        marker in url
        for marker in ("//localhost", "//127.0.0", "//[::1]", "//[0:0:0:0:0:0:0:1")
    )


__all__ = [
    "ApiInfo",
    "PrefillStyle",
    "UNKNOWN_API",
    "classify_models",
    "sniff_api",
    "is_probably_localhost",
]
