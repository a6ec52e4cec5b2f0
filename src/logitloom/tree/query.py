from __future__ import annotations

from typing import Any, Dict, List, Sequence

from ..api_sniffer import ApiInfo
from ..errors import MissingChoiceError
from ..logger import logger
from ..nodes import Token
from .adapter import QueriedLogprobs, adapt_choice
from .options import TreeOptions

# greedy; the logprobs are what we want, not the sampled token
DEFAULT_TEMPERATURE = 0.0


def _temperature(api_info: ApiInfo) -> float:
    if api_info.needs_temperature is not None:
        return api_info.needs_temperature
    return DEFAULT_TEMPERATURE


def build_chat_request(tokens: Sequence[Token], opts: TreeOptions) -> Dict[str, Any]:
    messages: List[Dict[str, Any]] = []
    if opts.system_prompt:
        messages.append({"role": "system", "content": opts.system_prompt})
    messages.append({"role": "user", "content": opts.prompt})

    body_flags: Dict[str, Any] = {}
    prefill = opts.prefill or ""
    if prefill or tokens:
        assistant: Dict[str, Any] = {
            "role": "assistant",
            "content": prefill + "".join(t.text for t in tokens),
        }
        style = opts.api_info.prefill_style
        if style is not None and style.kind == "flags":
            if style.target == "message":
                assistant.update(style.flags)
            elif style.target == "body":
                body_flags.update(style.flags)
        messages.append(assistant)

    return {
        "model": opts.model,
        "messages": messages,
        "logprobs": True,
        "top_logprobs": opts.max_width,
        "max_tokens": opts.depth - len(tokens),
        "temperature": _temperature(opts.api_info),
        **body_flags,
    }


def build_completion_request(
    tokens: Sequence[Token], opts: TreeOptions
) -> Dict[str, Any]:
    return {
        "model": opts.model,
        "prompt": opts.prompt + (opts.prefill or "") + "".join(t.text for t in tokens),
        "logprobs": opts.max_width,
        "max_tokens": opts.depth - len(tokens),
        "temperature": _temperature(opts.api_info),
    }


async def query(tokens: Sequence[Token], opts: TreeOptions) -> QueriedLogprobs:
    """Continue ``prefill + tokens`` and return the top alternatives per position."""
    if opts.model_type == "chat":
        request = build_chat_request(tokens, opts)
        logger.debug("request: %s", request["messages"])
        response = await opts.client.chat_complete(request)
    else:
        request = build_completion_request(tokens, opts)
        logger.debug("request: %r", request["prompt"][-200:])
        response = await opts.client.complete(request)

    choices = response.get("choices") or []
    if not choices or choices[0] is None:
        logger.error_raise("Response missing choices", exc=MissingChoiceError)
    return adapt_choice(
        choices[0], cover_prob=opts.cover_prob, max_width=opts.max_width
    )


__all__ = ["build_chat_request", "build_completion_request", "query"]
