#!/usr/bin/env python3
"""
Check that a backend answers with top-k logprobs before building a tree.

Usage:
    export OPENAI_API_KEY="your-api-key-here"
    export OPENAI_BASE_URL="https://api.openai.com/v1"   # optional
    uv run python tests/test_openai_connection.py [model-name]

Example:
    uv run python tests/test_openai_connection.py gpt-4o-mini
"""

import asyncio
import os
import sys

try:
    import pytest
except ImportError:  # pragma: no cover - pytest not required for manual script usage
    pytest = None

if pytest is not None:  # pragma: no cover - executed only in test environments
    pytestmark = pytest.mark.skip(
        reason="Manual connectivity check; excluded from automated test suite."
    )


async def test_openai_connection(model: str = "gpt-4o-mini"):
    """Ask for one token with top-5 logprobs and show what came back."""
    from logitloom.api_sniffer import sniff_api
    from logitloom.client import OpenAICompletionsClient
    from logitloom.tree.adapter import LogprobsResult, adapt_choice

    api_key = os.getenv("OPENAI_API_KEY")
    base_url = os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1"

    if not api_key:
        print("❌ OPENAI_API_KEY environment variable is not set.")
        print("\nSet it with:")
        print('  export OPENAI_API_KEY="your-key-here"')
        return False

    print(f"✓ OPENAI_API_KEY is set (length: {len(api_key)})")
    print(f"✓ Base URL: {base_url}")
    print(f"✓ Testing model: {model}")

    info = await sniff_api(base_url, api_key)
    print(f"✓ Provider: {info.provider} (logprobs: {info.supports_logprobs}, prefill: {info.supports_prefill})")
    if info.extra_warning:
        print(f"⚠️  {info.extra_warning}")

    try:
        async with OpenAICompletionsClient(base_url=base_url, api_key=api_key) as client:
            print("\n⏳ Requesting one token with logprobs...")
            resp = await client.chat_complete(
                {
                    "model": model,
                    "messages": [{"role": "user", "content": "Say 'ok'."}],
                    "logprobs": True,
                    "top_logprobs": 5,
                    "max_tokens": 1,
                    "temperature": info.needs_temperature or 0.0,
                }
            )
            result = adapt_choice(resp["choices"][0], cover_prob=1.0, max_width=5)
            if not isinstance(result, LogprobsResult):
                print(f"❌ No logprobs returned (finish: {result.finish_reason.value})")
                return False
            for alt in result.positions[0].top_logprobs:
                print(f"   {alt.token!r}: {alt.logprob:.3f}")
            print("✅ Success! Backend returns logprobs.")
            return True

    except Exception as e:
        print(f"\n❌ Request failed: {type(e).__name__}")
        print(f"   {str(e)[:200]}")

        error_str = str(e).lower()
        if "authentication" in error_str or "401" in error_str:
            print("\n💡 This looks like an authentication error.")
            print("   - Verify your API key is correct")
        elif "model" in error_str or "404" in error_str:
            print(f"\n💡 Model '{model}' may not be available at {base_url}.")
        elif "logprobs" in error_str:
            print("\n💡 This backend or model does not seem to support logprobs.")
        elif "timeout" in error_str or "timed out" in error_str:
            print("\n💡 Request timed out. Try increasing LOGITLOOM_TIMEOUT")

        return False


async def main():
    model = sys.argv[1] if len(sys.argv) > 1 else "gpt-4o-mini"

    print("=" * 70)
    print("Logprobs Connection Test")
    print("=" * 70)

    success = await test_openai_connection(model)

    print("\n" + "=" * 70)
    if success:
        print("✅ All checks passed! Try:")
        print(f'  uv run logitloom build --model {model} --prompt "Once upon a time"')
        sys.exit(0)
    else:
        print("❌ Setup incomplete. Fix the issues above and try again.")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
