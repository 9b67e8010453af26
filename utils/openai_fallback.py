# utils/openai_fallback.py
# Secondary provider for one-line JSON translations.
# Single attempt per call: the chapter state machine owns retries and delays.

import os
from typing import Dict, Optional

from openai import AsyncOpenAI

from utils.logger import log

MAX_OUTPUT_TOKENS = 2000

_clients: Dict[str, AsyncOpenAI] = {}


class OpenAIRefusal(ValueError):
    """Safety refusal or content filter. Retrying the same prompt will not help."""


def openai_available() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


def _client() -> AsyncOpenAI:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("CRITICAL: primary provider failed AND OPENAI_API_KEY is missing.")
    if api_key not in _clients:
        _clients[api_key] = AsyncOpenAI(api_key=api_key)
    return _clients[api_key]


def completion_params(model: str, *, json_mode: bool) -> dict:
    # reasoning models reject max_tokens / temperature
    if any(x in model for x in ("o1-", "o3-", "gpt-5", "reasoning")):
        params = {"max_completion_tokens": MAX_OUTPUT_TOKENS}
    else:
        params = {"max_tokens": MAX_OUTPUT_TOKENS, "temperature": 0.2}
    if json_mode:
        params["response_format"] = {"type": "json_object"}
    return params


async def call_openai_fallback(
        system_prompt: str,
        user_prompt: str,
        model: str = "gpt-4o-mini",
        json_mode: bool = False,
) -> str:
    log(f"🛡️ OPENAI FALLBACK: Using [{model}]")

    response = await _client().chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        **completion_params(model, json_mode=json_mode),
    )
    choice = response.choices[0]
    refusal: Optional[str] = getattr(choice.message, "refusal", None)

    if refusal:
        log(f"❌ OPENAI REFUSED (Safety Policy): {refusal}")
        raise OpenAIRefusal(f"OpenAI safety refusal: {refusal}")
    if choice.finish_reason == "content_filter":
        log("❌ OPENAI BLOCKED: Finish reason is 'content_filter'")
        raise OpenAIRefusal("OpenAI content filter blocked the response")
    if not choice.message.content:
        raise ValueError("Empty content from OpenAI")

    return choice.message.content.strip()
