"""
Goal Tracker — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
Provider is selected on first use from the LLM_PROVIDER setting.
Supports: gemini (default), anthropic, openai, cohere.

The output is free-form text with no guaranteed structure; callers parse it.
Each provider reports why it stopped generating. A plan cut off at the token
cap or withheld by a safety filter still comes back as text (possibly ""),
but the stop reason is logged so a short or missing plan can be explained.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Awaitable

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024

# (api_key, model, system, user_message, max_tokens) -> text
_ProviderFn = Callable[[str, str, str, str, int], Awaitable[str]]

# Stop reasons, lower-cased, as the four SDKs spell them
_TRUNCATED_REASONS = {"max_tokens", "length"}
_BLOCKED_REASONS = {
    "safety", "recitation", "blocklist", "prohibited_content", "spii",
    "content_filter", "refusal", "error_toxic",
}


def _log_stop_reason(provider: str, reason: Any) -> str:
    """Log a truncated or filtered response; return the normalized reason."""
    name = str(getattr(reason, "name", reason) or "").lower()
    if name in _TRUNCATED_REASONS:
        logger.warning("%s response hit the token cap; the plan may be cut short", provider)
    elif name in _BLOCKED_REASONS:
        logger.warning("%s response was withheld by the provider (%s)", provider, name)
    return name


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_gemini(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(
        model_name=model,
        system_instruction=system,
    )
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(max_output_tokens=max_tokens),
    )

    block_reason = getattr(getattr(response, "prompt_feedback", None), "block_reason", None)
    if block_reason:
        logger.warning(
            "gemini blocked the prompt (%s)", getattr(block_reason, "name", block_reason),
        )
        return ""
    if response.candidates:
        _log_stop_reason("gemini", response.candidates[0].finish_reason)

    # .text raises when the candidate has no text parts
    try:
        return response.text
    except ValueError as exc:
        logger.warning("gemini returned no text: %s", exc)
        return ""


async def _complete_anthropic(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    _log_stop_reason("anthropic", response.stop_reason)
    return "".join(
        block.text for block in response.content if getattr(block, "type", "") == "text"
    )


async def _complete_openai(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    choice = response.choices[0]
    _log_stop_reason("openai", choice.finish_reason)
    return choice.message.content or ""


async def _complete_cohere(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    _log_stop_reason("cohere", response.finish_reason)
    if not response.message.content:
        return ""
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.5-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read settings and return (provider_fn, model, api_key)."""
    from src.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, settings.LLM_API_KEY


# Lazy singleton — populated on first call to complete()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


def reset_provider() -> None:
    """Forget the selected provider so the next call re-reads settings."""
    global _provider_fn, _model, _api_key
    _provider_fn, _model, _api_key = None, "", ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(system: str, user_message: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
    """Send a prompt to the configured LLM provider and return the response text.

    An empty or blocked response comes back as "". API errors and timeouts
    are raised; callers should handle exceptions.
    """
    global _provider_fn, _model, _api_key

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    started = time.monotonic()
    text = await _provider_fn(_api_key, _model, system, user_message, max_tokens)
    logger.debug(
        "LLM call to %s took %.2fs (%d chars, max_tokens=%d)",
        _model, time.monotonic() - started, len(text or ""), max_tokens,
    )
    return text or ""
