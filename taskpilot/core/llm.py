"""
TaskPilot — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
The command interpreter, transcript cleanup and reply drafting all go
through it, so switching LLM_PROVIDER switches every call site at once.
Supports: gemini (default), anthropic, openai, cohere.

`json_output=True` asks the provider for a bare JSON object using its native
JSON mode where one exists (Anthropic has none and gets a system-prompt
instruction instead).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

_JSON_INSTRUCTION = "\n\nRespond with a single JSON object and nothing else."


class LLMError(Exception):
    """Raised when the provider returns no usable text."""


@dataclass(frozen=True)
class CompletionRequest:
    system: str
    user_message: str
    max_tokens: int
    json_output: bool = False

    def messages(self) -> list[dict[str, str]]:
        """Chat-style message list for providers that take the system prompt inline."""
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user_message},
        ]


# (api_key, model, request) -> reply text
_ProviderFn = Callable[[str, str, CompletionRequest], Awaitable[str]]


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_gemini(api_key: str, model: str, request: CompletionRequest) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    config: dict = {"max_output_tokens": request.max_tokens}
    if request.json_output:
        config["response_mime_type"] = "application/json"
    gm = genai.GenerativeModel(model_name=model, system_instruction=request.system)
    response = await gm.generate_content_async(
        request.user_message,
        generation_config=genai.types.GenerationConfig(**config),
    )
    return response.text


async def _complete_anthropic(api_key: str, model: str, request: CompletionRequest) -> str:
    import anthropic

    system = request.system + (_JSON_INSTRUCTION if request.json_output else "")
    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=request.max_tokens,
        system=system,
        messages=[{"role": "user", "content": request.user_message}],
    )
    return "".join(block.text for block in response.content if block.type == "text")


async def _complete_openai(api_key: str, model: str, request: CompletionRequest) -> str:
    from openai import AsyncOpenAI

    extra: dict = {}
    if request.json_output:
        extra["response_format"] = {"type": "json_object"}
    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=request.max_tokens,
        messages=request.messages(),
        **extra,
    )
    return response.choices[0].message.content or ""


async def _complete_cohere(api_key: str, model: str, request: CompletionRequest) -> str:
    import cohere

    extra: dict = {}
    if request.json_output:
        extra["response_format"] = {"type": "json_object"}
    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=request.max_tokens,
        messages=request.messages(),
        **extra,
    )
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


def is_configured() -> bool:
    """True when an API key is set for the configured provider."""
    from taskpilot.config import settings

    return bool(settings.LLM_API_KEY)


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Resolve LLM_PROVIDER / LLM_MODEL into (provider_fn, model, api_key)."""
    from taskpilot.config import settings

    name = settings.LLM_PROVIDER.strip().lower()
    try:
        fn, default_model = _PROVIDERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown LLM_PROVIDER={name!r}. Supported: {', '.join(_PROVIDERS)}"
        ) from None

    model = settings.LLM_MODEL or default_model
    logger.info("LLM provider: %s, model: %s", name, model)
    return fn, model, settings.LLM_API_KEY


# Lazy singleton — populated on first call to complete()
_provider: tuple[_ProviderFn, str, str] | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(
    system: str,
    user_message: str,
    max_tokens: int = 1024,
    json_output: bool = False,
) -> str:
    """Send a prompt to the configured LLM provider and return the reply text.

    Raises LLMError on an empty reply; provider exceptions propagate.
    """
    global _provider

    if _provider is None:
        _provider = _select_provider()
    fn, model, api_key = _provider

    request = CompletionRequest(system, user_message, max_tokens, json_output)
    text = await fn(api_key, model, request)
    if not text or not text.strip():
        raise LLMError(f"{model} returned an empty reply")
    logger.debug("LLM reply: %d chars (json=%s)", len(text), json_output)
    return text
