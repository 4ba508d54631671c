# =============================================================================
# Multi-Provider LLM Abstraction — Pluggable Answer Generator
# =============================================================================
#
# Common interface for chat completions, with concrete implementations for
# Anthropic (Claude) and OpenAI-compatible APIs (Gemini, OpenAI, DeepSeek,
# a local vLLM server, ...).
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Matches the Embedder and VectorIndex protocols. Tests pass an AsyncMock
# with a `complete()` coroutine.
#
# DESIGN DECISION: Providers are built once by create_llm_provider() in
# the application lifespan and handed to routes through app.state. There
# is no module-level singleton.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — system prompt as top-level kwarg
#   ├── OpenAICompatibleProvider — system prompt as first message
#   └── create_llm_provider()    — builds the configured provider
#
# Provider SDK errors are re-raised as LLMProviderError so the API layer
# maps every provider failure to a single status code.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from finrag.config import Settings

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """The language-model provider rejected or failed a completion."""


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Normalised completion from any provider."""

    content: str           # The generated text
    model: str             # Model identifier reported by the provider
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Protocol defining the LLM provider interface."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion.

        Args:
            messages: Dicts with "role" ("user" / "assistant") and "content".
            system: System prompt. Anthropic takes it as a top-level kwarg,
                OpenAI-style APIs as a leading {"role": "system"} message.
            temperature: Override the configured sampling temperature.
            max_tokens: Override the configured output limit.

        Raises:
            LLMProviderError: On any provider or transport failure.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """Anthropic Claude provider using the native async SDK."""

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> None:
        from anthropic import AsyncAnthropic

        if not api_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        import anthropic

        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise LLMProviderError(f"Anthropic request failed: {exc}") from exc

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (Gemini, OpenAI, DeepSeek, ...)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Provider for any API that speaks the OpenAI chat-completions protocol.

    Switching vendors is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://generativelanguage.googleapis.com/v1beta/openai/
        LLM_API_KEY=your-key
        LLM_MODEL=gemini-1.5-flash
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> None:
        from openai import AsyncOpenAI

        if not api_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        import openai

        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=all_messages,
                max_tokens=max_tokens or self._max_tokens,
                temperature=self._temperature if temperature is None else temperature,
            )
        except openai.APIError as exc:
            raise LLMProviderError(f"LLM request failed: {exc}") from exc

        content = response.choices[0].message.content or ""

        usage = response.usage
        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def create_llm_provider(
    settings: Settings,
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Build the configured LLM provider.

    Reads `llm_provider` from settings:
    - "openai_compatible" → OpenAICompatibleProvider (default, Gemini URL)
    - "anthropic" → AnthropicProvider

    Raises:
        ValueError: Unknown provider or missing API key.
    """
    if settings.llm_provider == "anthropic":
        return AnthropicProvider(
            api_key=settings.llm_api_key or settings.anthropic_api_key,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    if settings.llm_provider != "openai_compatible":
        raise ValueError(
            f"Unknown LLM provider '{settings.llm_provider}'. "
            "Supported: 'anthropic', 'openai_compatible'"
        )

    return OpenAICompatibleProvider(
        api_key=settings.llm_api_key or settings.openai_api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
