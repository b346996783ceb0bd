"""LLM provider loader.

Centralises construction of chat models so we can swap providers via env vars.
Supports OpenAI by default, plus Anthropic, OpenRouter (OpenAI-compatible
endpoint) and Groq when the matching `langchain-*` package is installed.
"""

from __future__ import annotations

from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel

from core.config import _env, llm_settings

DEFAULT_OPENROUTER_BASE = "https://openrouter.ai/api/v1"

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
    "openrouter": "anthropic/claude-3.5-sonnet",
    "groq": "llama-3.1-8b-instant",
}


class LLMConfigError(RuntimeError):
    """Raised when the requested LLM provider cannot be initialised."""


def get_provider_name() -> str:
    provider = llm_settings().provider
    if provider in {"oa"}:
        return "openai"
    if provider in {"claude"}:
        return "anthropic"
    return provider


def _resolve_model(provider: str) -> str:
    return llm_settings().model or DEFAULT_MODELS[provider]


def create_chat_model(temperature: Optional[float] = None) -> BaseChatModel:
    """Return a LangChain chat model for the configured provider."""

    settings = llm_settings()
    provider = get_provider_name()
    temperature = settings.temperature if temperature is None else temperature

    if provider == "openai":
        try:
            from langchain_openai import ChatOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "OpenAI provider selected but langchain-openai is not installed. "
                "Run `pip install langchain-openai` or switch LLM_PROVIDER."
            ) from exc

        api_key = settings.api_key or _env("OPENAI_API_KEY")
        if not api_key:
            raise LLMConfigError(
                "OpenAI provider selected but no API key found. "
                "Set LLM_API_KEY or OPENAI_API_KEY."
            )

        base_url = settings.base_url or _env("OPENAI_BASE_URL")
        kwargs = {
            "model": _resolve_model(provider),
            "temperature": temperature,
            "api_key": api_key,
            "max_tokens": settings.max_tokens,
            "timeout": settings.timeout,
        }
        if base_url:
            kwargs["base_url"] = base_url.rstrip("/")
        return ChatOpenAI(**kwargs)

    if provider == "openrouter":
        try:
            from langchain_openai import ChatOpenAI  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "OpenRouter provider selected but langchain-openai is not installed. "
                "Run `pip install langchain-openai` or switch LLM_PROVIDER."
            ) from exc

        api_key = settings.api_key or _env("OPENROUTER_API_KEY")
        if not api_key:
            raise LLMConfigError(
                "OpenRouter provider selected but no API key found. "
                "Set LLM_API_KEY or OPENROUTER_API_KEY."
            )

        base_url = settings.base_url or DEFAULT_OPENROUTER_BASE
        return ChatOpenAI(
            model=_resolve_model(provider),
            temperature=temperature,
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            max_tokens=settings.max_tokens,
            timeout=settings.timeout,
        )

    if provider == "anthropic":
        try:
            from langchain_anthropic import ChatAnthropic  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "Anthropic provider selected but langchain-anthropic is not installed. "
                "Run `pip install langchain-anthropic` or switch LLM_PROVIDER."
            ) from exc

        api_key = settings.api_key or _env("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMConfigError(
                "Anthropic provider selected but no API key found. "
                "Set LLM_API_KEY or ANTHROPIC_API_KEY."
            )

        return ChatAnthropic(
            model=_resolve_model(provider),
            temperature=temperature,
            api_key=api_key,
            max_tokens=settings.max_tokens,
            timeout=settings.timeout,
        )

    if provider == "groq":
        try:
            from langchain_groq import ChatGroq  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "Groq provider selected but langchain-groq is not installed. "
                "Run `pip install langchain-groq` or switch LLM_PROVIDER."
            ) from exc

        api_key = settings.api_key or _env("GROQ_API_KEY")
        if not api_key:
            raise LLMConfigError(
                "Groq provider selected but no API key found. "
                "Set LLM_API_KEY or GROQ_API_KEY."
            )

        return ChatGroq(
            model=_resolve_model(provider),
            temperature=temperature,
            groq_api_key=api_key,
            max_tokens=settings.max_tokens,
        )

    raise LLMConfigError(
        f"Unsupported LLM_PROVIDER '{provider}'. "
        "Expected 'openai', 'anthropic', 'openrouter' or 'groq'."
    )


def get_chat_model(temperature: Optional[float] = None) -> BaseChatModel:
    """Public entry point used by the rest of the app."""

    return create_chat_model(temperature=temperature)
