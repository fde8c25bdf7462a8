"""LLM provider loader.

Centralises construction of chat models so we can swap providers via env vars.
OpenAI is the default; Groq and NVIDIA are available when their LangChain
integrations are installed.
"""

from __future__ import annotations

from typing import Optional

from langchain_core.language_models.chat_models import BaseChatModel

from .config import LLM_MAX_TOKENS, LLM_TEMPERATURE, env

DEFAULT_NVIDIA_BASE = "https://integrate.api.nvidia.com/v1"

SUPPORTED_PROVIDERS = {"openai", "oa", "groq", "nvidia", "nv", "nvcf"}


class LLMConfigError(RuntimeError):
    """Raised when the requested LLM provider cannot be initialised."""


def get_provider_name() -> str:
    return (env("LLM_PROVIDER", "openai") or "openai").lower()


def _resolve_model(default: str) -> str:
    return env("LLM_MODEL", default) or default


def _resolve_api_key(provider: str) -> Optional[str]:
    if provider in {"groq"}:
        return env("LLM_API_KEY") or env("GROQ_API_KEY")
    if provider in {"nvidia", "nv", "nvcf"}:
        return env("LLM_API_KEY") or env("NVIDIA_API_KEY") or env("NVCF_API_KEY")
    return env("LLM_API_KEY") or env("OPENAI_API_KEY")


def ensure_llm_configured() -> str:
    """Check provider + credential without building a client.

    Returns the provider name; raises LLMConfigError when a request could never
    reach the completion service.
    """
    provider = get_provider_name()
    if provider not in SUPPORTED_PROVIDERS:
        raise LLMConfigError(
            f"Unsupported LLM_PROVIDER '{provider}'. Expected 'openai', 'groq' or 'nvidia'."
        )
    if not _resolve_api_key(provider):
        raise LLMConfigError(
            f"No API key configured for provider '{provider}'. "
            "Set LLM_API_KEY or the provider-specific key (e.g. OPENAI_API_KEY)."
        )
    return provider


def create_chat_model(
    temperature: float = LLM_TEMPERATURE,
    max_tokens: int = LLM_MAX_TOKENS,
) -> BaseChatModel:
    """Return a LangChain chat model for the configured provider."""

    provider = ensure_llm_configured()
    api_key = _resolve_api_key(provider)

    if provider in {"groq"}:
        try:
            from langchain_groq import ChatGroq  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "Groq provider selected but langchain-groq is not installed. "
                "Run `pip install langchain-groq` or switch LLM_PROVIDER."
            ) from exc

        return ChatGroq(
            model=_resolve_model("llama-3.1-8b-instant"),
            temperature=temperature,
            max_tokens=max_tokens,
            groq_api_key=api_key,
        )

    if provider in {"nvidia", "nv", "nvcf"}:
        try:
            from langchain_nvidia_ai_endpoints import ChatNVIDIA  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise LLMConfigError(
                "NVIDIA provider selected but langchain-nvidia-ai-endpoints is not installed. "
                "Run `pip install langchain-nvidia-ai-endpoints` or switch LLM_PROVIDER."
            ) from exc

        base_url = env("LLM_BASE_URL", DEFAULT_NVIDIA_BASE) or DEFAULT_NVIDIA_BASE
        return ChatNVIDIA(
            model=_resolve_model("meta/llama-3.1-8b-instruct"),
            temperature=temperature,
            max_tokens=max_tokens,
            base_url=base_url.rstrip("/"),
            api_key=api_key,
        )

    from langchain_openai import ChatOpenAI

    kwargs = {
        "model": _resolve_model("gpt-3.5-turbo"),
        "temperature": temperature,
        "max_tokens": max_tokens,
        "api_key": api_key,
    }
    base_url = env("LLM_BASE_URL") or env("OPENAI_BASE_URL")
    if base_url:
        kwargs["base_url"] = base_url.rstrip("/")

    return ChatOpenAI(**kwargs)


def get_chat_model(
    temperature: float = LLM_TEMPERATURE,
    max_tokens: int = LLM_MAX_TOKENS,
) -> BaseChatModel:
    """Public entry point used by the rest of the app."""

    return create_chat_model(temperature=temperature, max_tokens=max_tokens)
