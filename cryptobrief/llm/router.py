from __future__ import annotations

from typing import Any, AsyncIterator, Sequence

from cryptobrief.internal_core.config import AppConfig

from .base import SUPPORTED_PROVIDERS, AnalysisResult, LLMConfigurationError
from .claude import MISSING_KEY_MESSAGE as CLAUDE_MISSING_KEY_MESSAGE
from .claude import run_claude_analysis, stream_claude_chat
from .gemini import MISSING_KEY_MESSAGE as GEMINI_MISSING_KEY_MESSAGE
from .gemini import run_gemini_analysis, stream_gemini_chat


def resolve_provider(provider: str | None, config: AppConfig) -> str:
    name = str(provider or config.CRYPTOBRIEF_LLM_PROVIDER or "gemini").strip().lower()
    if name not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported LLM provider: {name}")
    return name


def require_credentials(provider: str | None, config: AppConfig) -> str:
    name = resolve_provider(provider, config)
    if name == "claude" and not config.ANTHROPIC_API_KEY:
        raise LLMConfigurationError(CLAUDE_MISSING_KEY_MESSAGE)
    if name == "gemini" and not config.GEMINI_API_KEY:
        raise LLMConfigurationError(GEMINI_MISSING_KEY_MESSAGE)
    return name


async def run_analysis(
    prompt: str,
    *,
    mode: str,
    config: AppConfig,
    provider: str | None = None,
    client: Any = None,
) -> AnalysisResult:
    name = resolve_provider(provider, config)
    if name == "claude":
        return await run_claude_analysis(prompt, mode=mode, config=config, client=client)
    return await run_gemini_analysis(prompt, mode=mode, config=config, client=client)


def stream_chat(
    *,
    provider: str,
    system_instruction: str,
    history: Sequence[Any],
    message: str,
    config: AppConfig,
    client: Any = None,
) -> AsyncIterator[str]:
    name = resolve_provider(provider, config)
    stream = stream_claude_chat if name == "claude" else stream_gemini_chat
    return stream(
        system_instruction=system_instruction,
        history=history,
        message=message,
        config=config,
        client=client,
    )
