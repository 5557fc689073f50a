from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator, Sequence

from anthropic import APIError, AsyncAnthropic

from cryptobrief.internal_core.config import AppConfig

from .base import (
    SUPPORTED_MODES,
    AnalysisResult,
    LLMConfigurationError,
    LLMError,
    LLMProviderError,
    append_debug_log,
)

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "ANTHROPIC_API_KEY environment variable not set."

# Claude has no search tool wired here; "grounded" asks it to flag cutoff-limited data instead.
GROUNDED_PROMPT_SUFFIX = (
    "\n\nPlease provide a comprehensive analysis based on your knowledge. Focus on:\n"
    "- Current market data and trends (based on your training data)\n"
    "- Technical analysis and fundamentals\n"
    "- Risk factors and opportunities\n"
    "- Actionable insights\n\n"
    "If you need real-time data that's beyond your knowledge cutoff, please note that explicitly."
)


def build_claude_client(config: AppConfig) -> AsyncAnthropic:
    if not config.ANTHROPIC_API_KEY:
        raise LLMConfigurationError(MISSING_KEY_MESSAGE)
    return AsyncAnthropic(api_key=config.ANTHROPIC_API_KEY)


def _analysis_kwargs(prompt: str, mode: str, config: AppConfig) -> dict[str, Any]:
    if mode == "deep":
        return {
            "model": config.CLAUDE_DEEP_MODEL,
            "max_tokens": config.CLAUDE_DEEP_MAX_TOKENS,
            # Extended thinking requires temperature 1.
            "temperature": 1,
            "thinking": {"type": "enabled", "budget_tokens": config.CLAUDE_DEEP_THINKING_BUDGET},
            "messages": [{"role": "user", "content": prompt}],
        }
    return {
        "model": config.CLAUDE_GROUNDED_MODEL,
        "max_tokens": config.CLAUDE_GROUNDED_MAX_TOKENS,
        "temperature": 1,
        "messages": [{"role": "user", "content": prompt + GROUNDED_PROMPT_SUFFIX}],
    }


def _provider_error(exc: Exception) -> LLMProviderError:
    if isinstance(exc, APIError):
        return LLMProviderError(f"Claude API Error: {getattr(exc, 'message', None) or exc}")
    return LLMProviderError(str(exc) or "An unknown error occurred.")


def response_text(response: Any) -> str:
    parts: list[str] = []
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", None) == "text":
            parts.append(getattr(block, "text", "") or "")
    return "".join(parts)


async def run_claude_analysis(
    prompt: str,
    *,
    mode: str,
    config: AppConfig,
    client: Any = None,
) -> AnalysisResult:
    if mode not in SUPPORTED_MODES:
        raise ValueError(f"Unsupported analysis mode: {mode}")
    if client is None:
        client = build_claude_client(config)

    kwargs = _analysis_kwargs(prompt, mode, config)
    model = kwargs["model"]
    debug_log_path = config.CRYPTOBRIEF_LLM_DEBUG_LOG
    append_debug_log(
        debug_log_path,
        stage="claude_analysis_request",
        raw=kwargs["messages"][0]["content"],
        metadata={"model": model, "mode": mode, "max_tokens": kwargs["max_tokens"]},
    )

    started = time.perf_counter()
    try:
        response = await client.messages.create(**kwargs)
    except LLMError:
        raise
    except Exception as exc:
        logger.warning("claude analysis failed model=%s mode=%s error=%s", model, mode, exc)
        append_debug_log(
            debug_log_path,
            stage="claude_analysis_error",
            raw=str(exc),
            metadata={"model": model, "mode": mode},
        )
        raise _provider_error(exc) from exc
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    text = response_text(response)
    append_debug_log(
        debug_log_path,
        stage="claude_analysis_response",
        raw=text,
        metadata={
            "model": model,
            "mode": mode,
            "elapsed_ms": elapsed_ms,
            "stop_reason": getattr(response, "stop_reason", None),
        },
    )
    logger.info(
        "claude analysis done model=%s mode=%s elapsed_ms=%d chars=%d",
        model,
        mode,
        elapsed_ms,
        len(text),
    )
    return AnalysisResult(
        text=text,
        citations=(),
        provider="claude",
        model=model,
    )


async def stream_claude_chat(
    *,
    system_instruction: str,
    history: Sequence[Any],
    message: str,
    config: AppConfig,
    client: Any = None,
) -> AsyncIterator[str]:
    if client is None:
        client = build_claude_client(config)
    model = config.CLAUDE_CHAT_MODEL
    messages = [
        {"role": "assistant" if turn.role == "model" else "user", "content": turn.text}
        for turn in history
    ]
    messages.append({"role": "user", "content": message})
    append_debug_log(
        config.CRYPTOBRIEF_LLM_DEBUG_LOG,
        stage="claude_chat_request",
        raw=message,
        metadata={"model": model, "history_turns": len(history)},
    )
    try:
        async with client.messages.stream(
            model=model,
            max_tokens=config.CLAUDE_CHAT_MAX_TOKENS,
            temperature=1,
            system=system_instruction,
            messages=messages,
        ) as stream:
            async for text in stream.text_stream:
                if text:
                    yield text
    except LLMError:
        raise
    except Exception as exc:
        logger.warning("claude chat stream failed model=%s error=%s", model, exc)
        raise _provider_error(exc) from exc
