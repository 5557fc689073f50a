from __future__ import annotations

"""
Gemini adapter for research analysis and chat.

Design intent:
- Deep mode: large thinking budget, no tools.
- Grounded mode: Google Search tool, citations taken from grounding metadata.
- One request per call; retries are the caller's decision.
"""

import logging
import time
from typing import Any, AsyncIterator, Sequence

from google import genai
from google.genai import types

from cryptobrief.internal_core.config import AppConfig

from .base import (
    SUPPORTED_MODES,
    AnalysisResult,
    Citation,
    LLMConfigurationError,
    LLMError,
    LLMProviderError,
    append_debug_log,
)

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "API_KEY environment variable is missing. Please provide a valid API key."
EMPTY_DEEP_RESPONSE_MESSAGE = "The model did not return any text. The response might have been filtered."
EMPTY_GROUNDED_RESPONSE_TEXT = "No text response generated."


def build_gemini_client(config: AppConfig) -> genai.Client:
    if not config.GEMINI_API_KEY:
        raise LLMConfigurationError(MISSING_KEY_MESSAGE)
    return genai.Client(api_key=config.GEMINI_API_KEY)


def _analysis_request(mode: str, config: AppConfig) -> tuple[str, types.GenerateContentConfig]:
    if mode == "deep":
        # Effective answer budget is max_output_tokens minus the thinking budget.
        return config.GEMINI_DEEP_MODEL, types.GenerateContentConfig(
            thinking_config=types.ThinkingConfig(thinking_budget=config.GEMINI_DEEP_THINKING_BUDGET),
            max_output_tokens=config.GEMINI_DEEP_MAX_OUTPUT_TOKENS,
        )
    # response_mime_type / response_schema must stay unset with the search tool.
    return config.GEMINI_GROUNDED_MODEL, types.GenerateContentConfig(
        tools=[types.Tool(google_search=types.GoogleSearch())],
    )


def _response_text(response: Any) -> str:
    text = getattr(response, "text", None)
    return text if isinstance(text, str) else ""


def grounding_citations(response: Any) -> tuple[Citation, ...]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ()
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    citations: list[Citation] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None) if web is not None else None
        if not uri:
            continue
        citations.append(Citation(url=str(uri), title=str(getattr(web, "title", None) or "")))
    return tuple(citations)


async def run_gemini_analysis(
    prompt: str,
    *,
    mode: str,
    config: AppConfig,
    client: Any = None,
) -> AnalysisResult:
    if mode not in SUPPORTED_MODES:
        raise ValueError(f"Unsupported analysis mode: {mode}")
    if client is None:
        client = build_gemini_client(config)

    model, request_config = _analysis_request(mode, config)
    debug_log_path = config.CRYPTOBRIEF_LLM_DEBUG_LOG
    append_debug_log(
        debug_log_path,
        stage="gemini_analysis_request",
        raw=prompt,
        metadata={"model": model, "mode": mode},
    )

    started = time.perf_counter()
    try:
        response = await client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=request_config,
        )
    except LLMError:
        raise
    except Exception as exc:
        logger.warning("gemini analysis failed model=%s mode=%s error=%s", model, mode, exc)
        append_debug_log(
            debug_log_path,
            stage="gemini_analysis_error",
            raw=str(exc),
            metadata={"model": model, "mode": mode},
        )
        raise LLMProviderError(str(exc) or f"{mode.capitalize()} analysis failed due to an unknown error.") from exc
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    text = _response_text(response)
    citations: tuple[Citation, ...] = ()
    if mode == "deep":
        if not text:
            raise LLMProviderError(EMPTY_DEEP_RESPONSE_MESSAGE)
    else:
        citations = grounding_citations(response)
        text = text or EMPTY_GROUNDED_RESPONSE_TEXT

    append_debug_log(
        debug_log_path,
        stage="gemini_analysis_response",
        raw=text,
        metadata={"model": model, "mode": mode, "elapsed_ms": elapsed_ms, "citations": len(citations)},
    )
    logger.info(
        "gemini analysis done model=%s mode=%s elapsed_ms=%d chars=%d citations=%d",
        model,
        mode,
        elapsed_ms,
        len(text),
        len(citations),
    )
    return AnalysisResult(
        text=text,
        citations=citations,
        provider="gemini",
        model=model,
    )


def _history_contents(history: Sequence[Any], message: str) -> list[types.Content]:
    contents = [
        types.Content(role="model" if turn.role == "model" else "user", parts=[types.Part(text=turn.text)])
        for turn in history
    ]
    contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
    return contents


async def stream_gemini_chat(
    *,
    system_instruction: str,
    history: Sequence[Any],
    message: str,
    config: AppConfig,
    client: Any = None,
) -> AsyncIterator[str]:
    if client is None:
        client = build_gemini_client(config)
    model = config.GEMINI_CHAT_MODEL
    append_debug_log(
        config.CRYPTOBRIEF_LLM_DEBUG_LOG,
        stage="gemini_chat_request",
        raw=message,
        metadata={"model": model, "history_turns": len(history)},
    )
    try:
        stream = await client.aio.models.generate_content_stream(
            model=model,
            contents=_history_contents(history, message),
            config=types.GenerateContentConfig(system_instruction=system_instruction),
        )
        async for chunk in stream:
            text = getattr(chunk, "text", None)
            if text:
                yield text
    except LLMError:
        raise
    except Exception as exc:
        logger.warning("gemini chat stream failed model=%s error=%s", model, exc)
        raise LLMProviderError(str(exc) or "Chat stream failed.") from exc
