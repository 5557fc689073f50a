import asyncio
import dataclasses
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from cryptobrief.internal_core.config import load_config
from cryptobrief.internal_core.contracts import ChatTurn
from cryptobrief.llm.base import LLMConfigurationError, LLMProviderError
from cryptobrief.llm.claude import GROUNDED_PROMPT_SUFFIX, run_claude_analysis, stream_claude_chat
from cryptobrief.llm.gemini import (
    EMPTY_DEEP_RESPONSE_MESSAGE,
    EMPTY_GROUNDED_RESPONSE_TEXT,
    run_gemini_analysis,
    stream_gemini_chat,
)
from cryptobrief.llm.router import run_analysis


def _config(tmp_path, **overrides):
    values = {
        "GEMINI_API_KEY": "gemini-test-key",
        "ANTHROPIC_API_KEY": "anthropic-test-key",
        "CRYPTOBRIEF_LLM_DEBUG_LOG": str(tmp_path / "llm_raw.log"),
    }
    values.update(overrides)
    return dataclasses.replace(load_config(), **values)


async def _agen(items):
    for item in items:
        yield item


async def _collect(stream):
    return [item async for item in stream]


class FakeGeminiModels:
    def __init__(self, response=None, error: Exception | None = None, chunks=None) -> None:
        self.response = response
        self.error = error
        self.chunks = chunks or []
        self.calls: list[dict] = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response

    async def generate_content_stream(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return _agen(self.chunks)


def _gemini_client(models: FakeGeminiModels):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


def test_gemini_deep_uses_thinking_budget_and_output_cap(tmp_path) -> None:
    models = FakeGeminiModels(response=SimpleNamespace(text="Deep answer", candidates=[]))
    config = _config(tmp_path)

    result = asyncio.run(
        run_gemini_analysis("prompt body", mode="deep", config=config, client=_gemini_client(models))
    )

    call = models.calls[0]
    assert call["model"] == "gemini-3-pro-preview"
    assert call["contents"] == "prompt body"
    assert call["config"].thinking_config.thinking_budget == 16000
    assert call["config"].max_output_tokens == 65536
    assert not call["config"].tools
    assert result.text == "Deep answer"
    assert result.citations == ()
    log_text = (tmp_path / "llm_raw.log").read_text(encoding="utf-8")
    assert "stage=gemini_analysis_request" in log_text
    assert "stage=gemini_analysis_response" in log_text


def test_gemini_deep_empty_text_is_provider_error(tmp_path) -> None:
    models = FakeGeminiModels(response=SimpleNamespace(text=None, candidates=[]))
    with pytest.raises(LLMProviderError, match="did not return any text"):
        asyncio.run(
            run_gemini_analysis("p", mode="deep", config=_config(tmp_path), client=_gemini_client(models))
        )
    assert EMPTY_DEEP_RESPONSE_MESSAGE.startswith("The model did not return any text.")


def test_gemini_grounded_collects_citations_from_grounding_chunks(tmp_path) -> None:
    grounding = SimpleNamespace(
        grounding_chunks=[
            SimpleNamespace(web=SimpleNamespace(uri="https://a.example/eth", title="ETH news")),
            SimpleNamespace(web=None),
            SimpleNamespace(web=SimpleNamespace(uri="https://b.example/defi", title=None)),
        ]
    )
    response = SimpleNamespace(text="Grounded", candidates=[SimpleNamespace(grounding_metadata=grounding)])
    models = FakeGeminiModels(response=response)

    result = asyncio.run(
        run_gemini_analysis("p", mode="grounded", config=_config(tmp_path), client=_gemini_client(models))
    )

    call = models.calls[0]
    assert call["model"] == "gemini-2.5-flash"
    assert call["config"].tools[0].google_search is not None
    assert [(c.url, c.title) for c in result.citations] == [
        ("https://a.example/eth", "ETH news"),
        ("https://b.example/defi", ""),
    ]


def test_gemini_grounded_empty_text_uses_placeholder(tmp_path) -> None:
    models = FakeGeminiModels(response=SimpleNamespace(text="", candidates=None))
    result = asyncio.run(
        run_gemini_analysis("p", mode="grounded", config=_config(tmp_path), client=_gemini_client(models))
    )
    assert result.text == EMPTY_GROUNDED_RESPONSE_TEXT


def test_gemini_sdk_error_becomes_provider_error(tmp_path) -> None:
    models = FakeGeminiModels(error=RuntimeError("quota exhausted"))
    with pytest.raises(LLMProviderError, match="quota exhausted"):
        asyncio.run(
            run_gemini_analysis("p", mode="deep", config=_config(tmp_path), client=_gemini_client(models))
        )
    assert "stage=gemini_analysis_error" in (tmp_path / "llm_raw.log").read_text(encoding="utf-8")


def test_gemini_missing_key_is_configuration_error(tmp_path) -> None:
    with pytest.raises(LLMConfigurationError, match="API_KEY environment variable is missing"):
        asyncio.run(run_gemini_analysis("p", mode="deep", config=_config(tmp_path, GEMINI_API_KEY="")))


def test_gemini_chat_stream_sends_history_and_system_instruction(tmp_path) -> None:
    models = FakeGeminiModels(
        chunks=[SimpleNamespace(text="Hel"), SimpleNamespace(text=None), SimpleNamespace(text="lo")]
    )
    history = [ChatTurn(role="user", text="hi"), ChatTurn(role="model", text="hello")]

    fragments = asyncio.run(
        _collect(
            stream_gemini_chat(
                system_instruction="You are a helpful expert research assistant.",
                history=history,
                message="next?",
                config=_config(tmp_path),
                client=_gemini_client(models),
            )
        )
    )

    assert fragments == ["Hel", "lo"]
    call = models.calls[0]
    assert call["model"] == "gemini-2.5-flash"
    assert [item.role for item in call["contents"]] == ["user", "model", "user"]
    assert call["contents"][-1].parts[0].text == "next?"
    assert call["config"].system_instruction == "You are a helpful expert research assistant."


class FakeClaudeStream:
    def __init__(self, parts, error: Exception | None = None) -> None:
        self.parts = parts
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    def text_stream(self):
        return _agen(self.parts)


class FakeClaudeMessages:
    def __init__(self, response=None, error: Exception | None = None, parts=None) -> None:
        self.response = response
        self.error = error
        self.parts = parts or []
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response

    def stream(self, **kwargs):
        self.calls.append(kwargs)
        return FakeClaudeStream(self.parts, error=self.error)


def _claude_response(*blocks):
    return SimpleNamespace(content=list(blocks), stop_reason="end_turn")


def test_claude_deep_enables_thinking_and_joins_text_blocks(tmp_path) -> None:
    messages = FakeClaudeMessages(
        response=_claude_response(
            SimpleNamespace(type="thinking", thinking="pondering"),
            SimpleNamespace(type="text", text="Part one. "),
            SimpleNamespace(type="text", text="Part two."),
        )
    )
    result = asyncio.run(
        run_claude_analysis(
            "prompt body",
            mode="deep",
            config=_config(tmp_path),
            client=SimpleNamespace(messages=messages),
        )
    )

    call = messages.calls[0]
    assert call["model"] == "claude-opus-4-20250514"
    assert call["max_tokens"] == 16000
    assert call["temperature"] == 1
    assert call["thinking"] == {"type": "enabled", "budget_tokens": 10000}
    assert call["messages"] == [{"role": "user", "content": "prompt body"}]
    assert result.text == "Part one. Part two."
    assert result.citations == ()


def test_claude_grounded_appends_knowledge_cutoff_instructions(tmp_path) -> None:
    messages = FakeClaudeMessages(response=_claude_response(SimpleNamespace(type="text", text="ok")))
    asyncio.run(
        run_claude_analysis(
            "prompt body",
            mode="grounded",
            config=_config(tmp_path),
            client=SimpleNamespace(messages=messages),
        )
    )

    call = messages.calls[0]
    assert call["model"] == "claude-sonnet-4-20250514"
    assert call["max_tokens"] == 8000
    assert "thinking" not in call
    assert call["messages"][0]["content"] == "prompt body" + GROUNDED_PROMPT_SUFFIX
    assert "knowledge cutoff" in GROUNDED_PROMPT_SUFFIX


def test_claude_api_error_is_wrapped(tmp_path) -> None:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    messages = FakeClaudeMessages(error=anthropic.APIError("overloaded", request, body=None))
    with pytest.raises(LLMProviderError, match="Claude API Error: overloaded"):
        asyncio.run(
            run_claude_analysis(
                "p",
                mode="deep",
                config=_config(tmp_path),
                client=SimpleNamespace(messages=messages),
            )
        )


def test_claude_missing_key_is_configuration_error(tmp_path) -> None:
    with pytest.raises(LLMConfigurationError, match="ANTHROPIC_API_KEY environment variable not set"):
        asyncio.run(run_claude_analysis("p", mode="deep", config=_config(tmp_path, ANTHROPIC_API_KEY="")))


def test_claude_chat_stream_maps_roles_and_system(tmp_path) -> None:
    messages = FakeClaudeMessages(parts=["A", "", "B"])
    history = [ChatTurn(role="user", text="hi"), ChatTurn(role="model", text="hello")]

    fragments = asyncio.run(
        _collect(
            stream_claude_chat(
                system_instruction="system text",
                history=history,
                message="more",
                config=_config(tmp_path),
                client=SimpleNamespace(messages=messages),
            )
        )
    )

    assert fragments == ["A", "B"]
    call = messages.calls[0]
    assert call["model"] == "claude-sonnet-4-20250514"
    assert call["max_tokens"] == 4096
    assert call["system"] == "system text"
    assert [m["role"] for m in call["messages"]] == ["user", "assistant", "user"]


def test_router_dispatches_by_provider_and_rejects_unknown(tmp_path) -> None:
    messages = FakeClaudeMessages(response=_claude_response(SimpleNamespace(type="text", text="claude")))
    result = asyncio.run(
        run_analysis(
            "p",
            mode="grounded",
            provider="claude",
            config=_config(tmp_path),
            client=SimpleNamespace(messages=messages),
        )
    )
    assert result.provider == "claude"

    with pytest.raises(ValueError, match="Unsupported LLM provider"):
        asyncio.run(run_analysis("p", mode="deep", provider="openai", config=_config(tmp_path)))

    with pytest.raises(ValueError, match="Unsupported analysis mode"):
        asyncio.run(run_analysis("p", mode="fast", provider="gemini", config=_config(tmp_path)))
