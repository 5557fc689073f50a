import json

import pytest

from cryptobrief.llm.base import AnalysisResult, Citation
from cryptobrief.scripts import llm_log_stats, render_prompt


def test_build_prompt_without_template_uses_project_title() -> None:
    prompt = render_prompt.build_prompt({"context": {"project": "Polkadot"}})
    assert prompt.startswith("## Crypto Research Brief: Polkadot")
    assert prompt.endswith("\n")


def test_build_prompt_with_template_keeps_identity_fields() -> None:
    prompt = render_prompt.build_prompt(
        {"context": {"project": "Polkadot", "purpose": "ignored by template"}},
        "investment-thesis",
    )
    assert prompt.startswith("## Research Brief: Investment Thesis Generation - Polkadot")
    assert "Inform trading/investment decision" in prompt
    assert "ignored by template" not in prompt


def test_main_renders_state_file(tmp_path, capsys, monkeypatch) -> None:
    monkeypatch.delenv("CRYPTOBRIEF_LLM_DEBUG_LOG", raising=False)
    state_path = tmp_path / "state.json"
    state_path.write_text(json.dumps({"context": {"project": "Near", "ticker": "NEAR"}}), encoding="utf-8")

    render_prompt.main(["--state", str(state_path)])

    out = capsys.readouterr().out
    assert out.startswith("## Crypto Research Brief: Near")
    assert "---" not in out


def test_main_rejects_missing_and_malformed_state(tmp_path) -> None:
    with pytest.raises(SystemExit, match="state file not found"):
        render_prompt.main(["--state", str(tmp_path / "missing.json")])

    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(SystemExit, match="JSON object"):
        render_prompt.main(["--state", str(bad)])


def test_main_rejects_unknown_template(tmp_path) -> None:
    state_path = tmp_path / "state.json"
    state_path.write_text("{}", encoding="utf-8")
    with pytest.raises(SystemExit, match="nope"):
        render_prompt.main(["--state", str(state_path), "--template", "nope"])


def _log_entry(stage: str, meta: dict) -> str:
    return (
        f"[2025-01-01T00:00:00+00:00] stage={stage} meta={json.dumps(meta)}\n"
        "-----BEGIN LLM RAW-----\n"
        "body\n"
        "-----END LLM RAW-----\n"
    )


def test_parse_log_groups_latency_errors_and_chat(tmp_path) -> None:
    log_path = tmp_path / "llm.log"
    log_path.write_text(
        "".join(
            [
                _log_entry("gemini_analysis_request", {"model": "m", "mode": "deep"}),
                _log_entry("gemini_analysis_response", {"mode": "deep", "elapsed_ms": 1200}),
                _log_entry("gemini_analysis_response", {"mode": "grounded", "elapsed_ms": 800, "citations": 3}),
                _log_entry("claude_analysis_error", {"mode": "deep"}),
                _log_entry("claude_analysis_response", {"mode": "deep", "elapsed_ms": 2000}),
                _log_entry("gemini_chat_request", {"history_turns": 0}),
                _log_entry("claude_chat_request", {"history_turns": 2}),
            ]
        ),
        encoding="utf-8",
    )

    stats = llm_log_stats.parse_log(log_path)

    assert stats["latencies"] == {
        "gemini/deep": [1200.0],
        "gemini/grounded": [800.0],
        "claude/deep": [2000.0],
    }
    assert stats["errors"] == {"claude/deep": 1}
    assert stats["citations_total"] == 3
    assert stats["chat_requests"] == 2


def test_latency_formatting_helpers() -> None:
    assert llm_log_stats._percentile([], 50) == 0.0
    assert llm_log_stats._percentile([10.0, 20.0, 30.0], 50) == 20.0
    assert llm_log_stats._format_latency([]) == "n/a"
    assert llm_log_stats._format_rate(1, 2) == "50.0% (1/2)"
    assert llm_log_stats._format_rate(0, 0) == "n/a"


def test_main_analyze_prints_result_header_and_sources(tmp_path, capsys, monkeypatch) -> None:
    state_path = tmp_path / "state.json"
    state_path.write_text(json.dumps({"context": {"project": "Near"}}), encoding="utf-8")
    calls: list[dict] = []

    async def fake_run_analysis(prompt, *, mode, provider=None, config=None, client=None):
        calls.append({"mode": mode, "provider": provider})
        return AnalysisResult(
            text="Near looks healthy.",
            citations=(Citation(url="https://near.example/report", title="Report"),),
            provider="gemini",
            model="gemini-2.5-flash",
        )

    monkeypatch.setattr(render_prompt, "run_analysis", fake_run_analysis)

    render_prompt.main(["--state", str(state_path), "--analyze", "grounded", "--provider", "gemini"])

    out = capsys.readouterr().out
    assert calls == [{"mode": "grounded", "provider": "gemini"}]
    assert "--- gemini gemini-2.5-flash ---" in out
    assert "Near looks healthy." in out
    assert "- Report: https://near.example/report" in out
