from cryptobrief.form.schema import SECTIONS
from cryptobrief.form.state import FormState
from cryptobrief.form.templates import get_template
from cryptobrief.prompt.guardrails import (
    LOOSE_GUARDRAIL_BLOCK,
    PROVENANCE_TABLE_BLOCK,
    STRICT_GUARDRAIL_BLOCK,
)
from cryptobrief.prompt.render import DEFAULT_TITLE, build_title, render_prompt

GUARDRAILS_HEADER = "### 7. Data Quality Guardrails"


def test_render_only_project_with_custom_preset() -> None:
    state = FormState.from_raw(
        {
            "context": {"project": "Ethereum"},
            "quality_guardrails": {"guardrail_preset": "custom"},
        }
    )
    prompt = render_prompt(state)
    assert prompt == (
        "## Crypto Research Brief: Ethereum\n\n"
        "### 1. Research Context & Goals\n\n"
        "*   **Coin/Project Name:** Ethereum\n"
    )
    assert GUARDRAILS_HEADER not in prompt


def test_render_is_idempotent() -> None:
    state = FormState.from_raw(
        {
            "context": {"project": "Solana", "experts": ["Macro Strategist", "Security Auditor"]},
            "output": {"format": "markdown"},
            "quality_guardrails": {"guardrail_preset": "custom", "price_freshness": "5m"},
        }
    )
    assert render_prompt(state) == render_prompt(state)


def test_render_skips_sections_with_only_empty_fields() -> None:
    state = FormState.from_raw(
        {
            "context": {"project": "Cosmos"},
            "coreQuestion": {"primaryQuestion": "", "hypothesis": ""},
            "risk_assessment": {"key_risks": []},
        }
    )
    prompt = render_prompt(state)
    for section in SECTIONS:
        if section.id in {"coreQuestion", "risk_assessment"}:
            assert f"### {section.title}" not in prompt


def test_render_joins_options_and_marks_enabled_toggle() -> None:
    state = FormState.from_raw(
        {
            "context": {"experts": ["Lead Tokenomics Analyst", "Macro Strategist"]},
            "quality_guardrails": {"guardrail_preset": "custom", "include_provenance_table": False},
        }
    )
    prompt = render_prompt(state)
    assert "*   **Expert(s) conducting the research:** Lead Tokenomics Analyst, Macro Strategist" in prompt
    assert "Provenance" not in prompt
    assert GUARDRAILS_HEADER not in prompt


def test_render_strict_preset_with_provenance_uses_single_header() -> None:
    state = FormState.from_raw(
        {
            "quality_guardrails": {
                "guardrail_preset": "strict",
                "include_provenance_table": True,
                "price_freshness": "5m",
            }
        }
    )
    prompt = render_prompt(state)
    assert prompt.count(GUARDRAILS_HEADER) == 1
    assert STRICT_GUARDRAIL_BLOCK.strip() in prompt
    assert PROVENANCE_TABLE_BLOCK.strip() in prompt
    assert prompt.index(STRICT_GUARDRAIL_BLOCK.strip()) < prompt.index(PROVENANCE_TABLE_BLOCK.strip())
    # Preset text replaces the per-field listing.
    assert "Max Price Age" not in prompt


def test_render_loose_preset_renders_fixed_block() -> None:
    state = FormState.from_raw({"quality_guardrails": {"guardrail_preset": "loose", "min_sources": "4"}})
    prompt = render_prompt(state)
    assert LOOSE_GUARDRAIL_BLOCK.strip() in prompt
    assert "Min. Consensus Sources" not in prompt


def test_render_custom_preset_lists_fields_and_normalizes_freshness() -> None:
    state = FormState.from_raw(
        {
            "quality_guardrails": {
                "guardrail_preset": "custom",
                "price_freshness": "5m",
                "supply_freshness": "whenever",
            }
        }
    )
    prompt = render_prompt(state)
    assert prompt.count(GUARDRAILS_HEADER) == 1
    assert "*   **Max Price Age:** 300 seconds" in prompt
    assert "*   **Max Supply Age:** whenever" in prompt
    assert "Guardrail Preset" not in prompt


def test_render_custom_preset_with_only_provenance_emits_header_once() -> None:
    state = FormState.from_raw(
        {"quality_guardrails": {"guardrail_preset": "custom", "include_provenance_table": True}}
    )
    prompt = render_prompt(state)
    assert prompt == (
        f"{DEFAULT_TITLE}\n\n{GUARDRAILS_HEADER}\n\n" + PROVENANCE_TABLE_BLOCK.rstrip() + "\n"
    )


def test_unknown_preset_renders_like_custom() -> None:
    state = FormState.from_raw({"quality_guardrails": {"guardrail_preset": "paranoid", "min_sources": "3"}})
    prompt = render_prompt(state)
    assert STRICT_GUARDRAIL_BLOCK.strip() not in prompt
    assert "*   **Min. Consensus Sources:** 3" in prompt


def test_sections_follow_catalogue_order_not_state_order() -> None:
    state = FormState.from_raw(
        {
            "output": {"tone": "neutral"},
            "context": {"project": "Aave"},
        }
    )
    prompt = render_prompt(state)
    assert prompt.index("### 1. Research Context & Goals") < prompt.index("### 4.")


def test_title_variants() -> None:
    empty = FormState()
    named = FormState.from_raw({"context": {"project": "Ethereum"}})
    template = get_template("investment-thesis")

    assert build_title(empty) == DEFAULT_TITLE
    assert build_title(named) == "## Crypto Research Brief: Ethereum"
    assert build_title(empty, template=template) == "## Research Brief: Investment Thesis Generation"
    assert (
        build_title(named, template=template)
        == "## Research Brief: Investment Thesis Generation - Ethereum"
    )


def test_render_output_ends_with_single_newline() -> None:
    prompt = render_prompt(FormState())
    assert prompt == DEFAULT_TITLE + "\n"


def test_render_keeps_oversized_freshness_text_verbatim() -> None:
    huge = "1" + "0" * 400
    state = FormState.from_raw({"quality_guardrails": {"guardrail_preset": "custom", "price_freshness": huge}})
    prompt = render_prompt(state)
    assert f"*   **Max Price Age:** {huge}" in prompt
