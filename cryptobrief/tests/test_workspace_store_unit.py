import time

import pytest

from cryptobrief.form.state import OptionsValue, TextValue, initial_form_state
from cryptobrief.form.templates import get_template
from cryptobrief.internal_core.audit import log_event
from cryptobrief.internal_core.contracts import CitationRecord, SavedAnalysis
from cryptobrief.internal_core.workspace_store import (
    ConfirmationRequiredError,
    InMemoryWorkspaceStore,
    WorkspaceBusyError,
)


def _store_with_workspace(ttl_seconds: int = 3600) -> tuple[InMemoryWorkspaceStore, str]:
    store = InMemoryWorkspaceStore(ttl_seconds=ttl_seconds)
    return store, store.create_workspace()


def test_new_workspace_starts_pristine() -> None:
    store, ws = _store_with_workspace()
    workspace = store.get_workspace(ws)

    assert workspace["form_state"] == initial_form_state()
    assert workspace["generated_prompt"] == ""
    assert workspace["busy"] is False
    assert workspace["template_id"] is None


def test_set_field_coerces_and_rejects_unknown_targets() -> None:
    store, ws = _store_with_workspace()

    state = store.set_field(ws, "context", "project", "Solana")
    assert state.get("context", "project") == TextValue(text="Solana")

    state = store.set_field(ws, "specifications", "methodology", ["Fundamental Analysis"])
    assert state.get("specifications", "methodology") == OptionsValue(items=("Fundamental Analysis",))

    with pytest.raises(ValueError, match="Unknown section"):
        store.set_field(ws, "nope", "project", "x")
    with pytest.raises(ValueError, match="Unknown field"):
        store.set_field(ws, "context", "nope", "x")
    with pytest.raises(ValueError, match="expects a string"):
        store.set_field(ws, "context", "project", ["Solana"])


def test_unknown_workspace_raises_key_error() -> None:
    store = InMemoryWorkspaceStore(ttl_seconds=60)
    with pytest.raises(KeyError):
        store.get_workspace("missing")


def test_template_load_on_pristine_form_needs_no_confirmation() -> None:
    store, ws = _store_with_workspace()
    template = get_template("investment-thesis")

    state = store.load_template(ws, template)

    assert state.text("context", "purpose") == "Inform trading/investment decision"
    assert store.get_workspace(ws)["template_id"] == "investment-thesis"


def test_template_load_over_edits_requires_confirmation_and_keeps_identity() -> None:
    store, ws = _store_with_workspace()
    store.set_field(ws, "context", "project", "Arbitrum")
    store.set_field(ws, "context", "gaps", "Sequencer decentralization")
    template = get_template("investment-thesis")

    with pytest.raises(ConfirmationRequiredError):
        store.load_template(ws, template)

    state = store.load_template(ws, template, confirm=True)
    assert state.text("context", "project") == "Arbitrum"
    # Non-identity fields are reset to the template baseline.
    assert state.get("context", "gaps") is None


def test_template_load_clears_previous_results() -> None:
    store, ws = _store_with_workspace()
    store.set_generated_prompt(ws, "## Brief\n")
    store.begin_analysis(ws)
    store.finish_analysis(ws, mode="deep", text="answer", citations=[])

    store.load_template(ws, get_template("investment-thesis"), confirm=True)

    workspace = store.get_workspace(ws)
    assert workspace["generated_prompt"] == ""
    assert workspace["response_text"] == ""


def test_clear_form_requires_confirmation_and_keeps_prompt() -> None:
    store, ws = _store_with_workspace()
    store.set_field(ws, "context", "project", "Aave")
    store.set_generated_prompt(ws, "## Brief: Aave\n")

    with pytest.raises(ConfirmationRequiredError):
        store.clear_form(ws)

    state = store.clear_form(ws, confirm=True)
    workspace = store.get_workspace(ws)
    assert state == initial_form_state()
    assert workspace["template_id"] is None
    assert workspace["generated_prompt"] == "## Brief: Aave\n"


def test_begin_analysis_needs_prompt_and_refuses_concurrent_runs() -> None:
    store, ws = _store_with_workspace()

    with pytest.raises(ValueError, match="generate the prompt"):
        store.begin_analysis(ws)

    store.set_generated_prompt(ws, "## Brief\n")
    assert store.begin_analysis(ws) == "## Brief\n"
    with pytest.raises(WorkspaceBusyError):
        store.begin_analysis(ws)


def test_failed_analysis_keeps_prior_results() -> None:
    store, ws = _store_with_workspace()
    store.set_generated_prompt(ws, "## Brief\n")
    store.begin_analysis(ws)
    store.finish_analysis(
        ws,
        mode="grounded",
        text="first answer",
        citations=[CitationRecord(url="https://a.example", title="A")],
    )

    store.begin_analysis(ws)
    store.fail_analysis(ws, "Claude API Error: overloaded")

    workspace = store.get_workspace(ws)
    assert workspace["busy"] is False
    assert workspace["error"] == "Claude API Error: overloaded"
    assert workspace["response_text"] == "first answer"
    assert workspace["citations"][0].url == "https://a.example"
    assert workspace["analysis_mode"] == "grounded"


def test_new_prompt_clears_previous_results() -> None:
    store, ws = _store_with_workspace()
    store.set_generated_prompt(ws, "## Brief\n")
    store.begin_analysis(ws)
    store.finish_analysis(ws, mode="deep", text="answer", citations=[], report_json={"a": 1})

    store.set_generated_prompt(ws, "## Brief v2\n")

    workspace = store.get_workspace(ws)
    assert workspace["generated_prompt"] == "## Brief v2\n"
    assert workspace["response_text"] == ""
    assert workspace["report_json"] is None


def test_load_saved_analysis_restores_prompt_and_results() -> None:
    store, ws = _store_with_workspace()
    record = SavedAnalysis(
        id="abc",
        title="Uniswap Analysis",
        created_at="2025-01-01T00:00:00+00:00",
        form_state={"context": {"project": "Uniswap"}},
        generated_prompt="## Brief: Uniswap\n",
        response_text="analysis text",
        citations=[CitationRecord(url="https://u.example")],
        analysis_mode="grounded",
    )

    store.load_saved_analysis(ws, record)

    workspace = store.get_workspace(ws)
    assert workspace["form_state"].text("context", "project") == "Uniswap"
    assert workspace["generated_prompt"] == "## Brief: Uniswap\n"
    assert workspace["response_text"] == "analysis text"
    assert workspace["analysis_mode"] == "grounded"


def test_load_saved_prompt_clears_stale_results() -> None:
    store, ws = _store_with_workspace()
    store.set_generated_prompt(ws, "## Old\n")
    store.begin_analysis(ws)
    store.finish_analysis(ws, mode="deep", text="old answer", citations=[])
    record = SavedAnalysis(
        id="p1",
        title="Untitled Prompt",
        created_at="2025-01-01T00:00:00+00:00",
        form_state={},
        generated_prompt="## New\n",
    )

    store.load_saved_analysis(ws, record)

    workspace = store.get_workspace(ws)
    assert workspace["response_text"] == ""
    assert workspace["analysis_mode"] is None


def test_audit_events_are_sanitized_and_recorded() -> None:
    store, ws = _store_with_workspace()
    log_event(store, ws, "FIELD_UPDATED", "context.project", "line one\n\nline   two" + "x" * 400)

    events = store.get_workspace(ws)["audit_events"]
    assert len(events) == 1
    assert events[0].code == "context.project"
    assert "\n" not in events[0].detail
    assert events[0].detail.startswith("line one line two")
    assert len(events[0].detail) <= 201


def test_cleanup_skips_busy_workspaces() -> None:
    store = InMemoryWorkspaceStore(ttl_seconds=0)
    idle = store.create_workspace()
    busy = store.create_workspace()
    store.set_generated_prompt(busy, "## Brief\n")
    store.begin_analysis(busy)
    time.sleep(0.01)

    assert store.cleanup_expired_workspaces() == 1
    with pytest.raises(KeyError):
        store.get_workspace(idle)
    assert store.get_workspace(busy)["busy"] is True
