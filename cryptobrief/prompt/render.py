from __future__ import annotations

"""
Render a research form state into a markdown prompt.

Design intent:
- Emit sections in declared catalogue order; skip sections with no content.
- Switch the guardrails section to fixed policy text when a preset is chosen.
- Stay a pure function of its inputs so repeated renders are identical.
"""

from typing import TYPE_CHECKING, Sequence

from cryptobrief.form.schema import (
    GUARDRAIL_PRESET_FIELD_ID,
    GUARDRAILS_SECTION_ID,
    PROVENANCE_FIELD_ID,
    SECTIONS,
    FormField,
    FormSection,
)
from cryptobrief.form.state import FieldValue, FormState, OptionsValue, TextValue, ToggleValue
from cryptobrief.prompt.freshness import normalize_freshness
from cryptobrief.prompt.guardrails import PROVENANCE_TABLE_BLOCK, preset_block

if TYPE_CHECKING:
    from cryptobrief.form.templates import ResearchTemplate


DEFAULT_TITLE = "## Comprehensive Crypto Research Brief"
_GUARDRAIL_LISTING_EXCLUDED = {GUARDRAIL_PRESET_FIELD_ID, PROVENANCE_FIELD_ID}


def render_prompt(
    state: FormState,
    *,
    sections: Sequence[FormSection] = SECTIONS,
    template: "ResearchTemplate | None" = None,
) -> str:
    parts: list[str] = [build_title(state, template=template), "\n\n"]
    for section in sections:
        if not state.has_section(section.id):
            continue
        if section.id == GUARDRAILS_SECTION_ID:
            parts.append(_render_guardrails_section(section, state))
        else:
            parts.append(_render_default_section(section, state))
    return "".join(parts).rstrip() + "\n"


def build_title(state: FormState, *, template: "ResearchTemplate | None" = None) -> str:
    project = state.text("context", "project")
    if template is not None:
        title = f"## Research Brief: {template.name}"
        if project:
            title += f" - {project}"
        return title
    if project:
        return f"## Crypto Research Brief: {project}"
    return DEFAULT_TITLE


def format_field_line(field: FormField, value: FieldValue | None) -> str | None:
    if value is None or value.is_empty():
        return None
    if isinstance(value, OptionsValue):
        rendered = ", ".join(value.items)
    elif isinstance(value, ToggleValue):
        rendered = "Enabled"
    elif isinstance(value, TextValue):
        rendered = normalize_freshness(value.text) if field.is_freshness else value.text
    else:
        raise TypeError(f"Unsupported field value: {value!r}")
    return f"*   **{field.label}:** {rendered}"


def _section_header(section: FormSection) -> str:
    return f"### {section.title}\n\n"


def _field_lines(
    section: FormSection,
    state: FormState,
    *,
    excluded: set[str] | None = None,
) -> list[str]:
    lines: list[str] = []
    for field in section.fields:
        if excluded and field.id in excluded:
            continue
        line = format_field_line(field, state.get(section.id, field.id))
        if line is not None:
            lines.append(line)
    return lines


def _render_default_section(section: FormSection, state: FormState) -> str:
    lines = _field_lines(section, state)
    if not lines:
        return ""
    return _section_header(section) + "\n".join(lines) + "\n\n"


def _render_guardrails_section(section: FormSection, state: FormState) -> str:
    out = ""
    block = preset_block(state.text(section.id, GUARDRAIL_PRESET_FIELD_ID))
    if block is not None:
        out = _section_header(section) + block
    else:
        lines = _field_lines(section, state, excluded=_GUARDRAIL_LISTING_EXCLUDED)
        if lines:
            out = _section_header(section) + "\n".join(lines) + "\n\n"

    if state.is_filled(section.id, PROVENANCE_FIELD_ID):
        if not out:
            out = _section_header(section)
        out += PROVENANCE_TABLE_BLOCK
    return out
