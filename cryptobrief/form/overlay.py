from __future__ import annotations

"""
Template overlay: merge a partial form state onto a base state.

Design intent:
- Template values win per field; untouched base fields and sections survive.
- Identity fields the user already typed survive template switches.
- Inputs are never mutated; the result depends only on the inputs.
"""

from typing import Mapping, Sequence

from cryptobrief.form.state import FieldValue, FormState


# section id -> field ids kept from the pre-overlay working state when non-empty
IDENTITY_FIELDS: dict[str, tuple[str, ...]] = {
    "context": ("project", "ticker", "chain"),
}


def overlay_state(
    base: FormState,
    overlay: FormState,
    *,
    working: FormState | None = None,
    preserved_fields: Mapping[str, Sequence[str]] | None = None,
) -> FormState:
    merged: dict[str, dict[str, FieldValue]] = {
        section_id: base.section(section_id) for section_id in base.section_ids()
    }
    for section_id in overlay.section_ids():
        target = merged.setdefault(section_id, {})
        target.update(overlay.section(section_id))

    if working is not None:
        rules = IDENTITY_FIELDS if preserved_fields is None else preserved_fields
        for section_id, field_ids in rules.items():
            for field_id in field_ids:
                current = working.get(section_id, field_id)
                if current is None or current.is_empty():
                    continue
                merged.setdefault(section_id, {})[field_id] = current

    return FormState(merged)
