from __future__ import annotations

"""
Typed form state shared by overlay, rendering, workspaces, and storage.

Design intent:
- Hold one tagged value per field so rendering never inspects raw JSON types.
- Validate declared fields against their declared type when converting raw input.
- Accept undeclared fields as-is, tagged by the shape of their raw value.
"""

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Union

from cryptobrief.form.schema import (
    GUARDRAIL_PRESET_FIELD_ID,
    GUARDRAILS_SECTION_ID,
    OPTIONS_FIELD_TYPES,
    TEXT_FIELD_TYPES,
    TOGGLE_FIELD_TYPES,
    FormField,
    get_field,
)


@dataclass(frozen=True)
class TextValue:
    text: str

    def is_empty(self) -> bool:
        return not self.text

    def to_raw(self) -> str:
        return self.text


@dataclass(frozen=True)
class OptionsValue:
    items: tuple[str, ...]

    def is_empty(self) -> bool:
        return not self.items

    def to_raw(self) -> list[str]:
        return list(self.items)


@dataclass(frozen=True)
class ToggleValue:
    enabled: bool

    def is_empty(self) -> bool:
        return not self.enabled

    def to_raw(self) -> bool:
        return self.enabled


FieldValue = Union[TextValue, OptionsValue, ToggleValue]


def coerce_value(field: FormField | None, raw: Any, *, path: str = "") -> FieldValue:
    """
    Convert one raw JSON value into a tagged field value.

    Declared fields must carry their declared shape; undeclared fields are
    tagged from the raw value itself.
    """

    label = path or (field.id if field is not None else "field")
    if isinstance(raw, (TextValue, OptionsValue, ToggleValue)):
        raw = raw.to_raw()

    if field is None:
        if isinstance(raw, bool):
            return ToggleValue(enabled=raw)
        if isinstance(raw, str):
            return TextValue(text=raw)
        if isinstance(raw, (list, tuple)):
            return OptionsValue(items=_string_items(raw, label))
        raise ValueError(f"Unsupported value for {label}: {type(raw).__name__}")

    if field.type in TEXT_FIELD_TYPES:
        if not isinstance(raw, str):
            raise ValueError(f"{label} expects a string value, got {type(raw).__name__}.")
        return TextValue(text=raw)
    if field.type in OPTIONS_FIELD_TYPES:
        if not isinstance(raw, (list, tuple)):
            raise ValueError(f"{label} expects a list of strings, got {type(raw).__name__}.")
        return OptionsValue(items=_string_items(raw, label))
    if field.type in TOGGLE_FIELD_TYPES:
        if not isinstance(raw, bool):
            raise ValueError(f"{label} expects a boolean value, got {type(raw).__name__}.")
        return ToggleValue(enabled=raw)
    raise ValueError(f"Unsupported field type for {label}: {field.type}")


def _string_items(raw: list[Any] | tuple[Any, ...], label: str) -> tuple[str, ...]:
    items: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise ValueError(f"{label} expects a list of strings, found {type(item).__name__}.")
        items.append(item)
    return tuple(items)


class FormState:
    """Immutable mapping of section id -> field id -> tagged value."""

    __slots__ = ("_sections",)

    def __init__(self, sections: Mapping[str, Mapping[str, FieldValue]] | None = None) -> None:
        self._sections: dict[str, dict[str, FieldValue]] = {
            section_id: dict(fields) for section_id, fields in (sections or {}).items()
        }

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | None) -> "FormState":
        sections: dict[str, dict[str, FieldValue]] = {}
        for section_id, fields in (raw or {}).items():
            if fields is None:
                continue
            if not isinstance(fields, Mapping):
                raise ValueError(f"Section {section_id} must be an object of field values.")
            converted: dict[str, FieldValue] = {}
            for field_id, value in fields.items():
                if value is None:
                    continue
                converted[str(field_id)] = coerce_value(
                    get_field(str(section_id), str(field_id)),
                    value,
                    path=f"{section_id}.{field_id}",
                )
            sections[str(section_id)] = converted
        return cls(sections)

    def to_raw(self) -> dict[str, dict[str, Any]]:
        return {
            section_id: {field_id: value.to_raw() for field_id, value in fields.items()}
            for section_id, fields in self._sections.items()
        }

    def section_ids(self) -> list[str]:
        return list(self._sections)

    def has_section(self, section_id: str) -> bool:
        return section_id in self._sections

    def section(self, section_id: str) -> dict[str, FieldValue]:
        return dict(self._sections.get(section_id, {}))

    def get(self, section_id: str, field_id: str) -> FieldValue | None:
        return self._sections.get(section_id, {}).get(field_id)

    def text(self, section_id: str, field_id: str) -> str:
        value = self.get(section_id, field_id)
        if isinstance(value, TextValue):
            return value.text
        return ""

    def is_filled(self, section_id: str, field_id: str) -> bool:
        value = self.get(section_id, field_id)
        return value is not None and not value.is_empty()

    def with_field(self, section_id: str, field_id: str, value: FieldValue) -> "FormState":
        sections = {key: dict(fields) for key, fields in self._sections.items()}
        sections.setdefault(section_id, {})[field_id] = value
        return FormState(sections)

    def __iter__(self) -> Iterator[str]:
        return iter(self._sections)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FormState):
            return NotImplemented
        return self._sections == other._sections

    def __repr__(self) -> str:
        return f"FormState({self.to_raw()!r})"


def initial_form_state() -> FormState:
    return FormState({GUARDRAILS_SECTION_ID: {GUARDRAIL_PRESET_FIELD_ID: TextValue(text="custom")}})


def is_pristine(state: FormState) -> bool:
    return state == initial_form_state()
