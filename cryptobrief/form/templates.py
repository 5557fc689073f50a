from __future__ import annotations

"""
Research template registry backed by JSON documents.

Design intent:
- Keep templates as editable data files, one document per template.
- Validate template field values against the form catalogue on load.
- Treat loaded templates as immutable overlay inputs.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path

from cryptobrief.form.state import FormState
from cryptobrief.internal_core.config import load_config


@dataclass(frozen=True)
class ResearchTemplate:
    id: str
    name: str
    description: str
    data: FormState
    path: Path


class UnknownTemplateError(ValueError):
    """Raised when a template id is not present in the registry."""


def list_templates() -> list[ResearchTemplate]:
    return list(_load_template_registry().values())


def get_template(template_id: str) -> ResearchTemplate:
    normalized = str(template_id or "").strip()
    registry = _load_template_registry()
    template = registry.get(normalized)
    if template is None:
        raise UnknownTemplateError(f"Unknown template_id: {normalized!r}")
    return template


def _template_root() -> Path:
    override = load_config().CRYPTOBRIEF_TEMPLATE_DIR.strip()
    if override:
        return Path(override).expanduser()
    return Path(__file__).resolve().parent / "templates"


def _load_template_registry() -> dict[str, ResearchTemplate]:
    root = _template_root()
    if not root.exists():
        raise ValueError(f"Template directory not found: {root}")
    if not root.is_dir():
        raise ValueError(f"Template path is not a directory: {root}")

    loaded: list[ResearchTemplate] = []
    for template_file in sorted(root.glob("*.json")):
        loaded.append(_load_template_from_file(template_file))

    registry: dict[str, ResearchTemplate] = {}
    for template in sorted(loaded, key=lambda item: (_catalog_order(item.path), item.id)):
        if template.id in registry:
            raise ValueError(f"Duplicate template_id '{template.id}' in {root}.")
        registry[template.id] = template
    return registry


def _catalog_order(path: Path) -> int:
    # Files may carry a numeric prefix ("03_new-listing-dd.json") to pin display order.
    prefix = path.stem.split("_", 1)[0]
    return int(prefix) if prefix.isdigit() else 10_000


def _load_template_from_file(path: Path) -> ResearchTemplate:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Template file is not valid JSON: {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise ValueError(f"Template file must contain a JSON object: {path}")

    stem = path.stem.split("_", 1)[1] if _catalog_order(path) < 10_000 else path.stem
    template_id = str(document.get("id") or stem).strip()
    name = str(document.get("name", "")).strip()
    description = str(document.get("description", "")).strip()
    if not template_id:
        raise ValueError(f"Template id is missing: {path}")
    if not name:
        raise ValueError(f"Template name is missing: {path}")

    raw_data = document.get("data") or {}
    if not isinstance(raw_data, dict):
        raise ValueError(f"Template data must be an object: {path}")
    try:
        data = FormState.from_raw(raw_data)
    except ValueError as exc:
        raise ValueError(f"Invalid template data in {path}: {exc}") from exc

    return ResearchTemplate(
        id=template_id,
        name=name,
        description=description,
        data=data,
        path=path,
    )
