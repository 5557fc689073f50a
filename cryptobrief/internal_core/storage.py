from __future__ import annotations

"""
Saved-analysis persistence over a JSON-file key-value store.

Design intent:
- Mirror browser local storage: one key holds the whole serialized list.
- Never let a corrupt key block the app; discard it and start fresh.
- Refuse writes above the quota and keep the previous file contents.
"""

import datetime as _dt
import json
import logging
import os
import tempfile
import uuid
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .contracts import AnalysisMode, CitationRecord, SaveType, SavedAnalysis

logger = logging.getLogger(__name__)


def _safe_unlink(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        pass


class PersistenceError(RuntimeError):
    """Raised when the saved-analysis store cannot be read or written."""


class StorageQuotaExceededError(PersistenceError):
    """Raised when a write would grow the store beyond its byte quota."""


class JsonFileKeyValueStore:
    def __init__(self, path: Path, max_bytes: int):
        self._path = Path(path)
        self._max_bytes = int(max_bytes)
        self._lock = RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Could not read storage file {self._path}: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.error("storage file is not valid JSON; starting empty path=%s", self._path)
            return {}
        if not isinstance(data, dict):
            logger.error("storage file is not a JSON object; starting empty path=%s", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: Dict[str, str]) -> None:
        payload = json.dumps(data, ensure_ascii=False)
        size = len(payload.encode("utf-8"))
        if size > self._max_bytes:
            raise StorageQuotaExceededError(
                "Could not save the analysis. Storage is full "
                f"({size} bytes exceeds quota of {self._max_bytes} bytes)."
            )
        tmp_name: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                _safe_unlink(Path(tmp_name))
            raise PersistenceError(f"Could not write storage file {self._path}: {exc}") from exc

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key not in data:
                return
            data.pop(key)
            self._write_all(data)


def _created_at_sort_key(record: SavedAnalysis) -> float:
    stamp = _dt.datetime.fromisoformat(record.created_at.replace("Z", "+00:00"))
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=_dt.timezone.utc)
    return stamp.timestamp()


class SavedAnalysisRepository:
    def __init__(self, store: JsonFileKeyValueStore, namespace: str):
        self._store = store
        self._namespace = namespace
        self._lock = RLock()

    def list_all(self) -> List[SavedAnalysis]:
        with self._lock:
            raw = self._store.get_item(self._namespace)
            if raw is None:
                return []
            try:
                items = json.loads(raw)
                if not isinstance(items, list):
                    raise ValueError("saved analyses must be a JSON array")
                records = [SavedAnalysis.model_validate(item) for item in items]
                return sorted(records, key=_created_at_sort_key, reverse=True)
            except (ValueError, ValidationError) as exc:
                logger.error(
                    "failed to parse saved analyses; clearing key=%s error=%s",
                    self._namespace,
                    exc,
                )
                self._store.remove_item(self._namespace)
                return []

    def append(self, record: SavedAnalysis) -> None:
        with self._lock:
            records = [record] + self.list_all()
            self._write(records)

    def get(self, analysis_id: str) -> SavedAnalysis:
        for record in self.list_all():
            if record.id == analysis_id:
                return record
        raise KeyError(f"Unknown analysis_id: {analysis_id}")

    def delete(self, analysis_id: str) -> bool:
        with self._lock:
            records = self.list_all()
            kept = [record for record in records if record.id != analysis_id]
            if len(kept) == len(records):
                return False
            self._write(kept)
            return True

    def _write(self, records: List[SavedAnalysis]) -> None:
        payload = json.dumps([record.model_dump(mode="json") for record in records], ensure_ascii=False)
        self._store.set_item(self._namespace, payload)


def build_saved_analysis(
    *,
    save_type: SaveType,
    form_state: Dict[str, Dict[str, Any]],
    generated_prompt: str,
    response_text: Optional[str] = None,
    citations: Optional[List[CitationRecord]] = None,
    analysis_mode: Optional[AnalysisMode] = None,
) -> SavedAnalysis:
    if not generated_prompt:
        raise ValueError("You must generate a prompt before saving.")
    if save_type == "analysis" and not response_text:
        raise ValueError("No analysis results to save. Run the analysis first.")

    context = form_state.get("context") or {}
    project = context.get("project") if isinstance(context.get("project"), str) else ""
    type_label = "Prompt" if save_type == "prompt" else "Analysis"

    fields: Dict[str, Any] = {}
    if save_type == "analysis":
        fields = {
            "response_text": response_text,
            "citations": list(citations or []),
            "analysis_mode": analysis_mode,
        }
    return SavedAnalysis(
        id=uuid.uuid4().hex,
        title=f"{project or 'Untitled'} {type_label}",
        created_at=_dt.datetime.now(_dt.timezone.utc).isoformat(),
        form_state=form_state,
        generated_prompt=generated_prompt,
        **fields,
    )
