from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

SUPPORTED_PROVIDERS: tuple[str, ...] = ("gemini", "claude")
SUPPORTED_MODES: tuple[str, ...] = ("deep", "grounded")


class LLMError(RuntimeError):
    """Base class for hosted-LLM failures."""


class LLMConfigurationError(LLMError):
    """Raised when a provider credential or setting is missing."""


class LLMProviderError(LLMError):
    """Raised when the provider rejects a request or returns nothing usable."""


@dataclass(frozen=True)
class Citation:
    url: str
    title: str = ""


@dataclass(frozen=True)
class AnalysisResult:
    text: str
    citations: tuple[Citation, ...] = ()
    provider: str = ""
    model: str = ""


def append_debug_log(path: str | None, *, stage: str, raw: str, metadata: dict[str, Any] | None = None) -> None:
    if not path:
        return
    try:
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat()
        meta = json.dumps(metadata or {}, ensure_ascii=True)
        payload = (
            f"[{stamp}] stage={stage} meta={meta}\n"
            "-----BEGIN LLM RAW-----\n"
            f"{raw}\n"
            "-----END LLM RAW-----\n"
        )
        with target.open("a", encoding="utf-8") as f:
            f.write(payload)
    except Exception:
        # Debug logging must never break an analysis or chat turn.
        return
