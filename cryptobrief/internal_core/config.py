from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _project_root() -> Path:
    # cryptobrief/internal_core/config.py -> cryptobrief -> repo root
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_first(names: list[str], default: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value is not None and value != "":
            return value
    return default


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _resolve_debug_log_path(raw: str) -> Optional[str]:
    raw = (raw or "").strip()
    if not raw:
        return None
    if raw.lower() in {"1", "true", "on", "yes"}:
        return "/tmp/cryptobrief_llm_raw.log"
    return raw


@dataclass(frozen=True)
class AppConfig:
    CRYPTOBRIEF_LLM_PROVIDER: str
    GEMINI_API_KEY: str
    ANTHROPIC_API_KEY: str
    GEMINI_DEEP_MODEL: str
    GEMINI_DEEP_THINKING_BUDGET: int
    GEMINI_DEEP_MAX_OUTPUT_TOKENS: int
    GEMINI_GROUNDED_MODEL: str
    GEMINI_CHAT_MODEL: str
    CLAUDE_DEEP_MODEL: str
    CLAUDE_DEEP_MAX_TOKENS: int
    CLAUDE_DEEP_THINKING_BUDGET: int
    CLAUDE_GROUNDED_MODEL: str
    CLAUDE_GROUNDED_MAX_TOKENS: int
    CLAUDE_CHAT_MODEL: str
    CLAUDE_CHAT_MAX_TOKENS: int
    CRYPTOBRIEF_STORAGE_PATH: str
    CRYPTOBRIEF_STORAGE_NAMESPACE: str
    CRYPTOBRIEF_STORAGE_MAX_BYTES: int
    CRYPTOBRIEF_WORKSPACE_TTL_SECONDS: int
    CRYPTOBRIEF_CHAT_TTL_SECONDS: int
    CRYPTOBRIEF_CHAT_CONTEXT_CHARS: int
    CRYPTOBRIEF_TEMPLATE_DIR: str
    CRYPTOBRIEF_LOG_LEVEL: str
    CRYPTOBRIEF_LLM_DEBUG_LOG: Optional[str]

    def storage_path(self, repo_root: Optional[Path] = None) -> Path:
        path = Path(self.CRYPTOBRIEF_STORAGE_PATH).expanduser()
        if path.is_absolute():
            return path
        return ((repo_root or _project_root()) / path).resolve()


def load_config() -> AppConfig:
    return AppConfig(
        CRYPTOBRIEF_LLM_PROVIDER=_getenv_str("CRYPTOBRIEF_LLM_PROVIDER", "gemini").strip().lower(),
        GEMINI_API_KEY=_getenv_first(["GEMINI_API_KEY", "API_KEY"], ""),
        ANTHROPIC_API_KEY=_getenv_str("ANTHROPIC_API_KEY", ""),
        GEMINI_DEEP_MODEL=_getenv_str("CRYPTOBRIEF_GEMINI_DEEP_MODEL", "gemini-3-pro-preview"),
        GEMINI_DEEP_THINKING_BUDGET=_getenv_int("CRYPTOBRIEF_GEMINI_DEEP_THINKING_BUDGET", 16000),
        GEMINI_DEEP_MAX_OUTPUT_TOKENS=_getenv_int("CRYPTOBRIEF_GEMINI_DEEP_MAX_OUTPUT_TOKENS", 65536),
        GEMINI_GROUNDED_MODEL=_getenv_str("CRYPTOBRIEF_GEMINI_GROUNDED_MODEL", "gemini-2.5-flash"),
        GEMINI_CHAT_MODEL=_getenv_str("CRYPTOBRIEF_GEMINI_CHAT_MODEL", "gemini-2.5-flash"),
        CLAUDE_DEEP_MODEL=_getenv_str("CRYPTOBRIEF_CLAUDE_DEEP_MODEL", "claude-opus-4-20250514"),
        CLAUDE_DEEP_MAX_TOKENS=_getenv_int("CRYPTOBRIEF_CLAUDE_DEEP_MAX_TOKENS", 16000),
        CLAUDE_DEEP_THINKING_BUDGET=_getenv_int("CRYPTOBRIEF_CLAUDE_DEEP_THINKING_BUDGET", 10000),
        CLAUDE_GROUNDED_MODEL=_getenv_str("CRYPTOBRIEF_CLAUDE_GROUNDED_MODEL", "claude-sonnet-4-20250514"),
        CLAUDE_GROUNDED_MAX_TOKENS=_getenv_int("CRYPTOBRIEF_CLAUDE_GROUNDED_MAX_TOKENS", 8000),
        CLAUDE_CHAT_MODEL=_getenv_str("CRYPTOBRIEF_CLAUDE_CHAT_MODEL", "claude-sonnet-4-20250514"),
        CLAUDE_CHAT_MAX_TOKENS=_getenv_int("CRYPTOBRIEF_CLAUDE_CHAT_MAX_TOKENS", 4096),
        CRYPTOBRIEF_STORAGE_PATH=_getenv_str("CRYPTOBRIEF_STORAGE_PATH", "./tmp/saved_analyses.json"),
        CRYPTOBRIEF_STORAGE_NAMESPACE=_getenv_str(
            "CRYPTOBRIEF_STORAGE_NAMESPACE", "cryptoAnalysisApp_savedAnalyses"
        ),
        # Browser localStorage quota is roughly 5 MB per origin.
        CRYPTOBRIEF_STORAGE_MAX_BYTES=_getenv_int("CRYPTOBRIEF_STORAGE_MAX_BYTES", 5 * 1024 * 1024),
        CRYPTOBRIEF_WORKSPACE_TTL_SECONDS=_getenv_int("CRYPTOBRIEF_WORKSPACE_TTL_SECONDS", 14400),
        CRYPTOBRIEF_CHAT_TTL_SECONDS=_getenv_int("CRYPTOBRIEF_CHAT_TTL_SECONDS", 14400),
        CRYPTOBRIEF_CHAT_CONTEXT_CHARS=_getenv_int("CRYPTOBRIEF_CHAT_CONTEXT_CHARS", 5000),
        CRYPTOBRIEF_TEMPLATE_DIR=_getenv_str("CRYPTOBRIEF_TEMPLATE_DIR", ""),
        CRYPTOBRIEF_LOG_LEVEL=_getenv_str("CRYPTOBRIEF_LOG_LEVEL", "INFO"),
        CRYPTOBRIEF_LLM_DEBUG_LOG=_resolve_debug_log_path(_getenv_str("CRYPTOBRIEF_LLM_DEBUG_LOG", "")),
    )
