from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AnalysisMode = Literal["deep", "grounded"]
LLMProvider = Literal["gemini", "claude"]
SaveType = Literal["prompt", "analysis"]


class CitationRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str
    title: str = ""


class SavedAnalysis(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    title: str
    created_at: str
    form_state: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    generated_prompt: str
    response_text: Optional[str] = None
    citations: List[CitationRecord] = Field(default_factory=list)
    analysis_mode: Optional[AnalysisMode] = None


AuditEventType = Literal[
    "WORKSPACE_CREATED",
    "FIELD_UPDATED",
    "TEMPLATE_LOADED",
    "FORM_CLEARED",
    "PROMPT_GENERATED",
    "ANALYSIS_STARTED",
    "ANALYSIS_DONE",
    "ANALYSIS_FAILED",
    "SAVED",
    "LOADED",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    workspace_id: str
    type: AuditEventType
    code: str
    detail: str
    duration_ms: Optional[int] = None


class ChatTurn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["user", "model"]
    text: str
