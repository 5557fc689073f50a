from __future__ import annotations

"""
HTTP surface for the crypto research brief service.

Design intent:
- Keep API orchestration thin and typed.
- Delegate form, prompt, LLM, and storage logic to their modules.
- Map domain failures to predictable status codes at this boundary only.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from cryptobrief.form.schema import SECTIONS
from cryptobrief.form.state import FormState
from cryptobrief.form.templates import UnknownTemplateError, get_template, list_templates
from cryptobrief.internal_core.audit import log_event
from cryptobrief.internal_core.config import AppConfig, load_config
from cryptobrief.internal_core.contracts import AuditEvent, ChatTurn, CitationRecord, SavedAnalysis
from cryptobrief.internal_core.storage import (
    JsonFileKeyValueStore,
    PersistenceError,
    SavedAnalysisRepository,
    StorageQuotaExceededError,
    build_saved_analysis,
)
from cryptobrief.internal_core.workspace_store import (
    ConfirmationRequiredError,
    InMemoryWorkspaceStore,
    WorkspaceBusyError,
)
from cryptobrief.llm.base import LLMConfigurationError, LLMProviderError
from cryptobrief.llm.chat import ChatSession, ChatSessionBusyError, ChatSessionClosedError
from cryptobrief.llm.router import require_credentials, run_analysis
from cryptobrief.prompt.render import build_title, render_prompt
from cryptobrief.report.extract import extract_json_payload


class FieldOptionInfo(BaseModel):
    value: str
    label: str


class FormFieldInfo(BaseModel):
    id: str
    label: str
    type: str
    placeholder: str = ""
    description: str = ""
    options: list[FieldOptionInfo] = Field(default_factory=list)


class FormSectionInfo(BaseModel):
    id: str
    title: str
    description: str = ""
    fields: list[FormFieldInfo] = Field(default_factory=list)


class FormSectionsResponse(BaseModel):
    sections: list[FormSectionInfo]


class TemplateInfo(BaseModel):
    id: str
    name: str
    description: str


class TemplatesResponse(BaseModel):
    templates: list[TemplateInfo]


class TemplateDetailResponse(TemplateInfo):
    data: dict[str, dict[str, Any]] = Field(default_factory=dict)


class PromptRenderRequest(BaseModel):
    form_state: dict[str, dict[str, Any]] = Field(default_factory=dict)
    template_id: str | None = None


class PromptRenderResponse(BaseModel):
    title: str
    prompt: str
    debug: dict[str, Any] = Field(default_factory=dict)


class WorkspaceResponse(BaseModel):
    workspace_id: str
    created_at: str
    updated_at: str
    expires_at: str
    form_state: dict[str, dict[str, Any]] = Field(default_factory=dict)
    template_id: str | None = None
    generated_prompt: str = ""
    response_text: str = ""
    citations: list[CitationRecord] = Field(default_factory=list)
    analysis_mode: Literal["deep", "grounded"] | None = None
    report_json: Any = None
    error: str | None = None
    busy: bool = False
    audit_events: list[AuditEvent] = Field(default_factory=list)


class FieldUpdateRequest(BaseModel):
    value: Any


class TemplateLoadRequest(BaseModel):
    template_id: str = Field(min_length=1, max_length=128)
    confirm: bool = False


class WorkspaceClearRequest(BaseModel):
    confirm: bool = False


class AnalysisRequest(BaseModel):
    mode: Literal["deep", "grounded"]
    provider: Literal["gemini", "claude"] | None = None


class SaveRequest(BaseModel):
    save_type: Literal["prompt", "analysis"]


class SaveResponse(BaseModel):
    analysis: SavedAnalysis
    workspace: WorkspaceResponse


class SavedAnalysesResponse(BaseModel):
    analyses: list[SavedAnalysis] = Field(default_factory=list)


class ChatSessionCreateRequest(BaseModel):
    provider: Literal["gemini", "claude"] | None = None
    workspace_id: str | None = None
    prompt: str = ""
    response: str = ""


class ChatSessionResponse(BaseModel):
    session_id: str
    provider: str
    has_context: bool
    in_flight: bool
    messages: list[ChatTurn] = Field(default_factory=list)


class ChatMessageRequest(BaseModel):
    message: str = Field(min_length=1, max_length=20000)


app = FastAPI(title="cryptobrief research service")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> AppConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, AppConfig):
        return existing
    created = load_config()
    logging.getLogger("cryptobrief").setLevel(created.CRYPTOBRIEF_LOG_LEVEL.upper())
    setattr(app.state, "config", created)
    return created


def _get_workspace_store() -> InMemoryWorkspaceStore:
    existing = getattr(app.state, "workspace_store", None)
    if isinstance(existing, InMemoryWorkspaceStore):
        return existing
    created = InMemoryWorkspaceStore(ttl_seconds=_get_config().CRYPTOBRIEF_WORKSPACE_TTL_SECONDS)
    setattr(app.state, "workspace_store", created)
    return created


def _get_saved_analysis_repository() -> SavedAnalysisRepository:
    existing = getattr(app.state, "saved_analysis_repository", None)
    if isinstance(existing, SavedAnalysisRepository):
        return existing
    config = _get_config()
    created = SavedAnalysisRepository(
        JsonFileKeyValueStore(config.storage_path(), config.CRYPTOBRIEF_STORAGE_MAX_BYTES),
        config.CRYPTOBRIEF_STORAGE_NAMESPACE,
    )
    setattr(app.state, "saved_analysis_repository", created)
    return created


def _get_chat_session_store() -> dict[str, ChatSession]:
    existing = getattr(app.state, "chat_sessions", None)
    if isinstance(existing, dict):
        return existing
    created: dict[str, ChatSession] = {}
    setattr(app.state, "chat_sessions", created)
    return created


def _get_chat_session_lock() -> threading.Lock:
    existing = getattr(app.state, "chat_session_lock", None)
    if isinstance(existing, type(threading.Lock())):
        return existing
    created = threading.Lock()
    setattr(app.state, "chat_session_lock", created)
    return created


def _ts_to_iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _serialize_workspace(snapshot: dict[str, Any]) -> WorkspaceResponse:
    return WorkspaceResponse(
        workspace_id=snapshot["workspace_id"],
        created_at=_ts_to_iso(snapshot["created_at"]),
        updated_at=_ts_to_iso(snapshot["updated_at"]),
        expires_at=_ts_to_iso(snapshot["expires_at"]),
        form_state=snapshot["form_state"].to_raw(),
        template_id=snapshot["template_id"],
        generated_prompt=snapshot["generated_prompt"],
        response_text=snapshot["response_text"],
        citations=snapshot["citations"],
        analysis_mode=snapshot["analysis_mode"],
        report_json=snapshot["report_json"],
        error=snapshot["error"],
        busy=snapshot["busy"],
        audit_events=snapshot["audit_events"],
    )


def _require_workspace(workspace_id: str) -> dict[str, Any]:
    try:
        return _get_workspace_store().get_workspace(workspace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc


def _serialize_chat_session(session: ChatSession) -> ChatSessionResponse:
    return ChatSessionResponse(
        session_id=session.session_id,
        provider=session.provider,
        has_context=session.has_context,
        in_flight=session.in_flight,
        messages=session.messages,
    )


def _require_chat_session(session_id: str) -> ChatSession:
    with _get_chat_session_lock():
        session = _get_chat_session_store().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Chat session not found: {session_id}")
    return session


def _cleanup_expired_chat_sessions() -> int:
    now = time.time()
    with _get_chat_session_lock():
        store = _get_chat_session_store()
        expired = [session_id for session_id, session in store.items() if session.is_expired(now)]
        for session_id in expired:
            store.pop(session_id).close()
    return len(expired)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/form/sections", response_model=FormSectionsResponse)
async def form_sections() -> FormSectionsResponse:
    return FormSectionsResponse(
        sections=[
            FormSectionInfo(
                id=section.id,
                title=section.title,
                description=section.description,
                fields=[
                    FormFieldInfo(
                        id=field.id,
                        label=field.label,
                        type=field.type,
                        placeholder=field.placeholder,
                        description=field.description,
                        options=[FieldOptionInfo(value=opt.value, label=opt.label) for opt in field.options],
                    )
                    for field in section.fields
                ],
            )
            for section in SECTIONS
        ]
    )


@app.get("/templates", response_model=TemplatesResponse)
async def templates_index() -> TemplatesResponse:
    try:
        catalog = list_templates()
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return TemplatesResponse(
        templates=[TemplateInfo(id=item.id, name=item.name, description=item.description) for item in catalog]
    )


@app.get("/templates/{template_id}", response_model=TemplateDetailResponse)
async def template_detail(template_id: str) -> TemplateDetailResponse:
    try:
        template = get_template(template_id)
    except UnknownTemplateError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return TemplateDetailResponse(
        id=template.id,
        name=template.name,
        description=template.description,
        data=template.data.to_raw(),
    )


@app.post("/prompt/render", response_model=PromptRenderResponse)
async def prompt_render(payload: PromptRenderRequest) -> PromptRenderResponse:
    try:
        state = FormState.from_raw(payload.form_state)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    template = None
    if payload.template_id:
        try:
            template = get_template(payload.template_id)
        except UnknownTemplateError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    prompt = render_prompt(state, template=template)
    return PromptRenderResponse(
        title=build_title(state, template=template),
        prompt=prompt,
        debug={
            "section_count": len(state.section_ids()),
            "template_id": template.id if template is not None else None,
            "chars": len(prompt),
        },
    )


@app.post("/workspaces", response_model=WorkspaceResponse)
async def workspace_create() -> WorkspaceResponse:
    store = _get_workspace_store()
    expired = store.cleanup_expired_workspaces()
    if expired:
        logger.info("expired workspaces removed count=%d", expired)
    workspace_id = store.create_workspace()
    log_event(store, workspace_id, "WORKSPACE_CREATED", "created", "")
    return _serialize_workspace(store.get_workspace(workspace_id))


@app.get("/workspaces/{workspace_id}", response_model=WorkspaceResponse)
async def workspace_get(workspace_id: str) -> WorkspaceResponse:
    return _serialize_workspace(_require_workspace(workspace_id))


@app.delete("/workspaces/{workspace_id}")
async def workspace_delete(workspace_id: str) -> dict[str, str]:
    if not _get_workspace_store().destroy_workspace(workspace_id, reason="api_delete"):
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}")
    return {"status": "deleted", "workspace_id": workspace_id}


@app.put("/workspaces/{workspace_id}/fields/{section_id}/{field_id}", response_model=WorkspaceResponse)
async def workspace_set_field(
    workspace_id: str,
    section_id: str,
    field_id: str,
    payload: FieldUpdateRequest,
) -> WorkspaceResponse:
    store = _get_workspace_store()
    _require_workspace(workspace_id)
    try:
        store.set_field(workspace_id, section_id, field_id, payload.value)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    log_event(store, workspace_id, "FIELD_UPDATED", "field_updated", f"{section_id}.{field_id}")
    return _serialize_workspace(store.get_workspace(workspace_id))


@app.post("/workspaces/{workspace_id}/template", response_model=WorkspaceResponse)
async def workspace_load_template(workspace_id: str, payload: TemplateLoadRequest) -> WorkspaceResponse:
    store = _get_workspace_store()
    _require_workspace(workspace_id)
    try:
        template = get_template(payload.template_id)
    except UnknownTemplateError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    try:
        store.load_template(workspace_id, template, confirm=payload.confirm)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc
    except ConfirmationRequiredError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    log_event(store, workspace_id, "TEMPLATE_LOADED", "template_loaded", template.id)
    return _serialize_workspace(store.get_workspace(workspace_id))


@app.post("/workspaces/{workspace_id}/clear", response_model=WorkspaceResponse)
async def workspace_clear(workspace_id: str, payload: WorkspaceClearRequest | None = None) -> WorkspaceResponse:
    store = _get_workspace_store()
    confirm = bool(payload.confirm) if payload is not None else False
    try:
        store.clear_form(workspace_id, confirm=confirm)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc
    except ConfirmationRequiredError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    log_event(store, workspace_id, "FORM_CLEARED", "form_cleared", "")
    return _serialize_workspace(store.get_workspace(workspace_id))


@app.post("/workspaces/{workspace_id}/prompt", response_model=WorkspaceResponse)
async def workspace_generate_prompt(workspace_id: str) -> WorkspaceResponse:
    store = _get_workspace_store()
    snapshot = _require_workspace(workspace_id)

    template = None
    if snapshot["template_id"]:
        try:
            template = get_template(snapshot["template_id"])
        except UnknownTemplateError:
            logger.warning(
                "active template missing; rendering without it workspace_id=%s template_id=%s",
                workspace_id,
                snapshot["template_id"],
            )

    prompt = render_prompt(snapshot["form_state"], template=template)
    try:
        store.set_generated_prompt(workspace_id, prompt)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc
    log_event(store, workspace_id, "PROMPT_GENERATED", "prompt_generated", f"chars={len(prompt)}")
    return _serialize_workspace(store.get_workspace(workspace_id))


@app.post("/workspaces/{workspace_id}/analysis", response_model=WorkspaceResponse)
async def workspace_run_analysis(workspace_id: str, payload: AnalysisRequest) -> WorkspaceResponse:
    store = _get_workspace_store()
    config = _get_config()
    try:
        prompt = store.begin_analysis(workspace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc
    except WorkspaceBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    provider = payload.provider or config.CRYPTOBRIEF_LLM_PROVIDER
    detail = f"provider={provider} mode={payload.mode}"
    log_event(store, workspace_id, "ANALYSIS_STARTED", "analysis_started", detail)

    started = time.perf_counter()
    try:
        result = await run_analysis(prompt, mode=payload.mode, provider=provider, config=config)
    except LLMConfigurationError as exc:
        store.fail_analysis(workspace_id, str(exc))
        log_event(store, workspace_id, "ANALYSIS_FAILED", "llm_not_configured", str(exc))
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except LLMProviderError as exc:
        store.fail_analysis(workspace_id, str(exc))
        log_event(store, workspace_id, "ANALYSIS_FAILED", "llm_provider_error", str(exc))
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ValueError as exc:
        store.fail_analysis(workspace_id, str(exc))
        log_event(store, workspace_id, "ANALYSIS_FAILED", "invalid_request", str(exc))
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        store.fail_analysis(workspace_id, str(exc) or "An unknown error occurred.")
        log_event(store, workspace_id, "ANALYSIS_FAILED", "unexpected_error", type(exc).__name__)
        raise
    duration_ms = int((time.perf_counter() - started) * 1000)

    try:
        store.finish_analysis(
            workspace_id,
            mode=payload.mode,
            text=result.text,
            citations=[CitationRecord(url=item.url, title=item.title) for item in result.citations],
            report_json=extract_json_payload(result.text),
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc
    log_event(
        store,
        workspace_id,
        "ANALYSIS_DONE",
        "analysis_done",
        f"provider={result.provider} model={result.model} mode={payload.mode} citations={len(result.citations)}",
        duration_ms=duration_ms,
    )
    return _serialize_workspace(store.get_workspace(workspace_id))


@app.post("/workspaces/{workspace_id}/save", response_model=SaveResponse)
async def workspace_save(workspace_id: str, payload: SaveRequest) -> SaveResponse:
    store = _get_workspace_store()
    snapshot = _require_workspace(workspace_id)
    try:
        record = build_saved_analysis(
            save_type=payload.save_type,
            form_state=snapshot["form_state"].to_raw(),
            generated_prompt=snapshot["generated_prompt"],
            response_text=snapshot["response_text"],
            citations=snapshot["citations"],
            analysis_mode=snapshot["analysis_mode"],
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        _get_saved_analysis_repository().append(record)
    except StorageQuotaExceededError as exc:
        raise HTTPException(status_code=507, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    log_event(store, workspace_id, "SAVED", f"saved_{payload.save_type}", record.id)
    return SaveResponse(analysis=record, workspace=_serialize_workspace(store.get_workspace(workspace_id)))


@app.post("/workspaces/{workspace_id}/load/{analysis_id}", response_model=WorkspaceResponse)
async def workspace_load_saved(workspace_id: str, analysis_id: str) -> WorkspaceResponse:
    store = _get_workspace_store()
    _require_workspace(workspace_id)
    try:
        record = _get_saved_analysis_repository().get(analysis_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Saved analysis not found: {analysis_id}") from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    try:
        store.load_saved_analysis(
            workspace_id,
            record,
            report_json=extract_json_payload(record.response_text or ""),
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Workspace not found: {workspace_id}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Saved analysis has invalid form state: {exc}") from exc
    log_event(store, workspace_id, "LOADED", "saved_analysis_loaded", record.id)
    return _serialize_workspace(store.get_workspace(workspace_id))


@app.get("/analyses", response_model=SavedAnalysesResponse)
async def analyses_index() -> SavedAnalysesResponse:
    try:
        return SavedAnalysesResponse(analyses=_get_saved_analysis_repository().list_all())
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.get("/analyses/{analysis_id}", response_model=SavedAnalysis)
async def analysis_detail(analysis_id: str) -> SavedAnalysis:
    try:
        return _get_saved_analysis_repository().get(analysis_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Saved analysis not found: {analysis_id}") from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@app.delete("/analyses/{analysis_id}")
async def analysis_delete(analysis_id: str) -> dict[str, str]:
    try:
        deleted = _get_saved_analysis_repository().delete(analysis_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Saved analysis not found: {analysis_id}")
    return {"status": "deleted", "analysis_id": analysis_id}


@app.post("/chat/sessions", response_model=ChatSessionResponse)
async def chat_session_create(payload: ChatSessionCreateRequest) -> ChatSessionResponse:
    config = _get_config()
    expired = _cleanup_expired_chat_sessions()
    if expired:
        logger.info("expired chat sessions removed count=%d", expired)
    prompt = payload.prompt
    response = payload.response
    if payload.workspace_id:
        snapshot = _require_workspace(payload.workspace_id)
        prompt = snapshot["generated_prompt"]
        response = snapshot["response_text"]

    try:
        provider = require_credentials(payload.provider, config)
    except LLMConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    session = ChatSession.with_context(provider=provider, config=config, prompt=prompt, response=response)
    with _get_chat_session_lock():
        _get_chat_session_store()[session.session_id] = session
    logger.info(
        "chat session created session_id=%s provider=%s context=%s",
        session.session_id,
        provider,
        session.has_context,
    )
    return _serialize_chat_session(session)


@app.get("/chat/sessions/{session_id}", response_model=ChatSessionResponse)
async def chat_session_get(session_id: str) -> ChatSessionResponse:
    session = _require_chat_session(session_id)
    session.touch()
    return _serialize_chat_session(session)


@app.post("/chat/sessions/{session_id}/messages")
async def chat_session_send(session_id: str, payload: ChatMessageRequest) -> StreamingResponse:
    session = _require_chat_session(session_id)
    try:
        stream = session.stream_reply(payload.message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (ChatSessionBusyError, ChatSessionClosedError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return StreamingResponse(stream, media_type="text/plain; charset=utf-8")


@app.post("/chat/sessions/{session_id}/reset", response_model=ChatSessionResponse)
async def chat_session_reset(session_id: str) -> ChatSessionResponse:
    with _get_chat_session_lock():
        store = _get_chat_session_store()
        session = store.pop(session_id, None)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Chat session not found: {session_id}")
        replacement = session.reset()
        store[replacement.session_id] = replacement
    return _serialize_chat_session(replacement)


@app.delete("/chat/sessions/{session_id}")
async def chat_session_delete(session_id: str) -> dict[str, str]:
    with _get_chat_session_lock():
        session = _get_chat_session_store().pop(session_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Chat session not found: {session_id}")
    session.close()
    return {"status": "deleted", "session_id": session_id}
