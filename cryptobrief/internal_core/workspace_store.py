from __future__ import annotations

import logging
import time
import uuid
from threading import RLock
from typing import TYPE_CHECKING, Any, Dict, List

from cryptobrief.form.overlay import overlay_state
from cryptobrief.form.schema import get_section
from cryptobrief.form.state import FormState, coerce_value, initial_form_state, is_pristine

from .contracts import AnalysisMode, AuditEvent, CitationRecord, SavedAnalysis

if TYPE_CHECKING:
    from cryptobrief.form.templates import ResearchTemplate

logger = logging.getLogger(__name__)


class WorkspaceBusyError(RuntimeError):
    """Raised when an analysis is already running for the workspace."""


class ConfirmationRequiredError(RuntimeError):
    """Raised when an edit would overwrite a non-pristine form without confirmation."""


class InMemoryWorkspaceStore:
    def __init__(self, ttl_seconds: int):
        self._ttl_seconds = ttl_seconds
        self._lock = RLock()
        self._workspaces: Dict[str, Dict[str, Any]] = {}

    def create_workspace(self) -> str:
        workspace_id = uuid.uuid4().hex
        now = time.time()
        with self._lock:
            self._workspaces[workspace_id] = {
                "workspace_id": workspace_id,
                "created_at": now,
                "updated_at": now,
                "expires_at": now + self._ttl_seconds,
                "form_state": initial_form_state(),
                "template_id": None,
                "generated_prompt": "",
                "response_text": "",
                "citations": [],
                "analysis_mode": None,
                "report_json": None,
                "error": None,
                "busy": False,
                "audit_events": [],
            }
        return workspace_id

    def _require(self, workspace_id: str) -> Dict[str, Any]:
        workspace = self._workspaces.get(workspace_id)
        if workspace is None:
            raise KeyError(f"Unknown workspace_id: {workspace_id}")
        return workspace

    def _touch(self, workspace_id: str) -> None:
        now = time.time()
        workspace = self._workspaces[workspace_id]
        workspace["updated_at"] = now
        workspace["expires_at"] = now + self._ttl_seconds

    def _clear_results(self, workspace: Dict[str, Any]) -> None:
        workspace["generated_prompt"] = ""
        workspace["response_text"] = ""
        workspace["citations"] = []
        workspace["report_json"] = None
        workspace["error"] = None

    def set_field(self, workspace_id: str, section_id: str, field_id: str, raw: Any) -> FormState:
        section = get_section(section_id)
        if section is None:
            raise ValueError(f"Unknown section: {section_id}")
        field = section.get_field(field_id)
        if field is None:
            raise ValueError(f"Unknown field: {section_id}.{field_id}")
        value = coerce_value(field, raw, path=f"{section_id}.{field_id}")
        with self._lock:
            workspace = self._require(workspace_id)
            workspace["form_state"] = workspace["form_state"].with_field(section_id, field_id, value)
            self._touch(workspace_id)
            return workspace["form_state"]

    def load_template(
        self,
        workspace_id: str,
        template: ResearchTemplate,
        *,
        confirm: bool = False,
    ) -> FormState:
        with self._lock:
            workspace = self._require(workspace_id)
            current: FormState = workspace["form_state"]
            if not confirm and not is_pristine(current):
                raise ConfirmationRequiredError(
                    f'Loading the "{template.name}" template will overwrite current form settings. '
                    "Resend with confirm=true to continue."
                )
            workspace["form_state"] = overlay_state(
                initial_form_state(),
                template.data,
                working=current,
            )
            workspace["template_id"] = template.id
            self._clear_results(workspace)
            self._touch(workspace_id)
            return workspace["form_state"]

    def clear_form(self, workspace_id: str, *, confirm: bool = False) -> FormState:
        with self._lock:
            workspace = self._require(workspace_id)
            if not confirm and not is_pristine(workspace["form_state"]):
                raise ConfirmationRequiredError(
                    "This will clear the form. Resend with confirm=true to continue."
                )
            workspace["form_state"] = initial_form_state()
            workspace["template_id"] = None
            self._touch(workspace_id)
            return workspace["form_state"]

    def set_generated_prompt(self, workspace_id: str, prompt: str) -> None:
        with self._lock:
            workspace = self._require(workspace_id)
            self._clear_results(workspace)
            workspace["generated_prompt"] = prompt
            self._touch(workspace_id)

    def begin_analysis(self, workspace_id: str) -> str:
        with self._lock:
            workspace = self._require(workspace_id)
            prompt = workspace["generated_prompt"]
            if not prompt:
                raise ValueError("Please generate the prompt first.")
            if workspace["busy"]:
                raise WorkspaceBusyError("An analysis is already running for this workspace.")
            workspace["busy"] = True
            workspace["error"] = None
            self._touch(workspace_id)
            return prompt

    def finish_analysis(
        self,
        workspace_id: str,
        *,
        mode: AnalysisMode,
        text: str,
        citations: List[CitationRecord],
        report_json: Any = None,
    ) -> None:
        with self._lock:
            workspace = self._require(workspace_id)
            workspace["busy"] = False
            workspace["response_text"] = text
            workspace["citations"] = list(citations)
            workspace["analysis_mode"] = mode
            workspace["report_json"] = report_json
            workspace["error"] = None
            self._touch(workspace_id)

    def fail_analysis(self, workspace_id: str, message: str) -> None:
        with self._lock:
            workspace = self._workspaces.get(workspace_id)
            if workspace is None:
                return
            workspace["busy"] = False
            workspace["error"] = message
            self._touch(workspace_id)

    def load_saved_analysis(
        self,
        workspace_id: str,
        record: SavedAnalysis,
        *,
        report_json: Any = None,
    ) -> None:
        form_state = FormState.from_raw(record.form_state)
        with self._lock:
            workspace = self._require(workspace_id)
            workspace["form_state"] = form_state
            workspace["generated_prompt"] = record.generated_prompt
            if record.response_text:
                workspace["response_text"] = record.response_text
                workspace["citations"] = list(record.citations)
                workspace["analysis_mode"] = record.analysis_mode
                workspace["report_json"] = report_json
            else:
                workspace["response_text"] = ""
                workspace["citations"] = []
                workspace["analysis_mode"] = None
                workspace["report_json"] = None
            workspace["error"] = None
            workspace["template_id"] = None
            self._touch(workspace_id)

    def append_audit_event(self, workspace_id: str, event: AuditEvent) -> None:
        with self._lock:
            workspace = self._workspaces.get(workspace_id)
            if workspace is None:
                return
            workspace["audit_events"].append(event)
            self._touch(workspace_id)

    def get_workspace(self, workspace_id: str) -> Dict[str, Any]:
        with self._lock:
            workspace = self._require(workspace_id)
            return {
                "workspace_id": workspace["workspace_id"],
                "created_at": workspace["created_at"],
                "updated_at": workspace["updated_at"],
                "expires_at": workspace["expires_at"],
                "form_state": workspace["form_state"],
                "template_id": workspace["template_id"],
                "generated_prompt": workspace["generated_prompt"],
                "response_text": workspace["response_text"],
                "citations": list(workspace["citations"]),
                "analysis_mode": workspace["analysis_mode"],
                "report_json": workspace["report_json"],
                "error": workspace["error"],
                "busy": workspace["busy"],
                "audit_events": list(workspace["audit_events"]),
            }

    def destroy_workspace(self, workspace_id: str, reason: str) -> bool:
        with self._lock:
            workspace = self._workspaces.pop(workspace_id, None)
        if workspace is None:
            return False
        logger.info(
            "workspace destroyed workspace_id=%s reason=%s audit_events=%d",
            workspace_id,
            reason,
            len(workspace["audit_events"]),
        )
        return True

    def cleanup_expired_workspaces(self) -> int:
        now = time.time()
        with self._lock:
            expired = [
                workspace_id
                for workspace_id, workspace in self._workspaces.items()
                if workspace["expires_at"] <= now and not workspace["busy"]
            ]
        for workspace_id in expired:
            self.destroy_workspace(workspace_id, reason="ttl_expired")
        return len(expired)
