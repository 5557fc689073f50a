"""
API orchestration boundary for the research brief service.

Design intent:
- Expose thin, typed endpoints for form/prompt/analysis/chat flows.
- Keep request validation explicit and failure modes predictable.
- Orchestrate modules without embedding domain logic in routers.
"""
