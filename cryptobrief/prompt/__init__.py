"""
Prompt rendering boundary.

Design intent:
- Serialize a form state into one markdown prompt, deterministically.
- Keep guardrail policy text as fixed blocks selected by preset.
"""
