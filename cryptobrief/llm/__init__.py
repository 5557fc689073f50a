"""
Hosted LLM collaborators (Gemini, Claude).

Design intent:
- Expose one analysis call and one chat stream per provider.
- Surface credential and provider failures as typed errors with readable messages.
"""
