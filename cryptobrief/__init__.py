"""
Crypto research brief service package.

Design intent:
- Turn a structured research form into a deterministic markdown prompt.
- Keep form/prompt modules pure and independent from LLM providers.
- Treat hosted LLMs and saved-analysis storage as replaceable collaborators.
"""
