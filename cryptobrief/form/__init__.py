"""
Research form model: section catalogue, tagged form state, templates, overlay.

Design intent:
- Keep the field catalogue as static configuration, not code paths.
- Convert raw JSON values into typed field values once, at the boundary.
- Never mutate a state in place; every edit returns a new state.
"""
