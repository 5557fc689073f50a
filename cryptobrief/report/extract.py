from __future__ import annotations

import json
import re
from typing import Any

_JSON_FENCE_RE = re.compile(r"```json\n([\s\S]*?)\n```")


def extract_json_payload(text: str) -> Any | None:
    """
    Pull a structured report out of an analysis response.

    Prefers the first ```json fenced block; when that is missing or does not
    parse, accepts the whole text if it is a JSON object or array.
    """

    if not text:
        return None

    match = _JSON_FENCE_RE.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    stripped = text.strip()
    if not stripped.startswith(("{", "[")):
        return None
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if isinstance(payload, (dict, list)):
        return payload
    return None
