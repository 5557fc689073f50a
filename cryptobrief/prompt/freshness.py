from __future__ import annotations

import math
import re


_FRESHNESS_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)(?P<unit>[a-z]*)$")

UNIT_SECONDS: dict[str, int] = {
    "": 1,
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
}


def freshness_to_seconds(raw: str) -> int | None:
    compact = re.sub(r"\s+", "", str(raw or "")).lower()
    match = _FRESHNESS_RE.match(compact)
    if not match:
        return None
    multiplier = UNIT_SECONDS.get(match.group("unit"))
    if multiplier is None:
        return None
    seconds = float(match.group("value")) * multiplier
    if not math.isfinite(seconds):
        return None
    # Half-up rounding, matching the form's documented examples.
    return int(math.floor(seconds + 0.5))


def normalize_freshness(raw: str) -> str:
    """
    Render a free-form duration as ``"{N} seconds"``.

    Input that does not parse is returned unchanged.
    """

    seconds = freshness_to_seconds(raw)
    if seconds is None:
        return raw
    return f"{seconds} seconds"
