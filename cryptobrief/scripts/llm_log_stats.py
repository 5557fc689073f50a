from __future__ import annotations

import argparse
import json
import re
from pathlib import Path
from typing import Any


ENTRY_RE = re.compile(r"^\[(?P<ts>[^\]]+)\]\s+stage=(?P<stage>\S+)\s+meta=(?P<meta>\{.*\})$")
_ANALYSIS_STAGE_RE = re.compile(r"^(?P<provider>[a-z]+)_analysis_(?P<kind>response|error)$")


def _percentile(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = (p / 100.0) * (len(ordered) - 1)
    lo = int(rank)
    hi = min(lo + 1, len(ordered) - 1)
    if lo == hi:
        return ordered[lo]
    w = rank - lo
    return ordered[lo] * (1.0 - w) + ordered[hi] * w


def _format_latency(values: list[float]) -> str:
    if not values:
        return "n/a"
    avg = sum(values) / len(values)
    p50 = _percentile(values, 50)
    p95 = _percentile(values, 95)
    return f"avg={avg:.2f}ms p50={p50:.2f}ms p95={p95:.2f}ms n={len(values)}"


def _format_rate(n: int, d: int) -> str:
    if d <= 0:
        return "n/a"
    return f"{(100.0 * n / d):.1f}% ({n}/{d})"


def parse_log(path: Path) -> dict[str, Any]:
    """Group analysis latencies by ``provider/mode`` and count failures."""

    latencies: dict[str, list[float]] = {}
    errors: dict[str, int] = {}
    citations_total = 0
    chat_requests = 0

    for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        match = ENTRY_RE.match(line.strip())
        if not match:
            continue
        stage = match.group("stage")
        try:
            meta = json.loads(match.group("meta"))
        except json.JSONDecodeError:
            meta = {}

        if stage.endswith("_chat_request"):
            chat_requests += 1
            continue

        stage_match = _ANALYSIS_STAGE_RE.match(stage)
        if not stage_match:
            continue
        key = f"{stage_match.group('provider')}/{meta.get('mode', 'unknown')}"
        if stage_match.group("kind") == "error":
            errors[key] = errors.get(key, 0) + 1
            continue
        if "elapsed_ms" in meta:
            latencies.setdefault(key, []).append(float(meta.get("elapsed_ms") or 0.0))
        citations_total += int(meta.get("citations", 0) or 0)

    return {
        "latencies": latencies,
        "errors": errors,
        "citations_total": citations_total,
        "chat_requests": chat_requests,
    }


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Summarize LLM analysis timings from cryptobrief_llm_raw.log"
    )
    parser.add_argument(
        "--log-path",
        default="/tmp/cryptobrief_llm_raw.log",
        help="Path to the LLM raw debug log (default: /tmp/cryptobrief_llm_raw.log)",
    )
    parser.add_argument(
        "--list-latencies",
        action="store_true",
        help="Print each analysis latency entry in addition to summary.",
    )
    args = parser.parse_args()

    path = Path(args.log_path).expanduser()
    if not path.exists():
        raise SystemExit(f"log file not found: {path}")

    stats = parse_log(path)

    print(f"log_path: {path}")
    keys = sorted(set(stats["latencies"]) | set(stats["errors"]))
    for key in keys:
        values = stats["latencies"].get(key, [])
        failures = stats["errors"].get(key, 0)
        print(f"{key}_latency: {_format_latency(values)}")
        print(f"{key}_success_rate: {_format_rate(len(values), len(values) + failures)}")
        if args.list_latencies:
            print(f"{key}_latency_values_ms:", ", ".join(f"{v:.2f}" for v in values) or "n/a")
    print(f"grounded_citations_total: {stats['citations_total']}")
    print(f"chat_requests: {stats['chat_requests']}")


if __name__ == "__main__":
    main()
