from __future__ import annotations

"""
Fixed guardrail policy blocks appended to the quality-guardrails section.
"""

STRICT_GUARDRAIL_BLOCK = (
    "**Strict Guardrail Defaults:** ENABLED. The following is a non-negotiable pre-flight check "
    "to ensure data integrity. Halt execution if any check fails.\n\n"
    "#### Freshness Policy (Hard Fail if Stale)\n"
    "*   **Price Data:** Max age 30 seconds.\n"
    "*   **On-chain Data:** Max age 10 minutes.\n"
    "*   **Derivatives/Funding Data:** Max age 10 minutes.\n"
    "*   **News/Social Data:** Max age 30 minutes.\n\n"
    "#### Quorum & Deviation Policy\n"
    "*   **Minimum Sources:** 2 for all critical data points (price, supply).\n"
    "*   **Aggregation Method:** Use the median value after collecting from sources.\n"
    "*   **Max Price Deviation:** 0.25% between sources.\n"
    "*   **Refetch Policy:** If deviation is exceeded, add a third source, re-query all, and use "
    "the median. If failure persists, abort.\n\n"
    "#### Accuracy Guard\n"
    "*   **Checks:** Spot price must be within the 24h high/low range, bid-ask spread must be "
    "reasonable (e.g., <= 0.5%), last trade recency must be <= 60s.\n"
    "*   **Failure Action:** If ANY check fails, re-query all sources. If still failing, ABORT "
    "with a full audit log.\n\n"
)

LOOSE_GUARDRAIL_BLOCK = (
    "**Web Scraping Guardrails (Looser):** ENABLED. The following is a set of relaxed guidelines "
    "for data integrity, suitable for public web sources. Best-effort checks will be performed.\n\n"
    "#### Freshness Policy (Best Effort)\n"
    "*   **Price Data:** Max age 10 minutes (600s).\n"
    "*   **On-chain Data:** Max age 60 minutes (3600s).\n"
    "*   **News/Social Data:** Max age 60 minutes (3600s).\n\n"
    "#### Quorum & Deviation Policy\n"
    "*   **Minimum Sources:** 2 for critical data points.\n"
    "*   **Aggregation Method:** Use the median value.\n"
    "*   **Max Price Deviation:** 5% between sources.\n"
    "*   **Refetch Policy:** If deviation is exceeded, note the discrepancy in the audit log.\n\n"
)

PROVENANCE_TABLE_BLOCK = (
    "#### Data Provenance & Audit\n"
    "*   **Requirement:** Embed a detailed data provenance table in the final report.\n"
    "*   **Columns:** Metric, Final Value, Source(s) Used, Timestamp (UTC), Confidence Score/Notes.\n"
    "*   **Validation:** Explicitly flag any data points where sources deviated significantly "
    "or data was stale.\n\n"
)

_PRESET_BLOCKS: dict[str, str] = {
    "strict": STRICT_GUARDRAIL_BLOCK,
    "loose": LOOSE_GUARDRAIL_BLOCK,
}


def preset_block(preset: str) -> str | None:
    """Fixed block for a named preset; ``None`` means per-field (custom) rendering."""
    return _PRESET_BLOCKS.get(str(preset or "").strip().lower())
