from __future__ import annotations

"""
Static research form catalogue.

Design intent:
- Declare every section and field once; rendering and validation read from here.
- Keep declared order stable because it is the prompt section order.
"""

from dataclasses import dataclass
from typing import Literal, Sequence


FieldType = Literal["text", "textarea", "select", "checkbox", "single_checkbox"]

TEXT_FIELD_TYPES: set[str] = {"text", "textarea", "select"}
OPTIONS_FIELD_TYPES: set[str] = {"checkbox"}
TOGGLE_FIELD_TYPES: set[str] = {"single_checkbox"}

GUARDRAILS_SECTION_ID = "quality_guardrails"
GUARDRAIL_PRESET_FIELD_ID = "guardrail_preset"
PROVENANCE_FIELD_ID = "include_provenance_table"
FRESHNESS_FIELD_SUFFIX = "_freshness"


@dataclass(frozen=True)
class FieldOption:
    value: str
    label: str


@dataclass(frozen=True)
class FormField:
    id: str
    label: str
    type: FieldType
    placeholder: str = ""
    description: str = ""
    options: tuple[FieldOption, ...] = ()

    @property
    def is_freshness(self) -> bool:
        return self.id.endswith(FRESHNESS_FIELD_SUFFIX)


@dataclass(frozen=True)
class FormSection:
    id: str
    title: str
    fields: tuple[FormField, ...]
    description: str = ""

    def get_field(self, field_id: str) -> FormField | None:
        for item in self.fields:
            if item.id == field_id:
                return item
        return None


def _opts(*pairs: str | tuple[str, str]) -> tuple[FieldOption, ...]:
    out: list[FieldOption] = []
    for item in pairs:
        if isinstance(item, tuple):
            out.append(FieldOption(value=item[0], label=item[1]))
        else:
            out.append(FieldOption(value=item, label=item))
    return tuple(out)


def _freshness(field_id: str, label: str, placeholder: str, description: str) -> FormField:
    return FormField(
        id=field_id,
        label=label,
        type="text",
        placeholder=placeholder,
        description=f"{description} Supports s/m/h/d suffixes.",
    )


SECTIONS: tuple[FormSection, ...] = (
    FormSection(
        id="context",
        title="1. Research Context & Goals",
        description=(
            'Define the "who, what, and why" of your research. This sets the stage for the AI, '
            'telling it which expert "hats" to wear and what the ultimate goal is.'
        ),
        fields=(
            FormField(
                id="experts",
                label="Expert(s) conducting the research",
                type="checkbox",
                description="Defines the persona and technical depth the AI should emulate for the analysis.",
                options=_opts(
                    "Lead Tokenomics Analyst",
                    "Senior Research & Investment Analyst",
                    ("Protocol Architect", "Protocol Architect (Technical)"),
                    "DAO Governance Specialist",
                    "On-Chain/Data Engineer",
                    "Macro Strategist",
                    "Security Auditor",
                    "Regulatory Counsel",
                ),
            ),
            FormField(
                id="project",
                label="Coin/Project Name",
                type="text",
                placeholder="e.g., Ethereum",
                description="The specific subject of the research.",
            ),
            FormField(
                id="ticker",
                label="Ticker Symbol",
                type="text",
                placeholder="e.g., ETH",
                description="Used to accurately identify assets for price and chart data.",
            ),
            FormField(
                id="chain",
                label="Primary Chain",
                type="text",
                placeholder="e.g., Ethereum Mainnet",
                description="Critical for analyzing on-chain nuances (e.g., fees, security).",
            ),
            FormField(
                id="purpose",
                label="My purpose is to",
                type="select",
                description=(
                    "Directs the AI to focus on specific outcomes: ROI (investment), comprehensive "
                    "coverage (report), brevity (pitch), or safety (risk)."
                ),
                options=_opts(
                    "Inform trading/investment decision",
                    "Long-form report",
                    "Pitch deck",
                    "Risk memo",
                ),
            ),
            FormField(
                id="priorKnowledge",
                label="I already know (briefly)",
                type="textarea",
                placeholder="Your prior knowledge/assumptions",
                description="Prevents the AI from explaining basics you already know, ensuring high-signal output.",
            ),
            FormField(
                id="gaps",
                label="Potential Gaps in Existing Research",
                type="textarea",
                placeholder="e.g., unclear token unlock effects",
                description="Focuses the research specifically on what is missing from your current understanding.",
            ),
            FormField(
                id="actionability",
                label="Actionability of Findings",
                type="select",
                description=(
                    "Determines if the output should be a high-level concept, a strategic direction, "
                    "or a specific execution plan."
                ),
                options=_opts("Theoretical", "Strategic", "Practical trading plan"),
            ),
        ),
    ),
    FormSection(
        id="coreQuestion",
        title="2. Core Research Question & Hypothesis",
        description=(
            "This is the heart of your prompt. A clear, specific question and hypothesis will yield "
            "a much more focused and insightful analysis."
        ),
        fields=(
            FormField(
                id="primaryQuestion",
                label="Primary Question",
                type="textarea",
                placeholder="e.g., What is the risk-adjusted return potential over 1-5 years?",
                description='The "North Star" of the research. Be specific to get the best results.',
            ),
            FormField(
                id="hypothesis",
                label="Hypothesis or Expected Insights",
                type="textarea",
                placeholder="What you expect to learn or validate",
                description="Allows the AI to attempt to prove or disprove a specific theory with data.",
            ),
            FormField(
                id="counterfactuals",
                label="Counterfactuals & Alternative Perspectives",
                type="textarea",
                placeholder="e.g., Bull vs. Bear on adoption rates",
                description="Forces consideration of alternative scenarios to reduce confirmation bias.",
            ),
        ),
    ),
    FormSection(
        id="specifications",
        title="3. Specifications & Parameters",
        description=(
            "Narrow the scope. Define the boundaries of your research, such as the timeframe, "
            "market sectors, and analytical methods to use."
        ),
        fields=(
            FormField(
                id="timePeriod",
                label="Time Period",
                type="text",
                placeholder="e.g., Last 12-24 months",
                description='Sets the historical scope for data analysis (e.g., "since the Merge").',
            ),
            FormField(
                id="geographicLocation",
                label="Geographic Location",
                type="text",
                placeholder="Global / Specific regions",
                description="Relevant for analyzing regulatory jurisdiction or regional adoption.",
            ),
            FormField(
                id="sectorFocus",
                label="Industry/Sector Focus",
                type="checkbox",
                description="Contextualizes the project within its specific market vertical for comparative analysis.",
                options=_opts("L1", "L2", "DeFi", "RWA", "AI", "Gaming", "Infrastructure", "Privacy"),
            ),
            FormField(
                id="demographicFocus",
                label="Demographic Focus",
                type="checkbox",
                description="Identifies the target audience (e.g., retail vs. institutional) to assess product-market fit.",
                options=_opts("Retail", "Institutional", "Developer cohorts", "Geographies"),
            ),
            FormField(
                id="methodology",
                label="Methodological Approach",
                type="checkbox",
                description="Instructs the AI on which analytical lenses (Fundamental, Technical, On-chain) to apply.",
                options=_opts(
                    "Fundamental Analysis",
                    "On-chain Quant Analysis",
                    "Technical/Chart Analysis",
                    "Sentiment Analysis",
                    "Event-Driven Analysis",
                    "Predictive Modeling",
                ),
            ),
            FormField(
                id="ethics",
                label="Ethical Considerations",
                type="textarea",
                placeholder="Market manipulation concerns...",
                description="Ensures the analysis considers moral risks, centralization theater, or integrity issues.",
            ),
            FormField(
                id="marketTrends",
                label="Relevant Market Trends",
                type="textarea",
                placeholder="e.g., Growth in RWA, AI integration, regulatory shifts",
                description="Current or emerging trends that might impact the project's success.",
            ),
        ),
    ),
    FormSection(
        id="output",
        title="4. Desired Report Output",
        description=(
            "Tell the AI exactly what you want the final report to look like. The more specific you "
            "are here, the less editing you'll have to do later."
        ),
        fields=(
            FormField(
                id="structure",
                label="Report Structure & Key Sections",
                type="checkbox",
                description="Select the specific components required in the final report artifact.",
                options=_opts(
                    ("executive_summary", "Executive Summary"),
                    ("tldr_for_novices", "TLDR for Novices"),
                    ("news_analysis", "News & Catalysts Analysis (Live)"),
                    ("tokenomics_deep_dive", "Tokenomics Deep Dive"),
                    ("onchain_metrics", "On-chain Metrics & Analysis"),
                    ("team_background", "Team & Founder Background"),
                    ("competitive_landscape", "Competitive Landscape"),
                    ("risk_assessment", "Risk Assessment"),
                    ("investment_thesis", "Investment Thesis (Bull vs. Bear)"),
                    ("price_prediction", "Price Prediction / Valuation"),
                    ("audit_log", "Full Data Provenance Audit Log"),
                ),
            ),
            FormField(
                id="format",
                label="Format",
                type="select",
                description="How the data should be presented for consumption (e.g., JSON for code, PDF for reading).",
                options=_opts(
                    ("markdown", "Markdown Report"),
                    ("json", "JSON Data"),
                    ("summary", "Bulleted Summary"),
                    ("slide_deck", "Slide Deck (Markdown)"),
                    ("pdf_structure", "Formal PDF Structure"),
                ),
            ),
            FormField(
                id="tone",
                label="Tone of Voice",
                type="select",
                description="Adjusts the language style to match the intended audience.",
                options=_opts(
                    ("formal", "Formal & Academic"),
                    ("neutral", "Neutral & Objective"),
                    ("opinionated", "Slightly Opinionated (with justifications)"),
                ),
            ),
            FormField(
                id="length",
                label="Desired Length",
                type="text",
                placeholder="e.g., ~1500 words",
                description="Target word count for the output.",
            ),
            FormField(
                id="visuals",
                label="Required Visuals",
                type="checkbox",
                description="Requests specific data visualizations to support the text.",
                options=_opts(
                    ("charts", "Charts (e.g., price, volume)"),
                    ("tables", "Tables (for comparative data)"),
                    ("diagrams", "Diagrams (for token flows)"),
                ),
            ),
        ),
    ),
    FormSection(
        id="risk_assessment",
        title="5. Risk Assessment & Stress Testing",
        description=(
            "Explore the potential downsides. Prompting the AI to think about risks and extreme "
            "scenarios can uncover weaknesses you might have missed."
        ),
        fields=(
            FormField(
                id="key_risks",
                label="Key Risks to Investigate",
                type="checkbox",
                description="Select specific risk vectors to prioritize in the audit.",
                options=_opts(
                    ("market_risk", "Market Risk (Volatility, Liquidity)"),
                    ("tech_risk", "Technology Risk (Bugs, Exploits)"),
                    ("regulatory_risk", "Regulatory Risk"),
                    ("centralization_risk", "Centralization Risk"),
                    ("competitor_risk", "Competitor Risk"),
                    ("operational_risk", "Operational Risk (e.g., team execution, hacks)"),
                ),
            ),
            FormField(
                id="stress_scenarios",
                label="Stress Test Scenarios",
                type="textarea",
                placeholder="e.g., 51% attack, major exchange delisting, key developer departure",
                description="Simulates extreme conditions to test the project's resilience.",
            ),
            FormField(
                id="black_swans",
                label="Potential Black Swan Events",
                type="textarea",
                placeholder="Unforeseen high-impact events to consider",
                description="Low probability, high impact events that could destroy value.",
            ),
        ),
    ),
    FormSection(
        id="asset_sourcing",
        title="6. Asset Identification & Sources",
        description=(
            "Provide specific identifiers for the asset. This helps the AI pinpoint the exact project "
            "and its data sources, reducing ambiguity."
        ),
        fields=(
            FormField(
                id="coingecko_id",
                label="CoinGecko ID",
                type="text",
                placeholder="e.g., ethereum",
                description="Ensures accurate data retrieval from CoinGecko.",
            ),
            FormField(
                id="coinmarketcap_id",
                label="CoinMarketCap ID",
                type="text",
                placeholder="e.g., ethereum",
                description="Ensures accurate data retrieval from CoinMarketCap.",
            ),
            FormField(
                id="defillama_slug",
                label="DeFiLlama Slug",
                type="text",
                placeholder="e.g., ethereum",
                description="Ensures accurate TVL and volume data retrieval.",
            ),
            FormField(
                id="contracts",
                label="Key Contract Addresses (chain:address)",
                type="textarea",
                placeholder="e.g., ethereum:0x123..., arbitrum:0x456...",
                description="Directs on-chain analysis to specific smart contracts.",
            ),
            FormField(
                id="price_sources",
                label="Preferred Price Sources",
                type="textarea",
                placeholder="e.g., Binance, Coinbase, Kraken",
                description="Trusted venues for price data to avoid wash trading noise.",
            ),
            FormField(
                id="supply_sources",
                label="Preferred Supply Sources",
                type="textarea",
                placeholder="e.g., Protocol API, CoinGecko, Dune",
                description="Trusted sources for circulating and total supply data.",
            ),
            FormField(
                id="onchain_sources",
                label="Preferred On-chain Sources",
                type="textarea",
                placeholder="e.g., Etherscan API, Subgraph, Flipside",
                description="Preferred block explorers or analytics platforms.",
            ),
            FormField(
                id="social_sources",
                label="Preferred Social Sources",
                type="textarea",
                placeholder="e.g., X/Twitter API, Santiment, Reddit",
                description="Preferred platforms for sentiment analysis.",
            ),
        ),
    ),
    FormSection(
        id=GUARDRAILS_SECTION_ID,
        title="7. Data Quality Guardrails",
        description=(
            'Set the rules for data quality. "Strict" is best for high-stakes analysis, demanding '
            'fresh, verifiable data. "Loose" is for general research where directional accuracy is sufficient.'
        ),
        fields=(
            FormField(
                id=GUARDRAIL_PRESET_FIELD_ID,
                label="Guardrail Preset",
                type="select",
                description="Quickly applies a standard set of data integrity and freshness rules.",
                options=_opts(
                    ("custom", "Custom (configure below)"),
                    ("strict", "Strict Defaults (Recommended)"),
                    ("loose", "Web Scraping (Looser Guardrails)"),
                ),
            ),
            FormField(
                id=PROVENANCE_FIELD_ID,
                label="Include Data Provenance Table",
                type="single_checkbox",
                description=(
                    "Automatically adds a section listing all data sources, timestamps, and confidence scores."
                ),
            ),
            _freshness("price_freshness", "Max Price Age", "e.g., 60s, 5m", "Max age for price data."),
            _freshness("supply_freshness", "Max Supply Age", "e.g., 24h, 1d", "Max age for supply metrics."),
            _freshness("volume_freshness", "Max Volume Age", "e.g., 1h", "Max age for volume metrics."),
            _freshness("onchain_freshness", "Max On-chain Data Age", "e.g., 2h", "Max age for blockchain data."),
            _freshness("social_freshness", "Max Social Data Age", "e.g., 2h", "Max age for sentiment data."),
            _freshness("dev_freshness", "Max Dev Activity Age", "e.g., 24h", "Max age for github/commit data."),
            FormField(
                id="min_sources",
                label="Min. Consensus Sources",
                type="text",
                placeholder="e.g., 3",
                description="Minimum number of independent sources required to validate a critical data point.",
            ),
            FormField(
                id="consensus_method",
                label="Consensus Method",
                type="select",
                description="The statistical method used to resolve discrepancies between multiple sources.",
                options=_opts(("median", "Median"), ("mean", "Mean")),
            ),
            FormField(
                id="price_deviation",
                label="Max Price Relative Deviation",
                type="text",
                placeholder="e.g., 0.01 (for 1%)",
                description="Maximum allowed percentage difference between price sources.",
            ),
            FormField(
                id="supply_deviation",
                label="Max Supply Relative Deviation",
                type="text",
                placeholder="e.g., 0.02",
                description="Maximum allowed percentage difference between supply sources.",
            ),
            FormField(
                id="volume_deviation",
                label="Max Volume Relative Deviation",
                type="text",
                placeholder="e.g., 0.15",
                description="Maximum allowed percentage difference between volume sources.",
            ),
            FormField(
                id="outlier_rule",
                label="Outlier Rule",
                type="select",
                description="Statistical method for identifying and discarding outlier data points.",
                options=_opts(
                    ("MAD", "Median Absolute Deviation (MAD)"),
                    ("IQR", "Interquartile Range (IQR)"),
                ),
            ),
            FormField(
                id="custom_validation_logic",
                label="Custom Validation Logic",
                type="textarea",
                placeholder=(
                    "e.g., If volume < $500k, disregard price deviation alerts. "
                    "If a source is stale > 3 times, blacklist it."
                ),
                description=(
                    "Define specific logic for data validation, outlier detection, or source selection "
                    "that goes beyond standard numeric parameters."
                ),
            ),
        ),
    ),
)

_SECTIONS_BY_ID: dict[str, FormSection] = {item.id: item for item in SECTIONS}


def get_section(section_id: str, sections: Sequence[FormSection] = SECTIONS) -> FormSection | None:
    if sections is SECTIONS:
        return _SECTIONS_BY_ID.get(section_id)
    for item in sections:
        if item.id == section_id:
            return item
    return None


def get_field(section_id: str, field_id: str) -> FormField | None:
    section = _SECTIONS_BY_ID.get(section_id)
    if section is None:
        return None
    return section.get_field(field_id)
