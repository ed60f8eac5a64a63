"""Market intelligence — one long-form structured report per analysis."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...errors import ServiceError
from ...services.openai_client import complete
from .coerce import as_choice, as_dicts, as_str, as_str_list

logger = logging.getLogger(__name__)

_BARRIER_LEVELS = ("low", "medium", "high", "very_high")
_IMPACT_LEVELS = ("low", "medium", "high", "very_high")
_THREAT_SEVERITIES = ("low", "medium", "high", "critical")

PLACEHOLDER_OVERVIEW = (
    "Industry analysis is being generated. This will provide comprehensive insights "
    "into the market landscape."
)
PLACEHOLDER_LANDSCAPE = (
    "Competitive landscape analysis is being generated. This will detail market "
    "concentration and competitive dynamics."
)
PLACEHOLDER_RECOMMENDATIONS = (
    "Strategic recommendations are being generated. This will provide actionable advice "
    "for market entry and growth."
)


@dataclass
class MarketReport:
    industry_overview: str
    competitive_landscape: str
    strategic_recommendations: str
    market_size: Optional[str] = None
    market_growth: Optional[str] = None
    market_trends: List[str] = field(default_factory=list)
    market_dynamics: Dict[str, List[str]] = field(
        default_factory=lambda: {"drivers": [], "restraints": [], "opportunities": []}
    )
    barriers_to_entry: Dict[str, Any] = field(
        default_factory=lambda: {"level": "medium", "factors": []}
    )
    opportunities: List[Dict[str, str]] = field(default_factory=list)
    threats: List[Dict[str, str]] = field(default_factory=list)
    key_success_factors: List[str] = field(default_factory=list)


_SYSTEM_PROMPT = (
    "You are a senior market intelligence analyst with expertise in competitive analysis, "
    "industry trends, and strategic planning. Provide comprehensive, actionable market intelligence."
)

_SHAPE = """{
  "industry_overview": "detailed overview text",
  "market_size": "estimated size and context",
  "market_growth": "growth rate and projections",
  "market_trends": ["trend 1", "trend 2"],
  "competitive_landscape": "detailed analysis text",
  "market_dynamics": {
    "drivers": ["driver 1"],
    "restraints": ["restraint 1"],
    "opportunities": ["opportunity 1"]
  },
  "barriers_to_entry": {
    "level": "low" or "medium" or "high" or "very_high",
    "factors": ["factor 1"]
  },
  "opportunities": [
    {"title": "opportunity title", "description": "detailed description", "potential_impact": "low|medium|high|very_high"}
  ],
  "threats": [
    {"title": "threat title", "description": "detailed description", "severity": "low|medium|high|critical", "mitigation": "how to mitigate"}
  ],
  "strategic_recommendations": "comprehensive strategic advice text",
  "key_success_factors": ["factor 1", "factor 2"]
}"""


def unavailable_report() -> MarketReport:
    return MarketReport(
        industry_overview="Unable to generate industry overview at this time. Please try again later.",
        competitive_landscape=(
            "Unable to generate competitive landscape analysis at this time. Please try again later."
        ),
        strategic_recommendations=(
            "Unable to generate strategic recommendations at this time. Please try again later."
        ),
    )


def parse_report(result: Dict[str, Any]) -> MarketReport:
    dynamics = result.get("market_dynamics")
    dynamics = dynamics if isinstance(dynamics, dict) else {}
    barriers = result.get("barriers_to_entry")
    barriers = barriers if isinstance(barriers, dict) else {}

    opportunities = []
    for entry in as_dicts(result.get("opportunities")):
        title = as_str(entry.get("title"))
        if title:
            opportunities.append({
                "title": title,
                "description": as_str(entry.get("description")),
                "potential_impact": as_choice(entry.get("potential_impact"), _IMPACT_LEVELS, "medium"),
            })

    threats = []
    for entry in as_dicts(result.get("threats")):
        title = as_str(entry.get("title"))
        if title:
            threats.append({
                "title": title,
                "description": as_str(entry.get("description")),
                "severity": as_choice(entry.get("severity"), _THREAT_SEVERITIES, "medium"),
                "mitigation": as_str(entry.get("mitigation")),
            })

    return MarketReport(
        industry_overview=as_str(result.get("industry_overview"), PLACEHOLDER_OVERVIEW),
        competitive_landscape=as_str(result.get("competitive_landscape"), PLACEHOLDER_LANDSCAPE),
        strategic_recommendations=as_str(
            result.get("strategic_recommendations"), PLACEHOLDER_RECOMMENDATIONS,
        ),
        market_size=as_str(result.get("market_size")) or None,
        market_growth=as_str(result.get("market_growth")) or None,
        market_trends=as_str_list(result.get("market_trends")),
        market_dynamics={
            "drivers": as_str_list(dynamics.get("drivers")),
            "restraints": as_str_list(dynamics.get("restraints")),
            "opportunities": as_str_list(dynamics.get("opportunities")),
        },
        barriers_to_entry={
            "level": as_choice(barriers.get("level"), _BARRIER_LEVELS, "medium"),
            "factors": as_str_list(barriers.get("factors")),
        },
        opportunities=opportunities,
        threats=threats,
        key_success_factors=as_str_list(result.get("key_success_factors")),
    )


async def generate_market_report(
    *,
    app_name: str,
    target_audience: str,
    description: str,
    user_features: Sequence[Tuple[str, Optional[str]]],
    competitor_summaries: Sequence[str],
) -> MarketReport:
    """Structured market report; service failure returns the "unable" report."""
    feature_lines = "\n".join(
        f"{name}: {desc or 'No description'}" for name, desc in user_features
    )
    user_prompt = f"""Generate comprehensive market intelligence for this app idea:

APP DETAILS:
- Name: {app_name}
- Target Audience: {target_audience}
- Description: {description}
- Planned Features:
{feature_lines}

COMPETITIVE LANDSCAPE:
{chr(10).join(competitor_summaries) or 'No competitors identified yet'}

Cover: industry overview (3-4 paragraphs), market size & growth, 5-7 market
trends, a detailed competitive landscape, market dynamics (drivers, restraints,
opportunities), barriers to entry (level + factors), 3-5 opportunities,
3-5 threats with mitigations, strategic recommendations, and 5-7 key success
factors."""
    try:
        result = await complete(
            system=_SYSTEM_PROMPT, user=user_prompt, shape=_SHAPE,
            temperature=0.7, context="INTEL",
        )
    except ServiceError as exc:
        logger.warning("[INTEL] Market intelligence failed: %s", exc)
        return unavailable_report()
    return parse_report(result)
