"""Gap analysis — deficits, standouts, and one Blue Ocean opportunity.

Deficits and standouts are two independent completions run concurrently;
either failing yields an empty list for that kind. Blue Ocean always returns
an insight: missing fields fall back to generic text, and a service failure
returns the "further research" insight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...constants import (
    DEFAULT_SEVERITY,
    DIFFICULTY_LEVELS,
    MAX_DEFICITS,
    MAX_STANDOUTS,
    OPPORTUNITY_LEVELS,
    SEVERITIES,
    STANDOUT_SCORE_MODEL_MAX,
    STANDOUT_SCORE_STORAGE_FACTOR,
)
from ...errors import ServiceError
from ...services.openai_client import complete
from .coerce import as_choice, as_dicts, as_float, as_str, as_str_list, clamp

logger = logging.getLogger(__name__)


@dataclass
class Deficit:
    title: str
    description: str
    severity: str
    affected_competitors: List[str]
    recommendation: str


@dataclass
class Standout:
    title: str
    description: str
    opportunity_score: float  # 0–100
    recommendation: str


@dataclass
class BlueOcean:
    market_vacuum_title: str
    description: str
    supporting_evidence: List[str]
    target_segment: str
    estimated_opportunity: str
    implementation_difficulty: str
    strategic_recommendation: str


@dataclass
class GapContext:
    """Inputs shared by the three gap completions."""

    app_name: str
    target_audience: str
    user_features: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    # (competitor name, description, feature names)
    competitors: List[Tuple[str, Optional[str], List[str]]] = field(default_factory=list)


_DEFICIT_SYSTEM_PROMPT = (
    "You are a strategic product analyst. Identify feature gaps and competitive deficits."
)
_STANDOUT_SYSTEM_PROMPT = (
    "You are a strategic product analyst. Identify unique value propositions and standout features."
)
_BLUE_OCEAN_SYSTEM_PROMPT = (
    "You are a Blue Ocean strategy expert. Identify untapped market opportunities."
)

_DEFICIT_SHAPE = """{
  "deficits": [
    {
      "title": "brief name",
      "description": "why this matters",
      "affected_competitors": ["competitor names that have this"],
      "severity": "critical" or "high" or "medium" or "low",
      "recommendation": "what the user should do about it"
    }
  ]
}"""

_STANDOUT_SHAPE = """{
  "standouts": [
    {
      "title": "brief name",
      "description": "why this is valuable",
      "opportunity_score": <number 0-10>,
      "recommendation": "how to leverage this uniqueness"
    }
  ]
}"""

_BLUE_OCEAN_SHAPE = """{
  "market_vacuum_title": "concise title",
  "description": "detailed explanation of opportunity",
  "supporting_evidence": ["data point 1", "data point 2"],
  "target_segment": "specific audience segment",
  "estimated_opportunity": "low" or "medium" or "high" or "very_high",
  "implementation_difficulty": "easy" or "moderate" or "hard" or "very_hard",
  "strategic_recommendation": "specific actionable advice"
}"""


def _user_feature_block(ctx: GapContext) -> str:
    lines = [f"- {name}: {desc}" if desc else f"- {name}" for name, desc in ctx.user_features]
    return "\n".join(lines) or "(none)"


def _competitor_feature_block(ctx: GapContext) -> str:
    blocks = []
    for name, _desc, features in ctx.competitors:
        feature_lines = "\n".join(f"  - {f}" for f in features) or "  (no features known)"
        blocks.append(f"{name}:\n{feature_lines}")
    return "\n\n".join(blocks) or "(no competitors found)"


def parse_deficits(raw: Any) -> List[Deficit]:
    deficits: List[Deficit] = []
    for entry in as_dicts(raw):
        title = as_str(entry.get("title"))
        if not title:
            continue
        deficits.append(Deficit(
            title=title[:255],
            description=as_str(entry.get("description")),
            severity=as_choice(entry.get("severity"), SEVERITIES, DEFAULT_SEVERITY),
            affected_competitors=as_str_list(entry.get("affected_competitors")),
            recommendation=as_str(entry.get("recommendation")),
        ))
        if len(deficits) >= MAX_DEFICITS:
            break
    return deficits


def to_storage_score(raw: Any) -> float:
    """0–10 model score → 0–100 stored score. Unparseable counts as 0."""
    score = clamp(as_float(raw, 0.0), 0.0, STANDOUT_SCORE_MODEL_MAX)
    return float(round(score * STANDOUT_SCORE_STORAGE_FACTOR))


def parse_standouts(raw: Any) -> List[Standout]:
    standouts: List[Standout] = []
    for entry in as_dicts(raw):
        title = as_str(entry.get("title"))
        if not title:
            continue
        standouts.append(Standout(
            title=title[:255],
            description=as_str(entry.get("description")),
            opportunity_score=to_storage_score(entry.get("opportunity_score")),
            recommendation=as_str(entry.get("recommendation")),
        ))
        if len(standouts) >= MAX_STANDOUTS:
            break
    return standouts


async def find_deficits(ctx: GapContext) -> List[Deficit]:
    user_prompt = f"""User's Planned Features:
{_user_feature_block(ctx)}

Competitor Features (aggregated from all competitors):
{_competitor_feature_block(ctx)}

Identify 3-{MAX_DEFICITS} significant DEFICITS - features that competitors have that the user is missing.

Focus on:
- Features that 3+ competitors offer (table stakes)
- Features critical to the target audience ({ctx.target_audience})
- Features that create competitive disadvantage"""
    try:
        result = await complete(
            system=_DEFICIT_SYSTEM_PROMPT, user=user_prompt, shape=_DEFICIT_SHAPE,
            temperature=0.4, context="GAPS",
        )
    except ServiceError as exc:
        logger.warning("[GAPS] Deficit analysis failed: %s", exc)
        return []
    return parse_deficits(result.get("deficits"))


async def find_standouts(ctx: GapContext) -> List[Standout]:
    user_prompt = f"""User's Planned Features:
{_user_feature_block(ctx)}

Competitor Features:
{_competitor_feature_block(ctx)}

Identify 2-{MAX_STANDOUTS} STANDOUTS - unique features or approaches the user has that competitors lack.
Rate each with an opportunity_score from 0 to 10 (potential competitive advantage).

Focus on:
- Truly unique capabilities
- Novel approaches to common problems
- Underserved user needs addressed"""
    try:
        result = await complete(
            system=_STANDOUT_SYSTEM_PROMPT, user=user_prompt, shape=_STANDOUT_SHAPE,
            temperature=0.4, context="GAPS",
        )
    except ServiceError as exc:
        logger.warning("[GAPS] Standout analysis failed: %s", exc)
        return []
    return parse_standouts(result.get("standouts"))


async def analyze_gaps(ctx: GapContext) -> Tuple[List[Deficit], List[Standout]]:
    """Deficits and standouts, computed concurrently."""
    deficits, standouts = await asyncio.gather(find_deficits(ctx), find_standouts(ctx))
    logger.info("[GAPS] %d deficits, %d standouts", len(deficits), len(standouts))
    return deficits, standouts


def fallback_blue_ocean(target_audience: str) -> BlueOcean:
    return BlueOcean(
        market_vacuum_title="Market Analysis",
        description="Further market research recommended to identify specific opportunities.",
        supporting_evidence=[],
        target_segment=target_audience,
        estimated_opportunity="medium",
        implementation_difficulty="moderate",
        strategic_recommendation="Conduct additional market research to identify opportunities.",
    )


def parse_blue_ocean(result: Dict[str, Any], target_audience: str) -> BlueOcean:
    return BlueOcean(
        market_vacuum_title=as_str(result.get("market_vacuum_title"), "Market Opportunity")[:255],
        description=as_str(result.get("description"), "An opportunity exists in this market space."),
        supporting_evidence=as_str_list(result.get("supporting_evidence")),
        target_segment=as_str(result.get("target_segment"), target_audience),
        estimated_opportunity=as_choice(result.get("estimated_opportunity"), OPPORTUNITY_LEVELS, "medium"),
        implementation_difficulty=as_choice(
            result.get("implementation_difficulty"), DIFFICULTY_LEVELS, "moderate",
        ),
        strategic_recommendation=as_str(
            result.get("strategic_recommendation"), "Focus on differentiation.",
        ),
    )


async def find_blue_ocean(
    ctx: GapContext,
    deficits: Sequence[Deficit],
    standouts: Sequence[Standout],
) -> BlueOcean:
    competitor_lines = "\n".join(
        f"{name}: {desc or 'No description'}" for name, desc, _ in ctx.competitors
    ) or "(no competitors found)"
    deficit_lines = "\n".join(
        f"- {d.title} ({d.severity}): {d.description}" for d in deficits
    ) or "(none)"
    standout_lines = "\n".join(
        f"- {s.title} (score: {s.opportunity_score:.0f}/100): {s.description}" for s in standouts
    ) or "(none)"

    user_prompt = f"""Market Context:
User's App: {ctx.app_name} targeting {ctx.target_audience}

Competitors:
{competitor_lines}

Deficits Identified:
{deficit_lines}

Standouts Identified:
{standout_lines}

Based on this analysis, identify ONE specific "Blue Ocean" opportunity:
- A market vacuum or underserved need
- Based on competitor weaknesses or gaps
- Aligned with user's planned features or easily achievable
- Has viable commercial potential"""
    try:
        result = await complete(
            system=_BLUE_OCEAN_SYSTEM_PROMPT, user=user_prompt, shape=_BLUE_OCEAN_SHAPE,
            temperature=0.5, context="GAPS",
        )
    except ServiceError as exc:
        logger.warning("[GAPS] Blue Ocean discovery failed: %s", exc)
        return fallback_blue_ocean(ctx.target_audience)
    return parse_blue_ocean(result, ctx.target_audience)
