"""Competitor discovery and enrichment.

Discovery asks the search-augmented service for 4 direct + 2 indirect
competitors. If its raw answer is not parseable JSON, the text is handed to
the completion service for structured extraction. Any failure yields an empty
list: the pipeline continues without competitors.

Enrichment runs once per competitor, concurrently. A failed enrichment only
degrades that competitor (no features, empty position).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ...constants import (
    FEATURE_CATEGORIES,
    MAX_DESCRIPTION_IN_QUERY,
    MAX_DIRECT_COMPETITORS,
    MAX_ENRICHED_FEATURES,
    MAX_INDIRECT_COMPETITORS,
    MAX_QUERY_FEATURES,
)
from ...errors import ServiceError
from ...services.openai_client import complete, parse_json_object
from ...services.search_client import search_complete
from .coerce import as_bool, as_dicts, as_int, as_str

logger = logging.getLogger(__name__)


@dataclass
class CompetitorCandidate:
    name: str
    competitor_type: str  # direct | indirect
    description: str = ""
    website_url: Optional[str] = None
    market_position: Optional[str] = None
    pricing_model: Optional[str] = None
    founded_year: Optional[int] = None


@dataclass
class EnrichedFeature:
    name: str
    description: str = ""
    category: Optional[str] = None
    is_paid: Optional[bool] = None


@dataclass
class Enrichment:
    founded_year: Optional[int] = None
    market_position: str = ""
    features: List[EnrichedFeature] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------
_SEARCH_SYSTEM_PROMPT = (
    "You are a market research assistant. Find direct and indirect competitors "
    "for the given app idea. Return results in structured JSON format."
)

_EXTRACT_SYSTEM_PROMPT = (
    "Extract competitor information from the following text and return it as structured JSON."
)

_ENRICH_SYSTEM_PROMPT = (
    "You are a market research analyst. Enrich competitor data and extract key features."
)

_COMPETITOR_SHAPE = """{
  "competitors": [
    {
      "name": "company/product name",
      "type": "direct" or "indirect",
      "description": "2-3 sentences about what they do",
      "website_url": "https://...",
      "market_position": "their positioning/unique angle",
      "pricing_model": "Freemium | Subscription | One-time | Enterprise | ...",
      "founded_year": <integer or null>
    }
  ]
}"""

_ENRICH_SHAPE = """{
  "founded_year": <integer or null>,
  "market_position": "refined positioning",
  "features": [
    {
      "name": "feature name",
      "description": "brief description",
      "category": "Core" or "Premium" or "Integration" or "Mobile",
      "is_paid": true or false or null
    }
  ]
}"""


def build_search_query(
    *,
    app_name: str,
    description: str,
    target_audience: str,
    feature_names: Sequence[str],
) -> str:
    """Natural-language query from the idea and up to 5 feature names."""
    key_features = ", ".join(feature_names[:MAX_QUERY_FEATURES])
    return (
        f"Find competitors and alternatives for {app_name}, which is "
        f"{description[:MAX_DESCRIPTION_IN_QUERY]}. Target audience: {target_audience}. "
        f"Similar apps in the market that offer {key_features}."
    )


def _build_search_prompt(query: str) -> str:
    return f"""{query}

Please identify:
- {MAX_DIRECT_COMPETITORS} direct competitors (apps that solve the exact same problem)
- {MAX_INDIRECT_COMPETITORS} indirect competitors (apps that solve similar problems differently or serve adjacent markets)

For each competitor, provide:
- name (company/product name)
- type (direct or indirect)
- description (2-3 sentences about what they do)
- website_url
- market_position (their positioning/unique angle)
- pricing_model (Freemium, Subscription, One-time, Enterprise, etc.)
- founded_year (if available)

Return as a JSON object with a "competitors" array:
{_COMPETITOR_SHAPE}"""


def _to_candidate(entry: Dict[str, Any]) -> Optional[CompetitorCandidate]:
    name = as_str(entry.get("name"))
    if not name:
        return None
    return CompetitorCandidate(
        name=name[:255],
        competitor_type=as_str(entry.get("type")).lower(),
        description=as_str(entry.get("description")),
        website_url=as_str(entry.get("website_url")) or None,
        market_position=as_str(entry.get("market_position")) or None,
        pricing_model=as_str(entry.get("pricing_model"))[:255] or None,
        founded_year=as_int(entry.get("founded_year")),
    )


def select_competitors(raw: Any) -> List[CompetitorCandidate]:
    """Keep at most 4 direct then 2 indirect competitors, in response order."""
    candidates = [c for c in (_to_candidate(e) for e in as_dicts(raw)) if c is not None]
    direct = [c for c in candidates if c.competitor_type == "direct"][:MAX_DIRECT_COMPETITORS]
    indirect = [c for c in candidates if c.competitor_type == "indirect"][:MAX_INDIRECT_COMPETITORS]
    return direct + indirect


async def _extract_with_completion(content: str) -> Dict[str, Any]:
    """Second pass: structure free text through the completion service."""
    return await complete(
        system=_EXTRACT_SYSTEM_PROMPT,
        user=(
            "Extract competitors from this text and return a JSON object with a "
            f"\"competitors\" array.\n\nText:\n{content}"
        ),
        shape=_COMPETITOR_SHAPE,
        temperature=0.2,
        context="DISCOVERY",
    )


async def discover_competitors(
    *,
    app_name: str,
    description: str,
    target_audience: str,
    feature_names: Sequence[str],
) -> List[CompetitorCandidate]:
    """Find direct/indirect competitors. Never raises; failure returns []."""
    query = build_search_query(
        app_name=app_name,
        description=description,
        target_audience=target_audience,
        feature_names=feature_names,
    )
    try:
        content = await search_complete(
            system=_SEARCH_SYSTEM_PROMPT,
            user=_build_search_prompt(query),
        )
        try:
            parsed = parse_json_object(content)
        except ValueError:
            logger.info("[DISCOVERY] Search response is not JSON — extracting with completion service")
            parsed = await _extract_with_completion(content)
    except Exception as exc:
        logger.warning("[DISCOVERY] Competitor search failed: %s", exc)
        return []

    competitors = select_competitors(parsed.get("competitors"))
    logger.info(
        "[DISCOVERY] %d competitors kept: %s",
        len(competitors), [c.name for c in competitors],
    )
    return competitors


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------
def _canonical_category(value: Any) -> Optional[str]:
    text = as_str(value).lower()
    for category in FEATURE_CATEGORIES:
        if category.lower() == text:
            return category
    return None


def parse_enrichment(result: Dict[str, Any]) -> Enrichment:
    features: List[EnrichedFeature] = []
    for entry in as_dicts(result.get("features")):
        name = as_str(entry.get("name"))
        if not name:
            continue
        features.append(EnrichedFeature(
            name=name[:255],
            description=as_str(entry.get("description")),
            category=_canonical_category(entry.get("category")),
            is_paid=as_bool(entry.get("is_paid")),
        ))
        if len(features) >= MAX_ENRICHED_FEATURES:
            break
    return Enrichment(
        founded_year=as_int(result.get("founded_year")),
        market_position=as_str(result.get("market_position")),
        features=features,
    )


async def enrich_competitor(name: str, description: str) -> Enrichment:
    """Estimate founded year, refine positioning, list 5–8 features. Never raises."""
    user_prompt = f"""Competitor: {name}
Description: {description}

Tasks:
1. If missing, estimate founded_year based on market knowledge
2. Refine market_position to be concise and insightful
3. List 5-8 key features this competitor offers"""
    try:
        result = await complete(
            system=_ENRICH_SYSTEM_PROMPT,
            user=user_prompt,
            shape=_ENRICH_SHAPE,
            temperature=0.3,
            context="DISCOVERY",
        )
    except ServiceError as exc:
        logger.warning("[DISCOVERY] Enrichment failed for %s: %s", name, exc)
        return Enrichment()
    return parse_enrichment(result)


async def enrich_competitors(candidates: Sequence[CompetitorCandidate]) -> List[Enrichment]:
    """Enrich every candidate concurrently; results keep candidate order."""
    results = await asyncio.gather(
        *(enrich_competitor(c.name, c.description) for c in candidates),
        return_exceptions=True,
    )
    enrichments: List[Enrichment] = []
    for candidate, result in zip(candidates, results):
        if isinstance(result, Exception):
            logger.warning("[DISCOVERY] Enrichment crashed for %s: %s", candidate.name, result)
            enrichments.append(Enrichment())
        else:
            enrichments.append(result)
    return enrichments
