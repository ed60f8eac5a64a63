"""Positioning map — value vs. complexity for every entity.

One batched completion covers the user app and all competitors. The quadrant
is computed here by ``classify_quadrant``; the model never supplies it.

Response entries are joined to competitors by case-insensitive exact name.
Names that match nothing are dropped, logged, and counted. Any entity left
without a position (the user app included) gets its synthetic default, so the
map always has one row per entity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ...constants import (
    COMPLEXITY_THRESHOLD,
    DEFAULT_COMPETITOR_BASE,
    DEFAULT_USER_POSITION,
    ENTITY_COMPETITOR,
    ENTITY_USER_APP,
    MAX_SCORE,
    MIN_SCORE,
    QUADRANT_BASIC_TOOLS,
    QUADRANT_BLOATED,
    QUADRANT_FEATURE_RICH,
    QUADRANT_SWEET_SPOT,
    VALUE_THRESHOLD,
)
from ...errors import ServiceError
from ...services.openai_client import complete
from .coerce import as_bool, as_dicts, as_float, as_str, clamp

logger = logging.getLogger(__name__)


@dataclass
class PositionedEntity:
    """A competitor to place on the map."""

    entity_id: Any
    name: str
    feature_names: List[str] = field(default_factory=list)


@dataclass
class Position:
    entity_type: str
    entity_id: Optional[Any]
    entity_name: str
    value_score: float
    complexity_score: float
    reasoning: str
    quadrant: str


@dataclass
class PositioningResult:
    positions: List[Position]
    unmatched_names: List[str] = field(default_factory=list)
    defaulted: int = 0


def classify_quadrant(value: float, complexity: float) -> str:
    if value >= VALUE_THRESHOLD:
        return QUADRANT_SWEET_SPOT if complexity < COMPLEXITY_THRESHOLD else QUADRANT_FEATURE_RICH
    return QUADRANT_BASIC_TOOLS if complexity < COMPLEXITY_THRESHOLD else QUADRANT_BLOATED


def _position(entity_type, entity_id, name, value, complexity, reasoning) -> Position:
    value = clamp(value, MIN_SCORE, MAX_SCORE)
    complexity = clamp(complexity, MIN_SCORE, MAX_SCORE)
    return Position(
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=name,
        value_score=value,
        complexity_score=complexity,
        reasoning=reasoning,
        quadrant=classify_quadrant(value, complexity),
    )


def default_user_position(app_name: str) -> Position:
    value, complexity = DEFAULT_USER_POSITION
    return _position(
        ENTITY_USER_APP, None, app_name, value, complexity,
        "Default positioning - sweet spot target",
    )


def default_competitor_position(competitor: PositionedEntity, index: int) -> Position:
    base_value, base_complexity = DEFAULT_COMPETITOR_BASE
    variation = (index % 3) - 1  # -1, 0, 1
    return _position(
        ENTITY_COMPETITOR, competitor.entity_id, competitor.name,
        base_value + variation, base_complexity + variation * 0.5,
        "Default positioning based on competitor type",
    )


def default_positioning(app_name: str, competitors: Sequence[PositionedEntity]) -> List[Position]:
    return [default_user_position(app_name)] + [
        default_competitor_position(c, i) for i, c in enumerate(competitors)
    ]


def reconcile_positions(
    app_name: str,
    competitors: Sequence[PositionedEntity],
    raw: Any,
) -> PositioningResult:
    """Join model positions to entities; fill every gap with its default."""
    by_name: Dict[str, int] = {}
    for i, c in enumerate(competitors):
        by_name.setdefault(c.name.strip().lower(), i)

    user_position: Optional[Position] = None
    competitor_positions: Dict[int, Position] = {}
    unmatched: List[str] = []

    for entry in as_dicts(raw):
        value = as_float(entry.get("value_score"))
        complexity = as_float(entry.get("complexity_score"))
        if value is None or complexity is None:
            continue
        name = as_str(entry.get("entity_name"))
        reasoning = as_str(entry.get("reasoning"), "Positioned based on feature analysis")
        key = name.lower()

        is_user = as_bool(entry.get("is_user_app"))
        if is_user is None:
            is_user = key == app_name.strip().lower() and key not in by_name
        if is_user:
            if user_position is None:
                user_position = _position(ENTITY_USER_APP, None, app_name, value, complexity, reasoning)
            continue

        idx = by_name.get(key)
        if idx is None:
            unmatched.append(name)
            continue
        if idx not in competitor_positions:
            c = competitors[idx]
            competitor_positions[idx] = _position(
                ENTITY_COMPETITOR, c.entity_id, c.name, value, complexity, reasoning,
            )

    defaulted = 0
    if user_position is None:
        user_position = default_user_position(app_name)
        defaulted += 1
    positions = [user_position]
    for i, c in enumerate(competitors):
        if i not in competitor_positions:
            defaulted += 1
        positions.append(competitor_positions.get(i) or default_competitor_position(c, i))

    if unmatched:
        logger.warning(
            "[POSITIONING] %d unmatched entity names dropped: %s", len(unmatched), unmatched,
        )
    return PositioningResult(positions=positions, unmatched_names=unmatched, defaulted=defaulted)


_SYSTEM_PROMPT = "You are evaluating apps on two dimensions: Value and Complexity."

_SHAPE = """{
  "positions": [
    {
      "entity_name": "app name exactly as given",
      "is_user_app": true or false,
      "value_score": <number 0-10>,
      "complexity_score": <number 0-10>,
      "reasoning": "brief explanation"
    }
  ]
}"""


async def map_positions(
    *,
    app_name: str,
    user_features: Sequence[str],
    competitors: Sequence[PositionedEntity],
) -> PositioningResult:
    """Positions for the user app and every competitor. Never raises ServiceError."""
    competitor_block = "\n\n".join(
        f"{c.name}:\nFeatures: {', '.join(c.feature_names) or 'N/A'}" for c in competitors
    ) or "(no competitors)"
    user_prompt = f"""Evaluate the following apps for a 2x2 positioning map:

User's App: {app_name}
Features:
{chr(10).join(f'- {f}' for f in user_features) or '(none)'}

Competitors:
{competitor_block}

For EACH app (user + {len(competitors)} competitors), score:

1. Value Score (0-10): user value delivered (problem-solving effectiveness,
   feature richness, user experience, differentiation)
2. Complexity Score (0-10): implementation and usage complexity (technical
   sophistication, learning curve, setup effort, feature bloat)

Include ALL apps: the user's app (is_user_app: true) and all {len(competitors)} competitors (is_user_app: false)."""
    try:
        result = await complete(
            system=_SYSTEM_PROMPT, user=user_prompt, shape=_SHAPE,
            temperature=0.3, context="POSITIONING",
        )
    except ServiceError as exc:
        logger.warning("[POSITIONING] Positioning failed — synthetic layout: %s", exc)
        positions = default_positioning(app_name, competitors)
        return PositioningResult(positions=positions, defaulted=len(positions))
    return reconcile_positions(app_name, competitors, result.get("positions"))
