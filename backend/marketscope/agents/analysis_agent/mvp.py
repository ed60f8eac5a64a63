"""MVP prioritization — P0/P1/P2 for every user feature.

Coverage is enforced here, not trusted to the model: any feature the model
skipped (or answered with an invalid index or priority) receives the even-split
default used when the service fails outright.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from ...constants import DEFAULT_PRIORITY_REASONING, MVP_PRIORITIES
from ...errors import ServiceError
from ...services.openai_client import complete
from .coerce import as_dicts, as_float, as_str

logger = logging.getLogger(__name__)


@dataclass
class PriorityAssignment:
    priority: str
    reasoning: str


_SYSTEM_PROMPT = "You are a product strategy expert. Prioritize features for MVP development."

_SHAPE = """{
  "priorities": [
    {
      "feature_index": <0-based index matching input order>,
      "priority": "P0" or "P1" or "P2",
      "reasoning": "brief explanation"
    }
  ]
}"""


def default_priority(index: int, count: int) -> str:
    """Even split: first third P0, second third P1, rest P2."""
    if index < count / 3:
        return "P0"
    if index < count * 2 / 3:
        return "P1"
    return "P2"


def default_assignments(count: int) -> List[PriorityAssignment]:
    return [
        PriorityAssignment(default_priority(i, count), DEFAULT_PRIORITY_REASONING)
        for i in range(count)
    ]


def _feature_index(value: Any) -> Optional[int]:
    number = as_float(value)
    if number is None or number != int(number):
        return None
    return int(number)


def reconcile_priorities(count: int, raw: Any) -> List[PriorityAssignment]:
    """Exactly *count* assignments; the first valid answer per feature wins."""
    chosen: List[Optional[PriorityAssignment]] = [None] * count
    for entry in as_dicts(raw):
        idx = _feature_index(entry.get("feature_index"))
        priority = as_str(entry.get("priority")).upper()
        if idx is None or not 0 <= idx < count or priority not in MVP_PRIORITIES:
            continue
        if chosen[idx] is None:
            chosen[idx] = PriorityAssignment(
                priority,
                as_str(entry.get("reasoning"), "Priority determined by strategic analysis"),
            )

    missing = sum(1 for a in chosen if a is None)
    if missing:
        logger.info("[MVP] %d/%d features not prioritized by the model — using defaults", missing, count)
    defaults = default_assignments(count)
    return [a if a is not None else defaults[i] for i, a in enumerate(chosen)]


async def prioritize_features(
    features: Sequence[Tuple[str, Optional[str]]],
    *,
    competitor_summary: str,
    deficit_summary: str,
) -> List[PriorityAssignment]:
    """Priority for each feature, aligned with *features*. Never raises ServiceError."""
    if not features:
        return []

    feature_lines = "\n".join(
        f"Feature {i}: {name}" + (f" - {desc}" if desc else "")
        for i, (name, desc) in enumerate(features)
    )
    user_prompt = f"""User's Features (0-based index):
{feature_lines}

Competitor Analysis: {competitor_summary or '(no competitors found)'}
Gap Analysis Deficits: {deficit_summary or '(none)'}

For EACH feature, assign a priority:

- P0 (Must Have for MVP): core value proposition, critical to the main user problem,
  necessary for competitive parity.
- P1 (Competitive Parity): important for competition, expected by users,
  should ship in the first full release.
- P2 (Future Delight): nice to have, delighters and innovations, can wait."""
    try:
        result = await complete(
            system=_SYSTEM_PROMPT, user=user_prompt, shape=_SHAPE,
            temperature=0.3, context="MVP",
        )
    except ServiceError as exc:
        logger.warning("[MVP] Prioritization failed — even split: %s", exc)
        return default_assignments(len(features))
    return reconcile_priorities(len(features), result.get("priorities"))
