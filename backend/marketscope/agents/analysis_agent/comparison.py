"""Comparison engine — weighted parameters and batched entity scoring.

Parameters: the model proposes up to 10 weighted comparison parameters from
the normalized feature summary. Weights are renormalized to sum to 1.0. Any
failure (or an empty answer) substitutes ``DEFAULT_COMPARISON_PARAMETERS``.

Scoring: ONE completion per entity covering all parameters. Scores are matched
back to parameters by name (case-insensitive), never by position. A parameter
the model skipped gets ``DEFAULT_SCORE``. Every score is clamped to [0, 10].
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...constants import (
    DEFAULT_COMPARISON_PARAMETERS,
    DEFAULT_SCORE,
    DEFAULT_SCORE_REASONING,
    ENTITY_USER_APP,
    MAX_PARAMETERS,
    MAX_SCORE,
    MIN_SCORE,
)
from ...errors import ServiceError
from ...services.openai_client import complete
from .coerce import as_dicts, as_float, as_str, clamp

logger = logging.getLogger(__name__)


@dataclass
class ParameterSpec:
    name: str
    description: str
    weight: float


@dataclass
class EntityProfile:
    """The user app (``entity_id`` None) or one competitor."""

    entity_type: str
    entity_id: Optional[Any]
    name: str
    features: List[Tuple[str, Optional[str]]] = field(default_factory=list)


@dataclass
class ScoredCell:
    parameter_name: str
    score: float
    reasoning: str


_PARAMETER_SYSTEM_PROMPT = (
    "You are a product comparison expert. Determine the most relevant comparison "
    "parameters for evaluating apps in this space."
)

_PARAMETER_SHAPE = """{
  "parameters": [
    {
      "name": "parameter name (e.g. 'Real-time Collaboration')",
      "description": "what this measures",
      "weight": <importance 0.0-1.0; all weights sum to ~1.0>
    }
  ]
}"""

_SCORING_SYSTEM_PROMPT = (
    "You are evaluating apps on specific criteria. Provide objective scores with reasoning."
)

_SCORING_SHAPE = """{
  "scores": [
    {
      "parameter": "exact parameter name from the list",
      "score": <number 0-10>,
      "reasoning": "brief explanation of score"
    }
  ]
}"""


def default_parameters() -> List[ParameterSpec]:
    return [
        ParameterSpec(name=p["name"], description=p["description"], weight=float(p["weight"]))
        for p in DEFAULT_COMPARISON_PARAMETERS
    ]


def normalize_parameters(raw: Any) -> List[ParameterSpec]:
    """Drop nameless/duplicate entries, keep 10, rescale weights to sum to 1.0.

    Missing or negative weights count as 0; if nothing carries weight, the
    parameters share it equally.
    """
    params: List[ParameterSpec] = []
    seen: set[str] = set()
    for entry in as_dicts(raw):
        name = as_str(entry.get("name"))[:255]
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        weight = as_float(entry.get("weight"), 0.0)
        params.append(ParameterSpec(
            name=name,
            description=as_str(entry.get("description")),
            weight=max(weight, 0.0),
        ))
        if len(params) >= MAX_PARAMETERS:
            break

    if not params:
        return []
    total = sum(p.weight for p in params)
    for p in params:
        p.weight = p.weight / total if total > 0 else 1.0 / len(params)
    return params


async def generate_parameters(
    *,
    app_name: str,
    target_audience: str,
    feature_summary: str,
    competitor_names: Sequence[str],
) -> List[ParameterSpec]:
    """Weighted comparison parameters; never raises."""
    user_prompt = f"""App Category: {app_name}
Target Audience: {target_audience}
Features in this market (grouped by capability):
{feature_summary or '(none)'}
Competitors: {', '.join(competitor_names) or '(none found)'}

Determine {MAX_PARAMETERS} key parameters to compare these apps on. Parameters should be:
- Specific to this industry/app type
- Measurable or evaluable
- Important to the target audience
- Mix of functional and non-functional (UX, pricing, performance, etc.)"""
    try:
        result = await complete(
            system=_PARAMETER_SYSTEM_PROMPT,
            user=user_prompt,
            shape=_PARAMETER_SHAPE,
            temperature=0.4,
            context="MATRIX",
        )
    except ServiceError as exc:
        logger.warning("[MATRIX] Parameter generation failed — using defaults: %s", exc)
        return default_parameters()

    params = normalize_parameters(result.get("parameters"))
    if not params:
        logger.info("[MATRIX] Model returned no usable parameters — using defaults")
        return default_parameters()
    return params


def match_scores(parameters: Sequence[ParameterSpec], raw: Any) -> List[ScoredCell]:
    """One cell per parameter, in parameter order. The first answer per name wins."""
    answers: Dict[str, Dict[str, Any]] = {}
    for entry in as_dicts(raw):
        key = as_str(entry.get("parameter") or entry.get("name")).lower()
        if key and key not in answers:
            answers[key] = entry

    cells: List[ScoredCell] = []
    for param in parameters:
        entry = answers.get(param.name.lower())
        score = as_float(entry.get("score")) if entry else None
        if score is None:
            cells.append(ScoredCell(param.name, DEFAULT_SCORE, DEFAULT_SCORE_REASONING))
            continue
        cells.append(ScoredCell(
            parameter_name=param.name,
            score=clamp(score, MIN_SCORE, MAX_SCORE),
            reasoning=as_str(entry.get("reasoning"), "Score based on feature analysis"),
        ))
    return cells


def _describe_features(entity: EntityProfile) -> str:
    if not entity.features:
        return "(no features listed)"
    return "\n".join(
        f"- {name}: {description or 'No description'}" for name, description in entity.features
    )


async def score_entity(
    entity: EntityProfile,
    parameters: Sequence[ParameterSpec],
) -> List[ScoredCell]:
    """Score *entity* on every parameter with a single completion."""
    label = "User's planned app" if entity.entity_type == ENTITY_USER_APP else f"Competitor {entity.name}"
    param_lines = "\n".join(f"- {p.name}: {p.description}" for p in parameters)
    user_prompt = f"""Evaluate: {label}

Features:
{_describe_features(entity)}

Score this app on EACH of the following parameters from 0-10:
{param_lines}

Scale:
- 0-3: Poor/Missing
- 4-6: Average/Moderate
- 7-8: Good/Strong
- 9-10: Excellent/Best-in-class

Return one entry per parameter, using the exact parameter name."""
    try:
        result = await complete(
            system=_SCORING_SYSTEM_PROMPT,
            user=user_prompt,
            shape=_SCORING_SHAPE,
            temperature=0.3,
            context="MATRIX",
        )
    except ServiceError as exc:
        logger.warning("[MATRIX] Scoring failed for %s — default scores: %s", entity.name, exc)
        result = {}
    return match_scores(parameters, result.get("scores"))
