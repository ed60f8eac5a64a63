"""Feature normalization — cluster semantically equivalent features.

The model receives a flat numbered list of every user and competitor feature
and answers with groups of 1-based indices. ``reconcile_groups`` then enforces
the partition: every feature lands in exactly one group, whatever the model
returned. Out-of-range or repeated indices are ignored (first group wins) and
any feature left over becomes a singleton group named after itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Hashable, List, Optional, Sequence

from ...errors import ServiceError
from ...services.openai_client import complete
from .coerce import as_dicts, as_int, as_list, as_str

logger = logging.getLogger(__name__)


@dataclass
class FeatureRef:
    """One feature to normalize, with a stable key to map the result back."""

    key: Hashable
    name: str
    description: Optional[str] = None
    origin: str = "user"  # user | competitor


@dataclass
class FeatureGroup:
    canonical_name: str
    description: str = ""
    member_keys: List[Hashable] = field(default_factory=list)


_SYSTEM_PROMPT = """You are a product feature analyst expert at identifying when different feature names refer to the same underlying capability.

Your task is to group semantically similar features together, even if they use different terminology.

Examples of features that should be grouped:
- "Schema builder", "Database schema management", "Table structure designer" → "Database Schema Management"
- "Real-time collaboration", "Live editing", "Simultaneous editing" → "Real-time Collaboration"
- "API integration", "Third-party integrations", "External API connections" → "API & Third-party Integrations"

Guidelines:
1. Group features that represent the SAME core capability, even if worded differently
2. Create a clear, descriptive canonical name for each group
3. Don't over-group - only group features that are truly the same thing
4. Each feature index must appear in exactly ONE group"""

_GROUPS_SHAPE = """{
  "groups": [
    {
      "canonicalName": "Clear, descriptive name for the grouped feature",
      "description": "Brief description of what this feature group represents",
      "featureIndices": [1, 3, 7]
    }
  ]
}"""


def format_feature_list(features: Sequence[FeatureRef]) -> str:
    lines = []
    for idx, feature in enumerate(features, start=1):
        suffix = f" - {feature.description}" if feature.description else ""
        lines.append(f'{idx}. [{feature.origin}] "{feature.name}"{suffix}')
    return "\n".join(lines)


def _singleton(feature: FeatureRef) -> FeatureGroup:
    return FeatureGroup(
        canonical_name=feature.name,
        description=feature.description or "",
        member_keys=[feature.key],
    )


def identity_groups(features: Sequence[FeatureRef]) -> List[FeatureGroup]:
    """One group per feature."""
    return [_singleton(f) for f in features]


def reconcile_groups(features: Sequence[FeatureRef], raw_groups: Any) -> List[FeatureGroup]:
    """Turn the model's index groups into a strict partition of *features*."""
    assigned: set[int] = set()
    groups: List[FeatureGroup] = []

    for entry in as_dicts(raw_groups):
        members: List[int] = []
        for raw_idx in as_list(entry.get("featureIndices")):
            idx = as_int(raw_idx)
            if idx is None or not 1 <= idx <= len(features):
                continue
            position = idx - 1
            if position in assigned or position in members:
                continue
            members.append(position)
        if not members:
            continue
        assigned.update(members)
        first = features[members[0]]
        groups.append(FeatureGroup(
            canonical_name=as_str(entry.get("canonicalName"), first.name)[:255],
            description=as_str(entry.get("description")),
            member_keys=[features[i].key for i in members],
        ))

    leftovers = [f for i, f in enumerate(features) if i not in assigned]
    if leftovers:
        logger.info("[NORMALIZE] %d features left ungrouped by the model — adding singletons", len(leftovers))
    groups.extend(_singleton(f) for f in leftovers)
    return groups


async def normalize_features(features: Sequence[FeatureRef]) -> List[FeatureGroup]:
    """Group *features*; service failure degrades to identity normalization."""
    if not features:
        return []

    user_prompt = f"""Analyze these features and group semantically similar ones together:

{format_feature_list(features)}

"featureIndices" are the 1-based numbers from the list above.
If a feature is truly unique and doesn't match others, put it in its own group."""

    try:
        result = await complete(
            system=_SYSTEM_PROMPT,
            user=user_prompt,
            shape=_GROUPS_SHAPE,
            temperature=0.3,
            context="NORMALIZE",
        )
    except ServiceError as exc:
        logger.warning("[NORMALIZE] Grouping failed — identity normalization: %s", exc)
        return identity_groups(features)

    groups = reconcile_groups(features, result.get("groups"))
    logger.info("[NORMALIZE] %d features → %d groups", len(features), len(groups))
    return groups
