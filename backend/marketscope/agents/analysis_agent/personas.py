"""Persona & simulated review generation.

Three personas, one completion per fixed type, generated concurrently and
returned in ``PERSONA_TYPES`` order. Any field the model leaves empty is
taken from the hardcoded persona for that type; a failed call yields the
hardcoded persona outright.

Reviews: one completion asking for 10 reviews (4 positive, 4 mixed,
2 negative). Failure yields no reviews.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...constants import PERSONA_TYPES, REVIEW_COUNT, REVIEW_SENTIMENTS
from ...errors import ServiceError
from ...services.openai_client import complete
from .coerce import as_choice, as_dicts, as_int, as_str, as_str_list, clamp

logger = logging.getLogger(__name__)


@dataclass
class PersonaProfile:
    persona_type: str
    name: str
    title: str
    description: str
    pain_points: List[str]
    priorities: List[str]
    behavior_profile: str
    system_prompt: str


@dataclass
class ReviewDraft:
    reviewer_name: str
    reviewer_profile: str
    rating: int
    review_text: str
    sentiment: str
    highlighted_features: List[str] = field(default_factory=list)
    pain_points_addressed: List[str] = field(default_factory=list)


# ── Hardcoded personas by type ───────────────────────────────────────────

_DEFAULT_BEHAVIOR = "Thorough researcher who evaluates multiple options before making a decision."

_DEFAULT_PERSONAS: Dict[str, Dict[str, Any]] = {
    "price_sensitive": {
        "name": "Budget-Conscious Beth",
        "title": "Freelance Designer",
        "description": (
            "Beth is a freelance designer who carefully manages her tool budget. "
            "She looks for affordable solutions that provide good value."
        ),
        "pain_points": ["Limited budget", "Need cost-effective tools", "Concerned about subscription fatigue"],
        "priorities": ["price", "value", "essential features"],
    },
    "power_user": {
        "name": "Tech-Savvy Tom",
        "title": "Senior Developer",
        "description": (
            "Tom is an experienced developer who demands powerful features and customization. "
            "He values efficiency and advanced capabilities."
        ),
        "pain_points": ["Limited by basic tools", "Need advanced features", "Want automation and integrations"],
        "priorities": ["functionality", "customization", "integrations", "performance"],
    },
    "corporate_buyer": {
        "name": "Corporate Carol",
        "title": "IT Manager",
        "description": (
            "Carol evaluates software for her organization. "
            "She focuses on security, compliance, and enterprise features."
        ),
        "pain_points": ["Need enterprise security", "Compliance requirements", "Team management complexity"],
        "priorities": ["security", "compliance", "support", "scalability", "ROI"],
    },
}

_SYSTEM_PROMPT_TEMPLATES: Dict[str, str] = {
    "price_sensitive": (
        "You are a price-sensitive user evaluating {app}. You are very budget-conscious and always "
        "looking for the best value. You prioritize cost over features and are skeptical of premium "
        "pricing. You compare prices extensively and ask about free tiers, discounts, and alternatives. "
        "Be realistic about budget constraints and express concerns about ongoing costs."
    ),
    "power_user": (
        "You are a power user evaluating {app}. You are technically savvy and demand advanced features, "
        "customization options, and robust functionality. You ask detailed questions about capabilities, "
        "integrations, API access, and scalability. You're willing to pay for quality but expect "
        "excellence. You're critical of limitations and missing features."
    ),
    "corporate_buyer": (
        "You are a corporate buyer evaluating {app} for your organization. You focus on enterprise "
        "features like security, compliance, admin controls, scalability, and support. You ask about SSO, "
        "data privacy, SLAs, onboarding, and vendor stability. You need to justify the purchase to "
        "stakeholders and require clear ROI."
    ),
}

_PERSONA_SYSTEM_PROMPT = "You are a UX researcher creating user personas."

_PERSONA_SHAPE = """{
  "name": "memorable persona name",
  "title": "job title/role",
  "description": "2-3 paragraph backstory and characteristics",
  "pain_points": ["4-5 specific pain points"],
  "priorities": ["what matters most to them"],
  "behavior_profile": "how they research, evaluate, and buy software",
  "system_prompt": "second-person chat simulation prompt (\\"You are...\\")"
}"""

_REVIEW_SYSTEM_PROMPT = (
    "You are simulating realistic user reviews for a new app based on market research."
)

_REVIEW_SHAPE = """{
  "reviews": [
    {
      "reviewer_name": "realistic name",
      "reviewer_profile": "brief descriptor, e.g. Small business owner",
      "rating": <integer 1-5>,
      "review_text": "2-4 sentences, realistic tone",
      "sentiment": "positive" or "mixed" or "negative",
      "highlighted_features": ["feature names mentioned"],
      "pain_points_addressed": ["pain points referenced"]
    }
  ]
}"""


def default_system_prompt(persona_type: str, app_name: str) -> str:
    template = _SYSTEM_PROMPT_TEMPLATES.get(persona_type, _SYSTEM_PROMPT_TEMPLATES["price_sensitive"])
    return template.format(app=app_name)


def default_persona(persona_type: str, app_name: str) -> PersonaProfile:
    data = _DEFAULT_PERSONAS[persona_type]
    return PersonaProfile(
        persona_type=persona_type,
        name=data["name"],
        title=data["title"],
        description=data["description"],
        pain_points=list(data["pain_points"]),
        priorities=list(data["priorities"]),
        behavior_profile=_DEFAULT_BEHAVIOR,
        system_prompt=default_system_prompt(persona_type, app_name),
    )


def merge_persona(persona_type: str, app_name: str, result: Dict[str, Any]) -> PersonaProfile:
    """Model output with every empty field filled from the default persona."""
    fallback = default_persona(persona_type, app_name)
    return PersonaProfile(
        persona_type=persona_type,
        name=as_str(result.get("name"), fallback.name)[:255],
        title=as_str(result.get("title"), fallback.title)[:255],
        description=as_str(result.get("description"), fallback.description),
        pain_points=as_str_list(result.get("pain_points")) or fallback.pain_points,
        priorities=as_str_list(result.get("priorities")) or fallback.priorities,
        behavior_profile=as_str(result.get("behavior_profile"), fallback.behavior_profile),
        system_prompt=as_str(result.get("system_prompt"), fallback.system_prompt),
    )


async def generate_persona(
    persona_type: str,
    *,
    app_name: str,
    target_audience: str,
    feature_names: Sequence[str],
) -> PersonaProfile:
    user_prompt = f"""Create a detailed {persona_type.replace('_', ' ')} persona for:
App: {app_name}
Target Audience: {target_audience}
Features: {', '.join(feature_names)}

The system_prompt is used for AI chat simulation:
- Written in second person ("You are...")
- Captures personality, priorities, objections, questions they'd ask
- Realistic and grounded in this persona type"""
    try:
        result = await complete(
            system=_PERSONA_SYSTEM_PROMPT, user=user_prompt, shape=_PERSONA_SHAPE,
            temperature=0.7, context="PERSONA",
        )
    except ServiceError as exc:
        logger.warning("[PERSONA] %s generation failed — default persona: %s", persona_type, exc)
        return default_persona(persona_type, app_name)
    return merge_persona(persona_type, app_name, result)


async def generate_personas(
    *,
    app_name: str,
    target_audience: str,
    feature_names: Sequence[str],
) -> List[PersonaProfile]:
    """One persona per type, in fixed type order."""
    results = await asyncio.gather(
        *(
            generate_persona(
                persona_type,
                app_name=app_name,
                target_audience=target_audience,
                feature_names=feature_names,
            )
            for persona_type in PERSONA_TYPES
        ),
        return_exceptions=True,
    )
    personas: List[PersonaProfile] = []
    for persona_type, result in zip(PERSONA_TYPES, results):
        if isinstance(result, Exception):
            logger.warning("[PERSONA] %s crashed — default persona: %s", persona_type, result)
            personas.append(default_persona(persona_type, app_name))
        else:
            personas.append(result)
    return personas


# ── Reviews ──────────────────────────────────────────────────────────────

_SENTIMENT_RATING = {"positive": 4, "mixed": 3, "negative": 2}


def sentiment_for_rating(rating: int) -> str:
    if rating >= 4:
        return "positive"
    if rating == 3:
        return "mixed"
    return "negative"


def parse_review(entry: Dict[str, Any]) -> Optional[ReviewDraft]:
    text = as_str(entry.get("review_text"))
    if not text:
        return None
    sentiment = as_choice(entry.get("sentiment"), REVIEW_SENTIMENTS, "")
    rating = as_int(entry.get("rating"))
    if rating is None:
        rating = _SENTIMENT_RATING.get(sentiment, 3)
    rating = int(clamp(rating, 1, 5))
    return ReviewDraft(
        reviewer_name=as_str(entry.get("reviewer_name"), "Anonymous User")[:255],
        reviewer_profile=as_str(entry.get("reviewer_profile"))[:255],
        rating=rating,
        review_text=text,
        sentiment=sentiment or sentiment_for_rating(rating),
        highlighted_features=as_str_list(entry.get("highlighted_features")),
        pain_points_addressed=as_str_list(entry.get("pain_points_addressed")),
    )


async def generate_reviews(
    *,
    app_name: str,
    description: str,
    target_audience: str,
    feature_names: Sequence[str],
    competitors: Sequence[Tuple[str, Optional[str]]],
) -> List[ReviewDraft]:
    """Simulated user reviews; failure returns []."""
    competitor_lines = "\n".join(
        f"{name}: {desc or 'No description'}" for name, desc in list(competitors)[:3]
    ) or "(no competitors found)"
    user_prompt = f"""App: {app_name}
Description: {description}
Features: {', '.join(feature_names)}
Target Audience: {target_audience}

Market Context (top competitors):
{competitor_lines}

Generate {REVIEW_COUNT} realistic user reviews (mix of ratings):
- 4 positive reviews (4-5 stars)
- 4 mixed reviews (3 stars)
- 2 negative reviews (1-2 stars)

Base reviews on real pain points from the competitor analysis and on how the
planned features address (or don't address) those needs. Make reviews feel
authentic - not overly promotional, include realistic concerns."""
    try:
        result = await complete(
            system=_REVIEW_SYSTEM_PROMPT, user=user_prompt, shape=_REVIEW_SHAPE,
            temperature=0.8, context="PERSONA",
        )
    except ServiceError as exc:
        logger.warning("[PERSONA] Review generation failed: %s", exc)
        return []

    reviews = [r for r in (parse_review(e) for e in as_dicts(result.get("reviews"))) if r is not None]
    return reviews[:REVIEW_COUNT]
