"""Centralized constants shared across the analysis agents and routes.

This module is the SINGLE SOURCE OF TRUTH for pipeline limits, fallback
tables, enumerations, and quadrant labels. Reused by:
  - Analysis agents (discovery, matrix, gaps, mvp, personas, positioning)
  - Pipeline orchestrator
  - API schemas
"""

from __future__ import annotations

# ── Discovery limits ────────────────────────────────────────────────────
MAX_DIRECT_COMPETITORS: int = 4
MAX_INDIRECT_COMPETITORS: int = 2
MAX_QUERY_FEATURES: int = 5          # feature names folded into the search query
MAX_DESCRIPTION_IN_QUERY: int = 200  # chars of the app description in the query
MAX_ENRICHED_FEATURES: int = 8

COMPETITOR_TYPES: tuple[str, ...] = ("direct", "indirect")
FEATURE_CATEGORIES: tuple[str, ...] = ("Core", "Premium", "Integration", "Mobile")

# ── Comparison matrix ───────────────────────────────────────────────────
MAX_PARAMETERS: int = 10
MIN_SCORE: float = 0.0
MAX_SCORE: float = 10.0
DEFAULT_SCORE: float = 5.0
DEFAULT_SCORE_REASONING: str = "Default score due to missing evaluation"
MATRIX_PROGRESS_INTERVAL: int = 10   # emit matrix_progress every N scored cells

ENTITY_USER_APP: str = "user_app"
ENTITY_COMPETITOR: str = "competitor"

# Fallback parameters: weights sum to exactly 1.0.
DEFAULT_COMPARISON_PARAMETERS: list[dict[str, object]] = [
    {"name": "User Experience", "description": "Ease of use and interface quality", "weight": 0.12},
    {"name": "Feature Completeness", "description": "Breadth and depth of features", "weight": 0.11},
    {"name": "Pricing", "description": "Value for money and pricing model", "weight": 0.10},
    {"name": "Performance", "description": "Speed and reliability", "weight": 0.10},
    {"name": "Mobile Support", "description": "Mobile app quality and features", "weight": 0.09},
    {"name": "Integration Capabilities", "description": "Third-party integrations", "weight": 0.10},
    {"name": "Customization", "description": "Ability to tailor to specific needs", "weight": 0.09},
    {"name": "Customer Support", "description": "Support quality and availability", "weight": 0.10},
    {"name": "Security", "description": "Data protection and privacy", "weight": 0.10},
    {"name": "Innovation", "description": "Unique features and forward-thinking", "weight": 0.09},
]

# ── Gap analysis ────────────────────────────────────────────────────────
MAX_DEFICITS: int = 5
MAX_STANDOUTS: int = 4
SEVERITIES: tuple[str, ...] = ("critical", "high", "medium", "low")
DEFAULT_SEVERITY: str = "medium"

# Standouts are generated on 0–10 and stored on 0–100.
STANDOUT_SCORE_MODEL_MAX: float = 10.0
STANDOUT_SCORE_STORAGE_FACTOR: float = 10.0

OPPORTUNITY_LEVELS: tuple[str, ...] = ("low", "medium", "high", "very_high")
DIFFICULTY_LEVELS: tuple[str, ...] = ("easy", "moderate", "hard", "very_hard")

# ── MVP ─────────────────────────────────────────────────────────────────
MVP_PRIORITIES: tuple[str, ...] = ("P0", "P1", "P2")
DEFAULT_PRIORITY_REASONING: str = "Default priority assignment"

# ── Personas & reviews ──────────────────────────────────────────────────
PERSONA_TYPES: tuple[str, ...] = ("price_sensitive", "power_user", "corporate_buyer")
REVIEW_SENTIMENTS: tuple[str, ...] = ("positive", "mixed", "negative")
REVIEW_COUNT: int = 10
CHAT_HISTORY_LIMIT: int = 10

# ── Positioning ─────────────────────────────────────────────────────────
QUADRANT_SWEET_SPOT: str = "High Value, Low Complexity (Sweet Spot)"
QUADRANT_FEATURE_RICH: str = "High Value, High Complexity (Feature Rich)"
QUADRANT_BASIC_TOOLS: str = "Low Value, Low Complexity (Basic Tools)"
QUADRANT_BLOATED: str = "Low Value, High Complexity (Bloated)"

VALUE_THRESHOLD: float = 7.0
COMPLEXITY_THRESHOLD: float = 5.0

# Synthetic layout used when positioning cannot be generated.
DEFAULT_USER_POSITION: tuple[float, float] = (7.0, 5.0)
DEFAULT_COMPETITOR_BASE: tuple[float, float] = (6.5, 5.5)
