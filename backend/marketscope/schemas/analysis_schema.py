"""Pydantic schemas for the analysis API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


# ── Requests ─────────────────────────────────────────────────────────────

class FeatureInput(BaseModel):
    """One planned feature of the user's app."""

    feature_name: str = Field(..., min_length=2, max_length=255)
    feature_description: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("feature_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        stripped = v.strip()
        if len(stripped) < 2:
            raise ValueError("Feature name must be at least 2 characters")
        return stripped

    @field_validator("feature_description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class AnalysisCreate(BaseModel):
    """App idea intake for a new competitive analysis."""

    app_name: str = Field(..., min_length=2, max_length=255)
    target_audience: str = Field(
        ...,
        min_length=10,
        description="Who the app is for, e.g. 'Freelance designers managing several clients'.",
    )
    description: str = Field(
        ...,
        min_length=50,
        max_length=5000,
        description="What the app does and which problem it solves.",
    )
    features: List[FeatureInput] = Field(..., min_length=1, max_length=50)

    @field_validator("app_name", "target_audience", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class PersonaMessageCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Message cannot be empty")
        return stripped


# ── Responses ────────────────────────────────────────────────────────────

AnalysisStatusLiteral = Literal["processing", "completed", "failed"]


class AnalysisCreatedResponse(BaseModel):
    analysis_id: UUID
    status: AnalysisStatusLiteral


class RerunResponse(BaseModel):
    analysis_id: UUID
    status: AnalysisStatusLiteral
    message: str = "Analysis rerun initiated"


class AnalysisSummary(BaseModel):
    """One row of the analysis list."""

    id: UUID
    app_name: str
    target_audience: str
    status: AnalysisStatusLiteral
    stage: str
    competitor_count: int = 0
    created_at: datetime


class AnalysisListResponse(BaseModel):
    records: List[AnalysisSummary] = Field(
        default_factory=list, description="Analyses sorted by created_at DESC"
    )


class MatrixProgressOut(BaseModel):
    completed: int
    total: int


class AnalysisStatusResponse(BaseModel):
    """Polling payload."""

    status: AnalysisStatusLiteral
    stage: str
    error_message: Optional[str] = None
    progress: Optional[MatrixProgressOut] = Field(
        default=None, description="Scored cells of the comparison matrix, while it is being built"
    )


class UserFeatureOut(BaseModel):
    id: UUID
    feature_name: str
    feature_description: Optional[str] = None
    order_index: int
    normalized_group_id: Optional[UUID] = None
    mvp_priority: Optional[Literal["P0", "P1", "P2"]] = None
    priority_reasoning: Optional[str] = None

    class Config:
        from_attributes = True


class CompetitorFeatureOut(BaseModel):
    id: UUID
    feature_name: str
    feature_description: Optional[str] = None
    feature_category: Optional[str] = None
    is_paid: Optional[bool] = None
    normalized_group_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class CompetitorOut(BaseModel):
    id: UUID
    name: str
    competitor_type: str
    description: Optional[str] = None
    website_url: Optional[str] = None
    market_position: Optional[str] = None
    pricing_model: Optional[str] = None
    founded_year: Optional[int] = None
    order_index: int
    features: List[CompetitorFeatureOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class NormalizedGroupOut(BaseModel):
    id: UUID
    canonical_name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ComparisonParameterOut(BaseModel):
    id: UUID
    parameter_name: str
    parameter_description: Optional[str] = None
    weight: float
    order_index: int

    class Config:
        from_attributes = True


class MatrixScoreOut(BaseModel):
    parameter_id: UUID
    entity_type: Literal["user_app", "competitor"]
    entity_id: Optional[UUID] = None
    score: float
    reasoning: Optional[str] = None

    class Config:
        from_attributes = True


class GapItemOut(BaseModel):
    id: UUID
    item_type: Literal["deficit", "standout"]
    title: str
    description: Optional[str] = None
    recommendation: Optional[str] = None
    severity: Optional[str] = None
    affected_competitors: List[str] = Field(default_factory=list)
    opportunity_score: Optional[float] = Field(default=None, description="0–100")


class BlueOceanOut(BaseModel):
    market_vacuum_title: str
    description: Optional[str] = None
    supporting_evidence: List[str] = Field(default_factory=list)
    target_segment: Optional[str] = None
    estimated_opportunity: str
    implementation_difficulty: str
    strategic_recommendation: Optional[str] = None


class PersonaOut(BaseModel):
    id: UUID
    persona_type: Literal["price_sensitive", "power_user", "corporate_buyer"]
    name: str
    title: Optional[str] = None
    description: Optional[str] = None
    pain_points: List[str] = Field(default_factory=list)
    priorities: List[str] = Field(default_factory=list)
    behavior_profile: Optional[str] = None


class SimulatedReviewOut(BaseModel):
    id: UUID
    reviewer_name: str
    reviewer_profile: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    review_text: str
    sentiment: Literal["positive", "mixed", "negative"]
    highlighted_features: List[str] = Field(default_factory=list)
    pain_points_addressed: List[str] = Field(default_factory=list)


class PositionOut(BaseModel):
    entity_type: Literal["user_app", "competitor"]
    entity_id: Optional[UUID] = None
    entity_name: str
    value_score: float
    complexity_score: float
    reasoning: Optional[str] = None
    quadrant: str

    class Config:
        from_attributes = True


class MarketIntelligenceOut(BaseModel):
    industry_overview: str
    market_size: Optional[str] = None
    market_growth: Optional[str] = None
    market_trends: List[str] = Field(default_factory=list)
    competitive_landscape: str
    market_dynamics: Dict[str, List[str]] = Field(default_factory=dict)
    barriers_to_entry: Dict[str, Any] = Field(default_factory=dict)
    opportunities: List[Dict[str, Any]] = Field(default_factory=list)
    threats: List[Dict[str, Any]] = Field(default_factory=list)
    strategic_recommendations: str
    key_success_factors: List[str] = Field(default_factory=list)


class AnalysisReport(BaseModel):
    """Everything the pipeline has persisted so far for one analysis."""

    id: UUID
    app_name: str
    target_audience: str
    description: str
    status: AnalysisStatusLiteral
    stage: str
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    user_features: List[UserFeatureOut] = Field(default_factory=list)
    competitors: List[CompetitorOut] = Field(default_factory=list)
    normalized_groups: List[NormalizedGroupOut] = Field(default_factory=list)
    comparison_parameters: List[ComparisonParameterOut] = Field(default_factory=list)
    matrix_scores: List[MatrixScoreOut] = Field(default_factory=list)
    deficits: List[GapItemOut] = Field(default_factory=list)
    standouts: List[GapItemOut] = Field(default_factory=list)
    blue_ocean: Optional[BlueOceanOut] = None
    personas: List[PersonaOut] = Field(default_factory=list)
    simulated_reviews: List[SimulatedReviewOut] = Field(default_factory=list)
    positioning: List[PositionOut] = Field(default_factory=list)
    market_intelligence: Optional[MarketIntelligenceOut] = None


class PersonaMessageOut(BaseModel):
    id: UUID
    role: Literal["user", "assistant"]
    message: str
    created_at: datetime

    class Config:
        from_attributes = True


class PersonaHistoryResponse(BaseModel):
    persona_id: UUID
    messages: List[PersonaMessageOut] = Field(default_factory=list)


class PersonaExchangeResponse(BaseModel):
    user_message: PersonaMessageOut
    assistant_message: PersonaMessageOut
