import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text

from ..database import Base
from .analysis import GUID


class GapAnalysisItem(Base):
    __tablename__ = "gap_analysis_items"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    item_type = Column(String(16), nullable=False)  # deficit | standout
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    # deficit only
    severity = Column(String(16), nullable=True)  # critical | high | medium | low
    affected_competitors_json = Column(Text, nullable=True)
    # standout only, 0–100
    opportunity_score = Column(Float, nullable=True)


class BlueOceanInsight(Base):
    __tablename__ = "blue_ocean_insights"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(
        GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    market_vacuum_title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    supporting_evidence_json = Column(Text, nullable=True)
    target_segment = Column(Text, nullable=True)
    estimated_opportunity = Column(String(16), nullable=False, default="medium")
    implementation_difficulty = Column(String(16), nullable=False, default="moderate")
    strategic_recommendation = Column(Text, nullable=True)


class PositioningData(Base):
    __tablename__ = "positioning_data"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_type = Column(String(16), nullable=False)  # user_app | competitor
    entity_id = Column(GUID(), ForeignKey("competitors.id", ondelete="CASCADE"), nullable=True)
    entity_name = Column(String(255), nullable=False)
    value_score = Column(Float, nullable=False)
    complexity_score = Column(Float, nullable=False)
    reasoning = Column(Text, nullable=True)
    quadrant = Column(String(64), nullable=False)


class MarketIntelligence(Base):
    __tablename__ = "market_intelligence"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(
        GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    industry_overview = Column(Text, nullable=False)
    market_size = Column(Text, nullable=True)
    market_growth = Column(Text, nullable=True)
    market_trends_json = Column(Text, nullable=True)
    competitive_landscape = Column(Text, nullable=False)
    market_dynamics_json = Column(Text, nullable=True)
    barriers_to_entry_json = Column(Text, nullable=True)
    opportunities_json = Column(Text, nullable=True)
    threats_json = Column(Text, nullable=True)
    strategic_recommendations = Column(Text, nullable=False)
    key_success_factors_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
