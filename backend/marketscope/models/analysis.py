import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import CHAR, TypeDecorator

from ..database import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses CHAR(36) to store UUIDs as strings, compatible with all backends
    including SQLite.
    """

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return uuid.UUID(value)
        return value


class Analysis(Base):
    __tablename__ = "analyses"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    app_name = Column(String(255), nullable=False)
    target_audience = Column(Text, nullable=False)
    description = Column(Text, nullable=False)

    status = Column(String(32), nullable=False, default="processing")  # processing | completed | failed
    stage = Column(String(64), nullable=False, default="competitors")
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user_features = relationship(
        "UserFeature", back_populates="analysis",
        cascade="all", passive_deletes=True, order_by="UserFeature.order_index",
    )
    competitors = relationship(
        "Competitor", back_populates="analysis",
        cascade="all", passive_deletes=True, order_by="Competitor.order_index",
    )
    normalized_groups = relationship("NormalizedFeatureGroup", cascade="all", passive_deletes=True)
    comparison_parameters = relationship(
        "ComparisonParameter", cascade="all", passive_deletes=True,
        order_by="ComparisonParameter.order_index",
    )
    matrix_scores = relationship("FeatureMatrixScore", cascade="all", passive_deletes=True)
    gap_items = relationship(
        "GapAnalysisItem", cascade="all", passive_deletes=True,
        order_by="GapAnalysisItem.order_index",
    )
    blue_ocean = relationship("BlueOceanInsight", cascade="all", passive_deletes=True, uselist=False)
    personas = relationship(
        "Persona", cascade="all", passive_deletes=True, order_by="Persona.order_index",
    )
    simulated_reviews = relationship("SimulatedReview", cascade="all", passive_deletes=True)
    positioning = relationship("PositioningData", cascade="all", passive_deletes=True)
    market_intelligence = relationship(
        "MarketIntelligence", cascade="all", passive_deletes=True, uselist=False,
    )


class UserFeature(Base):
    __tablename__ = "user_features"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    feature_name = Column(String(255), nullable=False)
    feature_description = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    # Set by the normalizer
    normalized_group_id = Column(
        GUID(), ForeignKey("normalized_feature_groups.id", ondelete="SET NULL"), nullable=True,
    )
    # Set by the MVP prioritizer: NULL until the mvp stage has run
    mvp_priority = Column(String(2), nullable=True)  # P0 | P1 | P2
    priority_reasoning = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    analysis = relationship("Analysis", back_populates="user_features")
    normalized_group = relationship("NormalizedFeatureGroup")
