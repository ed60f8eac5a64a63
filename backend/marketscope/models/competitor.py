import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .analysis import GUID


class Competitor(Base):
    __tablename__ = "competitors"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    competitor_type = Column(String(16), nullable=False, default="direct")  # direct | indirect
    description = Column(Text, nullable=True)
    website_url = Column(String(1000), nullable=True)
    market_position = Column(Text, nullable=True)
    pricing_model = Column(String(255), nullable=True)
    founded_year = Column(Integer, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    analysis = relationship("Analysis", back_populates="competitors")
    features = relationship(
        "CompetitorFeature", back_populates="competitor", cascade="all", passive_deletes=True,
    )


class CompetitorFeature(Base):
    __tablename__ = "competitor_features"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    competitor_id = Column(GUID(), ForeignKey("competitors.id", ondelete="CASCADE"), nullable=False, index=True)
    feature_name = Column(String(255), nullable=False)
    feature_description = Column(Text, nullable=True)
    feature_category = Column(String(64), nullable=True)  # Core | Premium | Integration | Mobile
    is_paid = Column(Boolean, nullable=True)
    normalized_group_id = Column(
        GUID(), ForeignKey("normalized_feature_groups.id", ondelete="SET NULL"), nullable=True,
    )

    competitor = relationship("Competitor", back_populates="features")
    normalized_group = relationship("NormalizedFeatureGroup")


class NormalizedFeatureGroup(Base):
    __tablename__ = "normalized_feature_groups"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    canonical_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
