import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .analysis import GUID


class ComparisonParameter(Base):
    __tablename__ = "comparison_parameters"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    parameter_name = Column(String(255), nullable=False)
    parameter_description = Column(Text, nullable=True)
    weight = Column(Float, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    scores = relationship("FeatureMatrixScore", back_populates="parameter", cascade="all", passive_deletes=True)


class FeatureMatrixScore(Base):
    __tablename__ = "feature_matrix_scores"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    parameter_id = Column(GUID(), ForeignKey("comparison_parameters.id", ondelete="CASCADE"), nullable=False)
    entity_type = Column(String(16), nullable=False)  # user_app | competitor
    # NULL means "the user's app"
    entity_id = Column(GUID(), ForeignKey("competitors.id", ondelete="CASCADE"), nullable=True)
    score = Column(Float, nullable=False)
    reasoning = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    parameter = relationship("ComparisonParameter", back_populates="scores")
