"""Analysis persistence: create, read, reset, delete.

``reset_analysis`` is the only undo. It runs in one transaction: every child
row produced by the pipeline is deleted (leaf tables first), user features are
reset in place, and the analysis returns to ``processing``/``competitors``.
Any failure rolls the whole reset back.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..errors import AnalysisNotFoundError
from ..models import (
    Analysis,
    BlueOceanInsight,
    ComparisonParameter,
    Competitor,
    CompetitorFeature,
    FeatureMatrixScore,
    GapAnalysisItem,
    MarketIntelligence,
    NormalizedFeatureGroup,
    Persona,
    PersonaChatMessage,
    PositioningData,
    SimulatedReview,
    UserFeature,
)
from ..schemas.analysis_schema import AnalysisCreate

logger = logging.getLogger(__name__)


def create_analysis(db: Session, payload: AnalysisCreate) -> Analysis:
    """Persist a validated app idea with its features and return the ORM instance."""
    analysis = Analysis(
        app_name=payload.app_name,
        target_audience=payload.target_audience,
        description=payload.description,
        status="processing",
        stage="competitors",
    )
    db.add(analysis)
    db.flush()
    for order, feature in enumerate(payload.features):
        db.add(UserFeature(
            analysis_id=analysis.id,
            feature_name=feature.feature_name,
            feature_description=feature.feature_description,
            order_index=order,
        ))
    db.commit()
    db.refresh(analysis)
    return analysis


def get_analysis(db: Session, analysis_id: Any) -> Analysis:
    analysis = db.get(Analysis, analysis_id)
    if analysis is None:
        raise AnalysisNotFoundError(analysis_id)
    return analysis


def list_analyses(db: Session) -> List[Tuple[Analysis, int]]:
    """Every analysis with its competitor count, newest first."""
    counts = (
        db.query(Competitor.analysis_id, func.count(Competitor.id).label("n"))
        .group_by(Competitor.analysis_id)
        .subquery()
    )
    rows = (
        db.query(Analysis, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.analysis_id == Analysis.id)
        .order_by(Analysis.created_at.desc())
        .all()
    )
    return [(analysis, int(count)) for analysis, count in rows]


def reset_analysis(db: Session, analysis: Analysis) -> None:
    """Clear all pipeline output for *analysis* in a single transaction."""
    analysis_id = analysis.id
    persona_ids = select(Persona.id).where(Persona.analysis_id == analysis_id)
    competitor_ids = select(Competitor.id).where(Competitor.analysis_id == analysis_id)
    try:
        db.query(PersonaChatMessage).filter(
            PersonaChatMessage.persona_id.in_(persona_ids)
        ).delete(synchronize_session=False)
        for model in (
            Persona,
            SimulatedReview,
            PositioningData,
            MarketIntelligence,
            BlueOceanInsight,
            GapAnalysisItem,
            FeatureMatrixScore,
            ComparisonParameter,
        ):
            db.query(model).filter(model.analysis_id == analysis_id).delete(synchronize_session=False)

        db.query(UserFeature).filter(UserFeature.analysis_id == analysis_id).update(
            {
                UserFeature.normalized_group_id: None,
                UserFeature.mvp_priority: None,
                UserFeature.priority_reasoning: None,
            },
            synchronize_session=False,
        )
        db.query(CompetitorFeature).filter(
            CompetitorFeature.competitor_id.in_(competitor_ids)
        ).delete(synchronize_session=False)
        db.query(Competitor).filter(Competitor.analysis_id == analysis_id).delete(
            synchronize_session=False
        )
        db.query(NormalizedFeatureGroup).filter(
            NormalizedFeatureGroup.analysis_id == analysis_id
        ).delete(synchronize_session=False)

        analysis.status = "processing"
        analysis.stage = "competitors"
        analysis.error_message = None
        analysis.updated_at = datetime.utcnow()
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("[PIPELINE] Reset of %s rolled back", analysis_id)
        raise
    db.expire_all()
    logger.info("[PIPELINE] Reset %s", analysis_id)


def delete_analysis(db: Session, analysis: Analysis) -> None:
    db.delete(analysis)
    db.commit()
