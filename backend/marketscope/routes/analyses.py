"""Analysis routes — submit app ideas, poll progress, read reports, rerun.

Endpoints:
  POST   /analyses                 — Create an analysis and start the pipeline
  GET    /analyses                 — List analyses (newest first)
  GET    /analyses/{id}            — Full report
  GET    /analyses/{id}/status     — Polling payload
  POST   /analyses/{id}/rerun      — Reset and run the pipeline again
  DELETE /analyses/{id}            — Delete an analysis and everything it owns
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ..agents.analysis_agent.coerce import load_json
from ..agents.analysis_agent.runner import runner
from ..agents.analysis_agent.stages import matrix_progress
from ..database import get_db
from ..errors import AnalysisNotFoundError, PipelineAlreadyRunningError
from ..models import Analysis
from ..schemas.analysis_schema import (
    AnalysisCreate,
    AnalysisCreatedResponse,
    AnalysisListResponse,
    AnalysisReport,
    AnalysisStatusResponse,
    AnalysisSummary,
    BlueOceanOut,
    ComparisonParameterOut,
    CompetitorOut,
    GapItemOut,
    MarketIntelligenceOut,
    MatrixProgressOut,
    MatrixScoreOut,
    NormalizedGroupOut,
    PersonaOut,
    PositionOut,
    RerunResponse,
    SimulatedReviewOut,
    UserFeatureOut,
)
from ..services.analysis_service import (
    create_analysis,
    delete_analysis,
    get_analysis,
    list_analyses,
    reset_analysis,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/analyses",
    tags=["Analyses"],
)


# ── Helpers ──────────────────────────────────────────────────────────────

def _get_or_404(db: Session, analysis_id: UUID) -> Analysis:
    try:
        return get_analysis(db, analysis_id)
    except AnalysisNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Analysis {analysis_id} not found",
        )


def _gap_item(item) -> GapItemOut:
    return GapItemOut(
        id=item.id,
        item_type=item.item_type,
        title=item.title,
        description=item.description,
        recommendation=item.recommendation,
        severity=item.severity,
        affected_competitors=load_json(item.affected_competitors_json, []),
        opportunity_score=item.opportunity_score,
    )


def _record_to_report(record: Analysis) -> AnalysisReport:
    """Convert an Analysis ORM instance (and its children) to an AnalysisReport."""
    blue_ocean = None
    if record.blue_ocean is not None:
        bo = record.blue_ocean
        blue_ocean = BlueOceanOut(
            market_vacuum_title=bo.market_vacuum_title,
            description=bo.description,
            supporting_evidence=load_json(bo.supporting_evidence_json, []),
            target_segment=bo.target_segment,
            estimated_opportunity=bo.estimated_opportunity,
            implementation_difficulty=bo.implementation_difficulty,
            strategic_recommendation=bo.strategic_recommendation,
        )

    intel = None
    if record.market_intelligence is not None:
        mi = record.market_intelligence
        intel = MarketIntelligenceOut(
            industry_overview=mi.industry_overview,
            market_size=mi.market_size,
            market_growth=mi.market_growth,
            market_trends=load_json(mi.market_trends_json, []),
            competitive_landscape=mi.competitive_landscape,
            market_dynamics=load_json(mi.market_dynamics_json, {}),
            barriers_to_entry=load_json(mi.barriers_to_entry_json, {}),
            opportunities=load_json(mi.opportunities_json, []),
            threats=load_json(mi.threats_json, []),
            strategic_recommendations=mi.strategic_recommendations,
            key_success_factors=load_json(mi.key_success_factors_json, []),
        )

    return AnalysisReport(
        id=record.id,
        app_name=record.app_name,
        target_audience=record.target_audience,
        description=record.description,
        status=record.status,
        stage=record.stage,
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
        user_features=[UserFeatureOut.model_validate(f) for f in record.user_features],
        competitors=[CompetitorOut.model_validate(c) for c in record.competitors],
        normalized_groups=[NormalizedGroupOut.model_validate(g) for g in record.normalized_groups],
        comparison_parameters=[
            ComparisonParameterOut.model_validate(p) for p in record.comparison_parameters
        ],
        matrix_scores=[MatrixScoreOut.model_validate(s) for s in record.matrix_scores],
        deficits=[_gap_item(i) for i in record.gap_items if i.item_type == "deficit"],
        standouts=[_gap_item(i) for i in record.gap_items if i.item_type == "standout"],
        blue_ocean=blue_ocean,
        personas=[
            PersonaOut(
                id=p.id,
                persona_type=p.persona_type,
                name=p.name,
                title=p.title,
                description=p.description,
                pain_points=load_json(p.pain_points_json, []),
                priorities=load_json(p.priorities_json, []),
                behavior_profile=p.behavior_profile,
            )
            for p in record.personas
        ],
        simulated_reviews=[
            SimulatedReviewOut(
                id=r.id,
                reviewer_name=r.reviewer_name,
                reviewer_profile=r.reviewer_profile,
                rating=r.rating,
                review_text=r.review_text,
                sentiment=r.sentiment,
                highlighted_features=load_json(r.highlighted_features_json, []),
                pain_points_addressed=load_json(r.pain_points_addressed_json, []),
            )
            for r in record.simulated_reviews
        ],
        positioning=[PositionOut.model_validate(p) for p in record.positioning],
        market_intelligence=intel,
    )


# ── Routes ───────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=AnalysisCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Analysis",
    response_description="ID of the new analysis; processing starts in the background",
)
async def create(
    payload: AnalysisCreate,
    db: Session = Depends(get_db),
) -> AnalysisCreatedResponse:
    """Store the app idea and start the analysis pipeline without waiting for it."""
    analysis = create_analysis(db, payload)
    logger.info("[PIPELINE] Created analysis %s (%s)", analysis.id, analysis.app_name)
    runner.submit(analysis.id)
    return AnalysisCreatedResponse(analysis_id=analysis.id, status=analysis.status)


@router.get(
    "",
    response_model=AnalysisListResponse,
    summary="List Analyses",
)
async def list_all(db: Session = Depends(get_db)) -> AnalysisListResponse:
    records = [
        AnalysisSummary(
            id=a.id,
            app_name=a.app_name,
            target_audience=a.target_audience,
            status=a.status,
            stage=a.stage,
            competitor_count=count,
            created_at=a.created_at,
        )
        for a, count in list_analyses(db)
    ]
    return AnalysisListResponse(records=records)


@router.get(
    "/{analysis_id}",
    response_model=AnalysisReport,
    summary="Get Analysis Report",
)
async def get_report(analysis_id: UUID, db: Session = Depends(get_db)) -> AnalysisReport:
    return _record_to_report(_get_or_404(db, analysis_id))


@router.get(
    "/{analysis_id}/status",
    response_model=AnalysisStatusResponse,
    summary="Poll Analysis Status",
)
async def get_status(analysis_id: UUID, db: Session = Depends(get_db)) -> AnalysisStatusResponse:
    analysis = _get_or_404(db, analysis_id)
    progress = matrix_progress(analysis.stage)
    return AnalysisStatusResponse(
        status=analysis.status,
        stage=analysis.stage,
        error_message=analysis.error_message,
        progress=MatrixProgressOut(completed=progress.completed, total=progress.total)
        if progress
        else None,
    )


@router.post(
    "/{analysis_id}/rerun",
    response_model=RerunResponse,
    summary="Rerun Analysis",
    response_description="The analysis was reset and processing restarted",
)
async def rerun(analysis_id: UUID, db: Session = Depends(get_db)) -> RerunResponse:
    """Discard every pipeline result and run the analysis again from the start.

    Rules:
    - The analysis must have at least one feature
    - Not allowed while a run for this analysis is in flight
    """
    analysis = _get_or_404(db, analysis_id)

    if not analysis.user_features:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot rerun analysis: no features found",
        )
    if runner.is_running(analysis.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Analysis is already being processed",
        )

    reset_analysis(db, analysis)
    try:
        runner.submit(analysis.id)
    except PipelineAlreadyRunningError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return RerunResponse(analysis_id=analysis.id, status=analysis.status)


@router.delete(
    "/{analysis_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Analysis",
)
async def delete(analysis_id: UUID, db: Session = Depends(get_db)) -> Response:
    analysis = _get_or_404(db, analysis_id)
    if runner.is_running(analysis.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot delete an analysis while it is being processed",
        )
    delete_analysis(db, analysis)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
