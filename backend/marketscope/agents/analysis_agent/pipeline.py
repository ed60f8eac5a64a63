"""Analysis pipeline — entry point ``process_analysis(analysis_id)``.

Flow (each step persists its rows, commits, THEN advances the stage marker):
  1. Competitor discovery + per-competitor enrichment
  2. Feature normalization (partition of every user/competitor feature)
  3. Comparison parameters + one scoring call per entity
  4. Gap analysis (deficits, standouts) + Blue Ocean
  5. MVP prioritization of every user feature
  6. Personas + simulated reviews
  7. Positioning map
  8. Market intelligence

Agents resolve their own service failures to documented defaults. Anything
that still escapes a step marks the analysis ``failed``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy.orm import Session, sessionmaker

from ...constants import ENTITY_COMPETITOR, ENTITY_USER_APP, MATRIX_PROGRESS_INTERVAL
from ...database import SessionLocal, session_scope
from ...errors import AnalysisNotFoundError, user_facing_message
from ...models import (
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
    PositioningData,
    SimulatedReview,
)
from .coerce import dump_json
from .comparison import EntityProfile, ScoredCell, generate_parameters, score_entity
from .competitors import discover_competitors, enrich_competitors
from .gaps import GapContext, analyze_gaps, find_blue_ocean
from .market_intelligence import generate_market_report
from .mvp import prioritize_features
from .normalization import FeatureRef, normalize_features
from .personas import generate_personas, generate_reviews
from .positioning import PositionedEntity, map_positions
from .stages import AnalysisStatus, MatrixProgress, Stage, advance_stage
from .timing import StepTimer

logger = logging.getLogger(__name__)


def _load_analysis(db: Session, analysis_id: Any) -> Analysis:
    analysis = db.get(Analysis, analysis_id)
    if analysis is None:
        raise AnalysisNotFoundError(analysis_id)
    return analysis


def _feature_pairs(analysis: Analysis):
    return [(f.feature_name, f.feature_description) for f in analysis.user_features]


# ---------------------------------------------------------------------------
# Step 1: competitors
# ---------------------------------------------------------------------------
async def _run_discovery(db: Session, analysis: Analysis) -> None:
    candidates = await discover_competitors(
        app_name=analysis.app_name,
        description=analysis.description,
        target_audience=analysis.target_audience,
        feature_names=[f.feature_name for f in analysis.user_features],
    )
    enrichments = await enrich_competitors(candidates)

    for order, (candidate, enrichment) in enumerate(zip(candidates, enrichments)):
        competitor = Competitor(
            id=uuid.uuid4(),
            analysis_id=analysis.id,
            name=candidate.name,
            competitor_type=candidate.competitor_type,
            description=candidate.description or None,
            website_url=candidate.website_url,
            market_position=enrichment.market_position or candidate.market_position,
            pricing_model=candidate.pricing_model,
            founded_year=enrichment.founded_year or candidate.founded_year,
            order_index=order,
        )
        db.add(competitor)
        for feature in enrichment.features:
            db.add(CompetitorFeature(
                competitor_id=competitor.id,
                feature_name=feature.name,
                feature_description=feature.description or None,
                feature_category=feature.category,
                is_paid=feature.is_paid,
            ))
    db.commit()
    logger.info("[PIPELINE] %d competitors stored for %s", len(candidates), analysis.id)
    advance_stage(db, analysis, Stage.COMPETITORS_COMPLETE)


# ---------------------------------------------------------------------------
# Step 2: normalization
# ---------------------------------------------------------------------------
async def _run_normalization(db: Session, analysis: Analysis) -> None:
    advance_stage(db, analysis, Stage.NORMALIZING_FEATURES)

    rows: Dict[Any, Any] = {}
    refs: List[FeatureRef] = []
    for f in analysis.user_features:
        key = ("user", f.id)
        rows[key] = f
        refs.append(FeatureRef(key, f.feature_name, f.feature_description, "user"))
    for competitor in analysis.competitors:
        for f in competitor.features:
            key = ("competitor", f.id)
            rows[key] = f
            refs.append(FeatureRef(key, f.feature_name, f.feature_description, "competitor"))

    groups = await normalize_features(refs)
    for group in groups:
        group_row = NormalizedFeatureGroup(
            id=uuid.uuid4(),
            analysis_id=analysis.id,
            canonical_name=group.canonical_name,
            description=group.description or None,
        )
        db.add(group_row)
        for key in group.member_keys:
            rows[key].normalized_group_id = group_row.id
    db.commit()
    advance_stage(db, analysis, Stage.FEATURES)


def _feature_summary(db: Session, analysis: Analysis) -> str:
    """Features grouped by canonical name, so near-duplicates reach the model once."""
    lines = []
    groups = (
        db.query(NormalizedFeatureGroup)
        .filter(NormalizedFeatureGroup.analysis_id == analysis.id)
        .all()
    )
    counts: Dict[Any, int] = {}
    for f in analysis.user_features:
        counts[f.normalized_group_id] = counts.get(f.normalized_group_id, 0) + 1
    for competitor in analysis.competitors:
        for f in competitor.features:
            counts[f.normalized_group_id] = counts.get(f.normalized_group_id, 0) + 1
    for group in groups:
        detail = f": {group.description}" if group.description else ""
        lines.append(f"- {group.canonical_name}{detail} ({counts.get(group.id, 0)} listings)")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Step 3: comparison matrix
# ---------------------------------------------------------------------------
async def _run_matrix(db: Session, analysis: Analysis) -> None:
    competitors = list(analysis.competitors)
    params = await generate_parameters(
        app_name=analysis.app_name,
        target_audience=analysis.target_audience,
        feature_summary=_feature_summary(db, analysis),
        competitor_names=[c.name for c in competitors],
    )

    param_ids: Dict[str, Any] = {}
    for order, param in enumerate(params):
        row = ComparisonParameter(
            id=uuid.uuid4(),
            analysis_id=analysis.id,
            parameter_name=param.name,
            parameter_description=param.description,
            weight=param.weight,
            order_index=order,
        )
        db.add(row)
        param_ids[param.name] = row.id
    db.commit()

    entities = [EntityProfile(ENTITY_USER_APP, None, analysis.app_name, _feature_pairs(analysis))]
    entities += [
        EntityProfile(
            ENTITY_COMPETITOR, c.id, c.name,
            [(f.feature_name, f.feature_description) for f in c.features],
        )
        for c in competitors
    ]
    total = len(params) * len(entities)

    async def _score(entity: EntityProfile):
        return entity, await score_entity(entity, params)

    completed = 0
    tasks = [asyncio.ensure_future(_score(e)) for e in entities]
    try:
        for next_done in asyncio.as_completed(tasks):
            entity, cells = await next_done
            _store_scores(db, analysis, entity, cells, param_ids)
            db.commit()
            previous = completed
            completed += len(cells)
            if completed // MATRIX_PROGRESS_INTERVAL > previous // MATRIX_PROGRESS_INTERVAL:
                advance_stage(db, analysis, MatrixProgress(completed, total))
    finally:
        # On an early exit, cancel the entities still being scored
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    logger.info("[MATRIX] %d/%d cells scored for %s", completed, total, analysis.id)
    advance_stage(db, analysis, Stage.MATRIX_COMPLETE)


def _store_scores(
    db: Session,
    analysis: Analysis,
    entity: EntityProfile,
    cells: List[ScoredCell],
    param_ids: Dict[str, Any],
) -> None:
    for cell in cells:
        db.add(FeatureMatrixScore(
            analysis_id=analysis.id,
            parameter_id=param_ids[cell.parameter_name],
            entity_type=entity.entity_type,
            entity_id=entity.entity_id,
            score=cell.score,
            reasoning=cell.reasoning,
        ))


# ---------------------------------------------------------------------------
# Step 4: gaps
# ---------------------------------------------------------------------------
async def _run_gaps(db: Session, analysis: Analysis) -> None:
    advance_stage(db, analysis, Stage.GAPS)
    ctx = GapContext(
        app_name=analysis.app_name,
        target_audience=analysis.target_audience,
        user_features=_feature_pairs(analysis),
        competitors=[
            (c.name, c.description, [f.feature_name for f in c.features])
            for c in analysis.competitors
        ],
    )
    deficits, standouts = await analyze_gaps(ctx)
    blue_ocean = await find_blue_ocean(ctx, deficits, standouts)

    order = 0
    for d in deficits:
        db.add(GapAnalysisItem(
            analysis_id=analysis.id,
            item_type="deficit",
            title=d.title,
            description=d.description,
            recommendation=d.recommendation,
            severity=d.severity,
            affected_competitors_json=dump_json(d.affected_competitors),
            order_index=order,
        ))
        order += 1
    for s in standouts:
        db.add(GapAnalysisItem(
            analysis_id=analysis.id,
            item_type="standout",
            title=s.title,
            description=s.description,
            recommendation=s.recommendation,
            opportunity_score=s.opportunity_score,
            order_index=order,
        ))
        order += 1
    db.add(BlueOceanInsight(
        analysis_id=analysis.id,
        market_vacuum_title=blue_ocean.market_vacuum_title,
        description=blue_ocean.description,
        supporting_evidence_json=dump_json(blue_ocean.supporting_evidence),
        target_segment=blue_ocean.target_segment,
        estimated_opportunity=blue_ocean.estimated_opportunity,
        implementation_difficulty=blue_ocean.implementation_difficulty,
        strategic_recommendation=blue_ocean.strategic_recommendation,
    ))
    db.commit()
    advance_stage(db, analysis, Stage.GAPS_COMPLETE)


# ---------------------------------------------------------------------------
# Step 5: MVP
# ---------------------------------------------------------------------------
async def _run_mvp(db: Session, analysis: Analysis) -> None:
    advance_stage(db, analysis, Stage.MVP)
    features = list(analysis.user_features)
    deficits = (
        db.query(GapAnalysisItem)
        .filter(GapAnalysisItem.analysis_id == analysis.id, GapAnalysisItem.item_type == "deficit")
        .order_by(GapAnalysisItem.order_index)
        .all()
    )
    assignments = await prioritize_features(
        [(f.feature_name, f.feature_description) for f in features],
        competitor_summary=", ".join(
            f"{c.name}: {len(c.features)} features" for c in analysis.competitors
        ),
        deficit_summary=", ".join(f"{d.title} ({d.severity})" for d in deficits),
    )
    for feature, assignment in zip(features, assignments):
        feature.mvp_priority = assignment.priority
        feature.priority_reasoning = assignment.reasoning
    db.commit()
    advance_stage(db, analysis, Stage.MVP_COMPLETE)


# ---------------------------------------------------------------------------
# Step 6: personas & reviews
# ---------------------------------------------------------------------------
async def _run_personas(db: Session, analysis: Analysis) -> None:
    advance_stage(db, analysis, Stage.PERSONAS)
    feature_names = [f.feature_name for f in analysis.user_features]
    personas, reviews = await asyncio.gather(
        generate_personas(
            app_name=analysis.app_name,
            target_audience=analysis.target_audience,
            feature_names=feature_names,
        ),
        generate_reviews(
            app_name=analysis.app_name,
            description=analysis.description,
            target_audience=analysis.target_audience,
            feature_names=feature_names,
            competitors=[(c.name, c.description) for c in analysis.competitors],
        ),
    )
    for order, p in enumerate(personas):
        db.add(Persona(
            analysis_id=analysis.id,
            persona_type=p.persona_type,
            name=p.name,
            title=p.title,
            description=p.description,
            pain_points_json=dump_json(p.pain_points),
            priorities_json=dump_json(p.priorities),
            behavior_profile=p.behavior_profile,
            system_prompt=p.system_prompt,
            order_index=order,
        ))
    for r in reviews:
        db.add(SimulatedReview(
            analysis_id=analysis.id,
            reviewer_name=r.reviewer_name,
            reviewer_profile=r.reviewer_profile or None,
            rating=r.rating,
            review_text=r.review_text,
            sentiment=r.sentiment,
            highlighted_features_json=dump_json(r.highlighted_features),
            pain_points_addressed_json=dump_json(r.pain_points_addressed),
        ))
    db.commit()
    advance_stage(db, analysis, Stage.PERSONAS_COMPLETE)


# ---------------------------------------------------------------------------
# Step 7: positioning
# ---------------------------------------------------------------------------
async def _run_positioning(db: Session, analysis: Analysis) -> None:
    advance_stage(db, analysis, Stage.POSITIONING)
    result = await map_positions(
        app_name=analysis.app_name,
        user_features=[f.feature_name for f in analysis.user_features],
        competitors=[
            PositionedEntity(c.id, c.name, [f.feature_name for f in c.features])
            for c in analysis.competitors
        ],
    )
    for pos in result.positions:
        db.add(PositioningData(
            analysis_id=analysis.id,
            entity_type=pos.entity_type,
            entity_id=pos.entity_id,
            entity_name=pos.entity_name,
            value_score=pos.value_score,
            complexity_score=pos.complexity_score,
            reasoning=pos.reasoning,
            quadrant=pos.quadrant,
        ))
    db.commit()
    if result.unmatched_names or result.defaulted:
        logger.info(
            "[POSITIONING] %s: %d unmatched names, %d defaulted positions",
            analysis.id, len(result.unmatched_names), result.defaulted,
        )
    advance_stage(db, analysis, Stage.POSITIONING_COMPLETE)


# ---------------------------------------------------------------------------
# Step 8: market intelligence
# ---------------------------------------------------------------------------
async def _run_market_intelligence(db: Session, analysis: Analysis) -> None:
    advance_stage(db, analysis, Stage.MARKET_INTELLIGENCE)
    summaries = []
    for c in analysis.competitors:
        features = ", ".join(f.feature_name for f in c.features) or "N/A"
        summaries.append(
            f"{c.name} ({c.competitor_type}): {c.description or 'No description'}. "
            f"Features: {features}. Market Position: {c.market_position or 'N/A'}. "
            f"Pricing: {c.pricing_model or 'N/A'}"
        )
    report = await generate_market_report(
        app_name=analysis.app_name,
        target_audience=analysis.target_audience,
        description=analysis.description,
        user_features=_feature_pairs(analysis),
        competitor_summaries=summaries,
    )
    db.add(MarketIntelligence(
        analysis_id=analysis.id,
        industry_overview=report.industry_overview,
        market_size=report.market_size,
        market_growth=report.market_growth,
        market_trends_json=dump_json(report.market_trends),
        competitive_landscape=report.competitive_landscape,
        market_dynamics_json=dump_json(report.market_dynamics),
        barriers_to_entry_json=dump_json(report.barriers_to_entry),
        opportunities_json=dump_json(report.opportunities),
        threats_json=dump_json(report.threats),
        strategic_recommendations=report.strategic_recommendations,
        key_success_factors_json=dump_json(report.key_success_factors),
    ))
    db.commit()
    advance_stage(db, analysis, Stage.MARKET_INTELLIGENCE_COMPLETE)


_STEPS = (
    ("competitor discovery", _run_discovery),
    ("feature normalization", _run_normalization),
    ("feature comparison", _run_matrix),
    ("gap analysis", _run_gaps),
    ("MVP prioritization", _run_mvp),
    ("persona generation", _run_personas),
    ("positioning", _run_positioning),
    ("market intelligence", _run_market_intelligence),
)


def _mark_failed(session_factory: sessionmaker, analysis_id: Any, step: str, exc: BaseException) -> None:
    with session_scope(session_factory) as db:
        analysis = db.get(Analysis, analysis_id)
        if analysis is None:
            logger.error("[PIPELINE] Cannot mark %s failed — record is gone", analysis_id)
            return
        analysis.status = AnalysisStatus.FAILED.value
        analysis.error_message = user_facing_message(step, exc)
        analysis.updated_at = datetime.utcnow()


async def process_analysis(
    analysis_id: Any,
    *,
    session_factory: sessionmaker = SessionLocal,
) -> AnalysisStatus:
    """Run every step for *analysis_id* and return the terminal status.

    Never raises: a fatal error is logged and recorded on the analysis as
    ``status=failed`` with a user-safe ``error_message``.
    """
    if isinstance(analysis_id, str):
        analysis_id = uuid.UUID(analysis_id)

    timer = StepTimer(f"analysis {analysis_id}")
    step = "startup"
    db = session_factory()
    try:
        analysis = _load_analysis(db, analysis_id)
        logger.info("[PIPELINE] START %s (%s)", analysis_id, analysis.app_name)
        for step, run in _STEPS:
            with timer.step(step):
                await run(db, analysis)
            db.refresh(analysis)

        advance_stage(db, analysis, Stage.COMPLETE)
        analysis.status = AnalysisStatus.COMPLETED.value
        analysis.error_message = None
        analysis.updated_at = datetime.utcnow()
        db.commit()
        timer.summary()
        logger.info("[PIPELINE] COMPLETED %s", analysis_id)
        return AnalysisStatus.COMPLETED
    except Exception as exc:
        logger.exception("[PIPELINE] FAILED %s during %s", analysis_id, step)
        db.rollback()
        _mark_failed(session_factory, analysis_id, step, exc)
        return AnalysisStatus.FAILED
    finally:
        db.close()
