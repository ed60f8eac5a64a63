"""Stage marker tests — parsing, legal transitions, persisted advances."""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from marketscope.agents.analysis_agent.stages import (
    MatrixProgress,
    Stage,
    advance_stage,
    can_transition,
    matrix_progress,
    parse_stage,
)
from marketscope.database import Base
from marketscope.errors import InvalidStageTransitionError
from marketscope.models import Analysis

TEST_DATABASE_URL = "sqlite:///./test_stages.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


class TestParseStage:
    def test_named_stage(self):
        assert parse_stage("gaps_complete") is Stage.GAPS_COMPLETE

    def test_matrix_progress(self):
        assert parse_stage("matrix_progress_20/40") == MatrixProgress(20, 40)

    def test_unknown_marker_raises(self):
        with pytest.raises(ValueError, match="Unknown stage"):
            parse_stage("halfway_there")

    def test_matrix_progress_helper_ignores_named_stages(self):
        assert matrix_progress("personas") is None
        assert matrix_progress("bogus") is None
        assert matrix_progress("matrix_progress_10/30") == MatrixProgress(10, 30)

    def test_progress_value_round_trips(self):
        assert MatrixProgress(7, 30).value == "matrix_progress_7/30"

    @pytest.mark.parametrize("completed,total", [(-1, 10), (11, 10), (0, 0)])
    def test_invalid_progress_rejected(self, completed, total):
        with pytest.raises(ValueError):
            MatrixProgress(completed, total)


class TestCanTransition:
    def test_next_stage_only(self):
        assert can_transition(Stage.COMPETITORS, Stage.COMPETITORS_COMPLETE)
        assert not can_transition(Stage.COMPETITORS, Stage.FEATURES)
        assert not can_transition(Stage.GAPS, Stage.COMPETITORS)

    def test_complete_is_terminal(self):
        assert not any(can_transition(Stage.COMPLETE, s) for s in Stage)

    def test_matrix_progress_from_features(self):
        assert can_transition(Stage.FEATURES, MatrixProgress(10, 40))

    def test_matrix_progress_must_increase(self):
        assert can_transition(MatrixProgress(10, 40), MatrixProgress(20, 40))
        assert not can_transition(MatrixProgress(20, 40), MatrixProgress(10, 40))
        assert not can_transition(MatrixProgress(20, 40), MatrixProgress(20, 40))
        assert not can_transition(MatrixProgress(10, 40), MatrixProgress(20, 50))

    def test_matrix_complete_from_progress_or_features(self):
        assert can_transition(MatrixProgress(40, 40), Stage.MATRIX_COMPLETE)
        assert can_transition(Stage.FEATURES, Stage.MATRIX_COMPLETE)
        assert not can_transition(MatrixProgress(40, 40), Stage.GAPS)

    def test_progress_not_allowed_outside_matrix(self):
        assert not can_transition(Stage.GAPS, MatrixProgress(10, 40))


class TestAdvanceStage:
    def _analysis(self, db):
        analysis = Analysis(
            app_name="FitTrack",
            target_audience="Busy professionals",
            description="A fitness tracker.",
        )
        db.add(analysis)
        db.commit()
        return analysis

    def test_persists_new_marker(self, db):
        analysis = self._analysis(db)
        assert analysis.stage == "competitors"
        advance_stage(db, analysis, Stage.COMPETITORS_COMPLETE)

        fresh = TestingSessionLocal()
        try:
            assert fresh.get(Analysis, analysis.id).stage == "competitors_complete"
        finally:
            fresh.close()

    def test_illegal_move_raises_and_keeps_stage(self, db):
        analysis = self._analysis(db)
        with pytest.raises(InvalidStageTransitionError):
            advance_stage(db, analysis, Stage.MVP)
        assert analysis.stage == "competitors"
