"""Analysis API tests — create, list, report, status polling, rerun, delete.

Background runs are not started: `runner.submit` is patched, and tests that
need pipeline output run `process_analysis` directly with stubbed services.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json
import uuid
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from marketscope.agents.analysis_agent.pipeline import process_analysis
from marketscope.agents.analysis_agent.runner import runner
from marketscope.database import Base, get_db
from marketscope.main import app
from marketscope.models import Analysis, Competitor, UserFeature

# ---------------------------------------------------------------------------
# Test database setup
# ---------------------------------------------------------------------------
TEST_DATABASE_URL = "sqlite:///./test_analyses_routes.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


client = TestClient(app)


@pytest.fixture(autouse=True)
def setup_db():
    """Create tables before each test, drop after."""
    app.dependency_overrides[get_db] = override_get_db
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    app.dependency_overrides.pop(get_db, None)


def _payload(**overrides):
    payload = {
        "app_name": "FitTrack",
        "target_audience": "Busy professionals who run before work",
        "description": "A fitness tracking app that builds short personalised running plans "
                       "around a packed calendar and syncs with wearables.",
        "features": [
            {"feature_name": "Calendar sync", "feature_description": "Plans runs around meetings"},
            {"feature_name": "Wearable import", "feature_description": "  "},
        ],
    }
    payload.update(overrides)
    return payload


def _create(**overrides) -> str:
    with patch.object(runner, "submit") as mock_submit:
        res = client.post("/analyses", json=_payload(**overrides))
    assert res.status_code == 201, res.text
    mock_submit.assert_called_once()
    return res.json()["analysis_id"]


def _run_pipeline(analysis_id):
    search_body = json.dumps({"competitors": [{"name": "Strava", "type": "direct"}]})
    with patch("marketscope.services.openai_client._request_completion", return_value=("{}", "stop")), \
         patch("marketscope.agents.analysis_agent.competitors.search_complete", return_value=search_body):
        asyncio.run(process_analysis(analysis_id, session_factory=TestingSessionLocal))


def _set_stage(analysis_id, stage, status="processing"):
    db = TestingSessionLocal()
    try:
        analysis = db.get(Analysis, uuid.UUID(analysis_id))
        analysis.stage = stage
        analysis.status = status
        db.commit()
    finally:
        db.close()


# ===================================================================== #
#  Create                                                                #
# ===================================================================== #

class TestCreateAnalysis:
    def test_create_returns_processing(self):
        with patch.object(runner, "submit") as mock_submit:
            res = client.post("/analyses", json=_payload())
        assert res.status_code == 201
        body = res.json()
        assert body["status"] == "processing"
        mock_submit.assert_called_once_with(uuid.UUID(body["analysis_id"]))

    def test_features_stored_in_order(self):
        analysis_id = _create()
        db = TestingSessionLocal()
        try:
            features = (
                db.query(UserFeature)
                .filter(UserFeature.analysis_id == uuid.UUID(analysis_id))
                .order_by(UserFeature.order_index)
                .all()
            )
        finally:
            db.close()
        assert [f.feature_name for f in features] == ["Calendar sync", "Wearable import"]
        assert features[1].feature_description is None

    @pytest.mark.parametrize("overrides", [
        {"app_name": "F"},
        {"target_audience": "Runners"},
        {"description": "Too short."},
        {"features": []},
        {"features": [{"feature_name": " x "}]},
    ])
    def test_invalid_input_rejected(self, overrides):
        with patch.object(runner, "submit") as mock_submit:
            res = client.post("/analyses", json=_payload(**overrides))
        assert res.status_code == 422
        mock_submit.assert_not_called()


# ===================================================================== #
#  Read                                                                  #
# ===================================================================== #

class TestReadAnalysis:
    def test_list_newest_first_with_competitor_count(self):
        first = _create(app_name="First App")
        second = _create(app_name="Second App")
        _run_pipeline(first)

        res = client.get("/analyses")
        assert res.status_code == 200
        records = res.json()["records"]
        assert [r["id"] for r in records] == [second, first]
        assert records[1]["competitor_count"] == 1
        assert records[0]["competitor_count"] == 0

    def test_report_after_run(self):
        analysis_id = _create()
        _run_pipeline(analysis_id)

        res = client.get(f"/analyses/{analysis_id}")
        assert res.status_code == 200
        report = res.json()
        assert report["status"] == "completed"
        assert report["stage"] == "complete"
        assert [c["name"] for c in report["competitors"]] == ["Strava"]
        assert len(report["comparison_parameters"]) == 10
        assert len(report["matrix_scores"]) == 20
        assert report["deficits"] == [] and report["standouts"] == []
        assert report["blue_ocean"]["market_vacuum_title"] == "Market Opportunity"
        assert [p["persona_type"] for p in report["personas"]] == [
            "price_sensitive", "power_user", "corporate_buyer",
        ]
        assert isinstance(report["personas"][0]["pain_points"], list)
        assert len(report["positioning"]) == 2
        assert report["market_intelligence"]["market_dynamics"] == {
            "drivers": [], "restraints": [], "opportunities": [],
        }
        assert [f["mvp_priority"] for f in report["user_features"]] == ["P0", "P1"]

    def test_unknown_analysis_404(self):
        res = client.get(f"/analyses/{uuid.uuid4()}")
        assert res.status_code == 404

    def test_status_reports_matrix_progress(self):
        analysis_id = _create()
        _set_stage(analysis_id, "matrix_progress_20/50")
        res = client.get(f"/analyses/{analysis_id}/status")
        assert res.status_code == 200
        assert res.json() == {
            "status": "processing",
            "stage": "matrix_progress_20/50",
            "error_message": None,
            "progress": {"completed": 20, "total": 50},
        }

    def test_status_without_progress(self):
        analysis_id = _create()
        res = client.get(f"/analyses/{analysis_id}/status")
        assert res.json()["progress"] is None
        assert res.json()["stage"] == "competitors"


# ===================================================================== #
#  Rerun                                                                 #
# ===================================================================== #

class TestRerun:
    def test_rerun_resets_and_resubmits(self):
        analysis_id = _create()
        _run_pipeline(analysis_id)

        with patch.object(runner, "submit") as mock_submit:
            res = client.post(f"/analyses/{analysis_id}/rerun")
        assert res.status_code == 200
        assert res.json()["status"] == "processing"
        mock_submit.assert_called_once()

        report = client.get(f"/analyses/{analysis_id}").json()
        assert report["stage"] == "competitors"
        assert report["competitors"] == []
        assert report["matrix_scores"] == []
        assert report["blue_ocean"] is None
        assert report["market_intelligence"] is None
        assert len(report["user_features"]) == 2
        assert all(f["mvp_priority"] is None for f in report["user_features"])

    def test_rerun_after_failure(self):
        analysis_id = _create()
        _set_stage(analysis_id, "gaps", status="failed")
        with patch.object(runner, "submit"):
            res = client.post(f"/analyses/{analysis_id}/rerun")
        assert res.status_code == 200
        status_body = client.get(f"/analyses/{analysis_id}/status").json()
        assert status_body["status"] == "processing"
        assert status_body["error_message"] is None

    def test_rerun_without_features_400(self):
        analysis_id = _create()
        db = TestingSessionLocal()
        try:
            db.query(UserFeature).delete()
            db.commit()
        finally:
            db.close()
        with patch.object(runner, "submit") as mock_submit:
            res = client.post(f"/analyses/{analysis_id}/rerun")
        assert res.status_code == 400
        mock_submit.assert_not_called()

    def test_rerun_while_running_409(self):
        analysis_id = _create()
        with patch.object(runner, "is_running", return_value=True), \
             patch.object(runner, "submit") as mock_submit:
            res = client.post(f"/analyses/{analysis_id}/rerun")
        assert res.status_code == 409
        mock_submit.assert_not_called()

    def test_rerun_unknown_404(self):
        res = client.post(f"/analyses/{uuid.uuid4()}/rerun")
        assert res.status_code == 404


# ===================================================================== #
#  Delete                                                                #
# ===================================================================== #

class TestDelete:
    def test_delete_removes_children(self):
        analysis_id = _create()
        _run_pipeline(analysis_id)

        res = client.delete(f"/analyses/{analysis_id}")
        assert res.status_code == 204
        assert client.get(f"/analyses/{analysis_id}").status_code == 404

        db = TestingSessionLocal()
        try:
            assert db.query(Competitor).count() == 0
            assert db.query(UserFeature).count() == 0
        finally:
            db.close()

    def test_delete_while_running_409(self):
        analysis_id = _create()
        with patch.object(runner, "is_running", return_value=True):
            res = client.delete(f"/analyses/{analysis_id}")
        assert res.status_code == 409


class TestGeneral:
    def test_health(self):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"
