"""Analysis agent tests — parsing of model output and fallback behavior.

Every agent talks to the completion service through `complete()`; each test
patches it in the agent's own module.
"""

import os
import sys

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import json
from unittest.mock import patch

import pytest

from marketscope.agents.analysis_agent import (
    comparison,
    competitors,
    gaps,
    market_intelligence,
    mvp,
    normalization,
    personas,
    positioning,
)
from marketscope.agents.analysis_agent.coerce import as_bool, as_choice, as_float, as_int, load_json
from marketscope.constants import (
    DEFAULT_SCORE_REASONING,
    QUADRANT_BASIC_TOOLS,
    QUADRANT_BLOATED,
    QUADRANT_FEATURE_RICH,
    QUADRANT_SWEET_SPOT,
)
from marketscope.errors import ServiceError

_AGENT = "marketscope.agents.analysis_agent"


# ===================================================================== #
#  Coercion helpers                                                       #
# ===================================================================== #

class TestCoerce:
    def test_as_float_rejects_bool_and_nan(self):
        assert as_float(True) is None
        assert as_float(float("nan")) is None
        assert as_float("7.5") == 7.5

    def test_as_int_rounds(self):
        assert as_int("2019") == 2019
        assert as_int(3.6) == 4
        assert as_int("n/a") is None

    def test_non_finite_numbers_fall_back(self):
        overflow = json.loads("1e999")
        assert as_float(overflow) is None
        assert as_float(float("-inf"), 0.0) == 0.0
        assert as_int(overflow) is None
        assert as_int("Infinity", 3) == 3

    def test_as_bool_accepts_words(self):
        assert as_bool("Paid") is True
        assert as_bool("free") is False
        assert as_bool(1) is None

    def test_as_choice_is_case_insensitive(self):
        assert as_choice("HIGH", ("low", "high"), "low") == "high"
        assert as_choice("extreme", ("low", "high"), "low") == "low"

    def test_load_json_tolerates_corruption(self):
        assert load_json("[1, 2]", []) == [1, 2]
        assert load_json("{broken", []) == []
        assert load_json(None, {}) == {}


# ===================================================================== #
#  Competitor discovery                                                   #
# ===================================================================== #

def _competitor(name, kind):
    return {"name": name, "type": kind, "description": f"{name} does things."}


class TestDiscovery:
    def test_search_query_uses_first_five_features(self):
        query = competitors.build_search_query(
            app_name="FitTrack",
            description="x" * 300,
            target_audience="Runners",
            feature_names=["a", "b", "c", "d", "e", "f"],
        )
        assert "a, b, c, d, e." in query
        assert ", f" not in query
        assert "x" * 201 not in query

    def test_select_keeps_four_direct_and_two_indirect(self):
        raw = (
            [_competitor(f"D{i}", "direct") for i in range(6)]
            + [_competitor(f"I{i}", "Indirect") for i in range(3)]
            + [{"type": "direct"}, _competitor("X", "partner")]
        )
        selected = competitors.select_competitors(raw)
        assert [c.name for c in selected] == ["D0", "D1", "D2", "D3", "I0", "I1"]
        assert all(c.competitor_type in ("direct", "indirect") for c in selected)

    def test_overflowing_founded_year_is_dropped(self):
        raw = json.loads('[{"name": "Strava", "type": "direct", "founded_year": 1e999}]')
        selected = competitors.select_competitors(raw)
        assert [c.name for c in selected] == ["Strava"]
        assert selected[0].founded_year is None

    def test_parses_search_json(self):
        body = json.dumps({"competitors": [_competitor("Strava", "direct")]})
        with patch(f"{_AGENT}.competitors.search_complete", return_value=body):
            found = asyncio.run(competitors.discover_competitors(
                app_name="FitTrack", description="d", target_audience="t", feature_names=[],
            ))
        assert [c.name for c in found] == ["Strava"]

    def test_prose_answer_goes_through_extraction(self):
        with patch(f"{_AGENT}.competitors.search_complete", return_value="Strava is a big one."), \
             patch(f"{_AGENT}.competitors.complete",
                   return_value={"competitors": [_competitor("Strava", "direct")]}) as mock_complete:
            found = asyncio.run(competitors.discover_competitors(
                app_name="FitTrack", description="d", target_audience="t", feature_names=[],
            ))
        assert [c.name for c in found] == ["Strava"]
        assert "Strava is a big one." in mock_complete.call_args.kwargs["user"]

    def test_search_failure_returns_empty(self):
        with patch(f"{_AGENT}.competitors.search_complete", side_effect=ServiceError("down")):
            found = asyncio.run(competitors.discover_competitors(
                app_name="FitTrack", description="d", target_audience="t", feature_names=[],
            ))
        assert found == []

    def test_enrichment_caps_features_and_canonicalizes_category(self):
        result = {
            "founded_year": "2009",
            "market_position": "Social fitness network",
            "features": [{"name": f"F{i}", "category": "core", "is_paid": "paid"} for i in range(10)]
            + [{"name": ""}],
        }
        enrichment = competitors.parse_enrichment(result)
        assert enrichment.founded_year == 2009
        assert len(enrichment.features) == 8
        assert enrichment.features[0].category == "Core"
        assert enrichment.features[0].is_paid is True

    def test_enrichment_failure_degrades_single_competitor(self):
        cands = [
            competitors.CompetitorCandidate("A", "direct"),
            competitors.CompetitorCandidate("B", "direct"),
        ]

        async def fake_complete(**kwargs):
            if "Competitor: A" in kwargs["user"]:
                raise ServiceError("boom")
            return {"features": [{"name": "Sync", "category": "Mobile"}]}

        with patch(f"{_AGENT}.competitors.complete", side_effect=fake_complete):
            enrichments = asyncio.run(competitors.enrich_competitors(cands))
        assert enrichments[0].features == []
        assert [f.name for f in enrichments[1].features] == ["Sync"]


# ===================================================================== #
#  Normalization                                                          #
# ===================================================================== #

def _refs(*names):
    return [normalization.FeatureRef(("f", i), name) for i, name in enumerate(names)]


class TestNormalization:
    def test_groups_form_a_partition(self):
        refs = _refs("Dark mode", "Night theme", "Export CSV", "Offline sync")
        raw = [
            {"canonicalName": "Dark Mode", "featureIndices": [1, 2]},
            {"canonicalName": "Dup", "featureIndices": [2, 99, "x"]},
            {"featureIndices": [3, 3]},
        ]
        groups = normalization.reconcile_groups(refs, raw)
        members = [k for g in groups for k in g.member_keys]
        assert sorted(members) == sorted(r.key for r in refs)
        assert len(members) == len(set(members))
        assert groups[0].canonical_name == "Dark Mode"
        assert groups[1].canonical_name == "Export CSV"
        assert groups[2].member_keys == [("f", 3)]

    def test_overflowing_index_is_ignored(self):
        refs = _refs("Dark mode", "Export CSV")
        raw = json.loads('[{"canonicalName": "Dark Mode", "featureIndices": [1e999, 1]}]')
        groups = normalization.reconcile_groups(refs, raw)
        assert [g.member_keys for g in groups] == [[("f", 0)], [("f", 1)]]

    def test_empty_input_makes_no_call(self):
        with patch(f"{_AGENT}.normalization.complete") as mock_complete:
            assert asyncio.run(normalization.normalize_features([])) == []
        mock_complete.assert_not_called()

    def test_service_failure_is_identity(self):
        refs = _refs("A feature", "B feature")
        with patch(f"{_AGENT}.normalization.complete", side_effect=ServiceError("down")):
            groups = asyncio.run(normalization.normalize_features(refs))
        assert [g.member_keys for g in groups] == [[("f", 0)], [("f", 1)]]


# ===================================================================== #
#  Comparison matrix                                                      #
# ===================================================================== #

class TestComparison:
    def test_default_weights_sum_to_one(self):
        params = comparison.default_parameters()
        assert len(params) == 10
        assert sum(p.weight for p in params) == pytest.approx(1.0)

    def test_weights_are_rescaled(self):
        params = comparison.normalize_parameters([
            {"name": "Speed", "weight": 2},
            {"name": "speed", "weight": 5},
            {"name": "Price", "weight": 6},
            {"weight": 1},
        ])
        assert [p.name for p in params] == ["Speed", "Price"]
        assert [p.weight for p in params] == pytest.approx([0.25, 0.75])

    def test_zero_weights_become_equal(self):
        params = comparison.normalize_parameters([{"name": "A"}, {"name": "B", "weight": -3}])
        assert [p.weight for p in params] == pytest.approx([0.5, 0.5])

    def test_overflowing_weight_counts_as_zero(self):
        raw = json.loads('[{"name": "Speed", "weight": 1e999}, {"name": "Price", "weight": 1}]')
        params = comparison.normalize_parameters(raw)
        assert [p.weight for p in params] == pytest.approx([0.0, 1.0])
        assert sum(p.weight for p in params) == pytest.approx(1.0)

    def test_empty_parameters_fall_back_to_defaults(self):
        with patch(f"{_AGENT}.comparison.complete", return_value={"parameters": []}):
            params = asyncio.run(comparison.generate_parameters(
                app_name="A", target_audience="t", feature_summary="", competitor_names=[],
            ))
        assert [p.name for p in params] == [p.name for p in comparison.default_parameters()]

    def test_scores_matched_case_insensitively_and_clamped(self):
        params = comparison.default_parameters()[:3]
        raw = [
            {"parameter": params[0].name.upper(), "score": 12, "reasoning": "great"},
            {"name": params[1].name, "score": "-4"},
        ]
        cells = comparison.match_scores(params, raw)
        assert [c.score for c in cells] == [10.0, 0.0, 5.0]
        assert cells[0].reasoning == "great"
        assert cells[2].reasoning == DEFAULT_SCORE_REASONING

    def test_scoring_failure_gives_default_cells(self):
        params = comparison.default_parameters()
        entity = comparison.EntityProfile("competitor", None, "Strava")
        with patch(f"{_AGENT}.comparison.complete", side_effect=ServiceError("down")):
            cells = asyncio.run(comparison.score_entity(entity, params))
        assert len(cells) == 10
        assert {c.score for c in cells} == {5.0}


# ===================================================================== #
#  Gaps & Blue Ocean                                                      #
# ===================================================================== #

_CTX = gaps.GapContext(
    app_name="FitTrack",
    target_audience="Runners",
    user_features=[("GPS tracking", None)],
    competitors=[("Strava", "Social running", ["Segments", "Clubs"])],
)


class TestGaps:
    def test_deficits_capped_and_severity_defaulted(self):
        raw = [{"title": f"Gap {i}", "severity": "urgent"} for i in range(7)]
        deficits = gaps.parse_deficits(raw)
        assert len(deficits) == 5
        assert deficits[0].severity == "medium"

    def test_standout_score_stored_on_hundred_scale(self):
        assert gaps.to_storage_score(8.5) == 85.0
        assert gaps.to_storage_score(14) == 100.0
        assert gaps.to_storage_score("bad") == 0.0

    def test_standouts_capped(self):
        standouts = gaps.parse_standouts([{"title": f"S{i}", "opportunity_score": 7} for i in range(6)])
        assert len(standouts) == 4
        assert standouts[0].opportunity_score == 70.0

    def test_gap_failures_are_empty(self):
        with patch(f"{_AGENT}.gaps.complete", side_effect=ServiceError("down")):
            deficits, standouts = asyncio.run(gaps.analyze_gaps(_CTX))
        assert deficits == [] and standouts == []

    def test_blue_ocean_failure_uses_fallback(self):
        with patch(f"{_AGENT}.gaps.complete", side_effect=ServiceError("down")):
            insight = asyncio.run(gaps.find_blue_ocean(_CTX, [], []))
        assert insight.market_vacuum_title == "Market Analysis"
        assert insight.target_segment == "Runners"

    def test_blue_ocean_empty_object_uses_field_defaults(self):
        with patch(f"{_AGENT}.gaps.complete", return_value={}):
            insight = asyncio.run(gaps.find_blue_ocean(_CTX, [], []))
        assert insight.market_vacuum_title == "Market Opportunity"
        assert insight.estimated_opportunity == "medium"
        assert insight.implementation_difficulty == "moderate"


# ===================================================================== #
#  MVP                                                                    #
# ===================================================================== #

class TestMvp:
    def test_even_split(self):
        assert [mvp.default_priority(i, 6) for i in range(6)] == ["P0", "P0", "P1", "P1", "P2", "P2"]

    def test_first_valid_answer_wins_and_gaps_filled(self):
        raw = [
            {"feature_index": 0, "priority": "p2", "reasoning": "later"},
            {"feature_index": 0, "priority": "P0"},
            {"feature_index": 1.5, "priority": "P0"},
            {"feature_index": 7, "priority": "P0"},
            {"feature_index": 2, "priority": "P9"},
        ]
        result = mvp.reconcile_priorities(3, raw)
        assert [a.priority for a in result] == ["P2", "P1", "P2"]
        assert result[0].reasoning == "later"

    def test_overflowing_index_gets_default(self):
        raw = json.loads('[{"feature_index": 1e999, "priority": "P2"}, {"feature_index": -1e999, "priority": "P2"}]')
        result = mvp.reconcile_priorities(2, raw)
        assert [a.priority for a in result] == ["P0", "P1"]

    def test_failure_uses_even_split(self):
        with patch(f"{_AGENT}.mvp.complete", side_effect=ServiceError("down")):
            result = asyncio.run(mvp.prioritize_features(
                [("A", None), ("B", None), ("C", None)], competitor_summary="", deficit_summary="",
            ))
        assert [a.priority for a in result] == ["P0", "P1", "P2"]


# ===================================================================== #
#  Personas & reviews                                                     #
# ===================================================================== #

class TestPersonas:
    def test_personas_in_fixed_type_order(self):
        with patch(f"{_AGENT}.personas.complete", side_effect=ServiceError("down")):
            result = asyncio.run(personas.generate_personas(
                app_name="FitTrack", target_audience="Runners", feature_names=["GPS"],
            ))
        assert [p.persona_type for p in result] == ["price_sensitive", "power_user", "corporate_buyer"]
        assert result[0].name == "Budget-Conscious Beth"
        assert "FitTrack" in result[1].system_prompt

    def test_empty_fields_taken_from_default(self):
        merged = personas.merge_persona("power_user", "FitTrack", {"name": "Dev Dana", "pain_points": []})
        assert merged.name == "Dev Dana"
        assert merged.title == "Senior Developer"
        assert merged.pain_points
        assert merged.system_prompt.startswith("You are a power user evaluating FitTrack")

    def test_review_rating_from_sentiment_and_clamped(self):
        assert personas.parse_review({"review_text": "Meh", "sentiment": "Mixed"}).rating == 3
        assert personas.parse_review({"review_text": "Love it", "rating": 9}).rating == 5
        assert personas.parse_review({"review_text": "Bad", "rating": 1}).sentiment == "negative"
        assert personas.parse_review({"rating": 4}) is None

    def test_overflowing_rating_uses_sentiment(self):
        review = personas.parse_review(json.loads('{"review_text": "Nice", "rating": 1e999, "sentiment": "positive"}'))
        assert review.rating == 4
        review = personas.parse_review(json.loads('{"review_text": "Hmm", "rating": -1e999}'))
        assert (review.rating, review.sentiment) == (3, "mixed")

    def test_reviews_capped_at_ten(self):
        raw = {"reviews": [{"review_text": f"Review {i}", "rating": 4} for i in range(14)]}
        with patch(f"{_AGENT}.personas.complete", return_value=raw):
            reviews = asyncio.run(personas.generate_reviews(
                app_name="A", description="d", target_audience="t", feature_names=[], competitors=[],
            ))
        assert len(reviews) == 10
        assert reviews[0].reviewer_name == "Anonymous User"


# ===================================================================== #
#  Positioning                                                            #
# ===================================================================== #

_COMPETITORS = [
    positioning.PositionedEntity("c1", "Strava"),
    positioning.PositionedEntity("c2", "Nike Run Club"),
    positioning.PositionedEntity("c3", "Runkeeper"),
]


class TestPositioning:
    @pytest.mark.parametrize("value,complexity,expected", [
        (8, 3, QUADRANT_SWEET_SPOT),
        (7, 4.9, QUADRANT_SWEET_SPOT),
        (6.9, 5, QUADRANT_BLOATED),
        (7, 5, QUADRANT_FEATURE_RICH),
        (6.9, 4.9, QUADRANT_BASIC_TOOLS),
        (2, 9, QUADRANT_BLOATED),
    ])
    def test_quadrants(self, value, complexity, expected):
        assert positioning.classify_quadrant(value, complexity) == expected

    def test_default_layout(self):
        layout = positioning.default_positioning("FitTrack", _COMPETITORS)
        assert (layout[0].value_score, layout[0].complexity_score) == (7.0, 5.0)
        assert [(p.value_score, p.complexity_score) for p in layout[1:]] == [
            (5.5, 5.0), (6.5, 5.5), (7.5, 6.0),
        ]

    def test_case_insensitive_join_and_defaults(self):
        raw = [
            {"entity_name": "FitTrack", "is_user_app": True, "value_score": 8, "complexity_score": 3},
            {"entity_name": "strava", "value_score": 12, "complexity_score": 6},
            {"entity_name": "Garmin", "value_score": 5, "complexity_score": 5},
            {"entity_name": "Runkeeper", "value_score": 6},
        ]
        result = positioning.reconcile_positions("FitTrack", _COMPETITORS, raw)
        assert len(result.positions) == 4
        user, strava, nike, runkeeper = result.positions
        assert user.entity_type == "user_app" and user.quadrant == QUADRANT_SWEET_SPOT
        assert strava.entity_id == "c1" and strava.value_score == 10.0
        assert nike.reasoning == "Default positioning based on competitor type"
        assert runkeeper.value_score == 7.5
        assert result.unmatched_names == ["Garmin"]
        assert result.defaulted == 2

    def test_name_fallback_marks_user_app(self):
        raw = [{"entity_name": "fittrack", "value_score": 9, "complexity_score": 2}]
        result = positioning.reconcile_positions("FitTrack", [], raw)
        assert result.positions[0].value_score == 9.0
        assert result.defaulted == 0

    def test_failure_gives_synthetic_layout(self):
        with patch(f"{_AGENT}.positioning.complete", side_effect=ServiceError("down")):
            result = asyncio.run(positioning.map_positions(
                app_name="FitTrack", user_features=[], competitors=_COMPETITORS,
            ))
        assert len(result.positions) == 4
        assert result.positions[0].reasoning == "Default positioning - sweet spot target"


# ===================================================================== #
#  Market intelligence                                                    #
# ===================================================================== #

class TestMarketIntelligence:
    def test_failure_returns_unavailable_report(self):
        with patch(f"{_AGENT}.market_intelligence.complete", side_effect=ServiceError("down")):
            report = asyncio.run(market_intelligence.generate_market_report(
                app_name="A", target_audience="t", description="d", user_features=[], competitor_summaries=[],
            ))
        assert report.industry_overview.startswith("Unable to generate")
        assert report.opportunities == []

    def test_invalid_entries_dropped(self):
        report = market_intelligence.parse_report({
            "market_size": "$4.2B",
            "opportunities": [{"title": "Wearables", "potential_impact": "HUGE"}, {"description": "no title"}],
            "threats": [{"title": "Big tech", "severity": "critical", "mitigation": "Niche down"}],
            "barriers_to_entry": {"level": "HIGH", "factors": ["Network effects"]},
        })
        assert report.market_size == "$4.2B"
        assert report.opportunities == [
            {"title": "Wearables", "description": "", "potential_impact": "medium"},
        ]
        assert report.threats[0]["severity"] == "critical"
        assert report.barriers_to_entry == {"level": "high", "factors": ["Network effects"]}
        assert report.market_dynamics == {"drivers": [], "restraints": [], "opportunities": []}
