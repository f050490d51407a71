"""
Tests for payload sanitizing and stored-state repair.
"""
import json
from datetime import date

import pytest

from competency_gates import evaluate_access
from exceptions import InvalidActionEventError
from repair import (
    camel_to_snake,
    repair_competency_state,
    repair_history,
    repair_milestone_progress,
    repair_tool_access,
    sanitize_event_payload,
)
from schemas import CostEvent, IcpEvent


class TestSanitizeEventPayload:

    def test_camel_case_payload(self):
        event, report = sanitize_event_payload({
            "toolId": "cost",
            "timestamp": "2024-03-04T09:00:00Z",
            "eventId": "evt-1",
            "metrics": {"timeSpentSeconds": 720, "annualCost": 250000},
        })
        assert isinstance(event, CostEvent)
        assert event.metrics.time_spent_seconds == 720
        assert event.metrics.annual_cost == 250000
        assert event.event_id == "evt-1"
        assert event.timestamp.tzinfo is not None
        assert report.repaired is False

    def test_legacy_data_key(self):
        event, _ = sanitize_event_payload({"tool_id": "icp", "timestamp": "2024-03-04T09:00:00", "data": {"score": 82}})
        assert isinstance(event, IcpEvent)
        assert event.metrics.score == 82

    def test_negative_time_is_clamped(self):
        event, report = sanitize_event_payload({"toolId": "cost", "timestamp": "2024-03-04T09:00:00Z",
                                                "metrics": {"timeSpentSeconds": -30}})
        assert event.metrics.time_spent_seconds == 0
        assert report.repaired

    def test_out_of_range_score_is_clamped(self):
        event, report = sanitize_event_payload({"toolId": "icp", "timestamp": "2024-03-04T09:00:00Z",
                                                "metrics": {"score": 140}})
        assert event.metrics.score == 100
        assert any("score" in issue for issue in report.issues)

    def test_non_numeric_metric_is_dropped(self):
        event, report = sanitize_event_payload({"toolId": "icp", "timestamp": "2024-03-04T09:00:00Z",
                                                "metrics": {"score": "high"}})
        assert event.metrics.score is None
        assert report.repaired

    @pytest.mark.parametrize("value", ["nan", "NaN", "inf", "-Infinity", float("nan"), float("inf")])
    def test_non_finite_score_is_dropped(self, value):
        event, report = sanitize_event_payload({"toolId": "icp", "timestamp": "2024-03-04T09:00:00Z",
                                                "metrics": {"score": value}})
        assert event.metrics.score is None
        assert any("non-finite" in issue for issue in report.issues)

    def test_non_finite_scores_never_open_a_gate(self):
        events = [
            sanitize_event_payload({"toolId": "icp", "timestamp": f"2024-03-0{day}T09:00:00Z",
                                    "metrics": {"score": "nan"}})[0]
            for day in (1, 2, 3)
        ]
        status = evaluate_access("cost_calculator", events)
        assert status.has_access is False
        assert status.progress.completed == 0

    def test_non_finite_annual_cost_is_dropped(self):
        event, report = sanitize_event_payload({"toolId": "cost", "timestamp": "2024-03-04T09:00:00Z",
                                                "metrics": {"annualCost": "Infinity", "timeSpentSeconds": 700}})
        assert event.metrics.annual_cost is None
        assert event.metrics.time_spent_seconds == 700
        assert report.repaired

    def test_unknown_metric_fields_are_ignored(self):
        event, _ = sanitize_event_payload({"toolId": "export", "timestamp": "2024-03-04T09:00:00Z",
                                           "metrics": {"format": "pdf", "exportFormat": "pdf"}})
        assert event.metrics.export_format == "pdf"

    @pytest.mark.parametrize("payload", [
        {"timestamp": "2024-03-04T09:00:00Z"},
        {"toolId": "crm_sync", "timestamp": "2024-03-04T09:00:00Z"},
        {"toolId": "icp", "timestamp": "yesterday"},
        {"toolId": "icp"},
        "not a payload",
    ])
    def test_unrepairable_payloads_raise(self, payload):
        with pytest.raises(InvalidActionEventError):
            sanitize_event_payload(payload)

    def test_camel_to_snake(self):
        assert camel_to_snake("isComprehensiveTemplate") == "is_comprehensive_template"
        assert camel_to_snake("score") == "score"


class TestRepairCompetencyState:

    def test_valid_json_round_trips(self):
        raw = json.dumps({"total_progress_points": 320, "category_scores": {"customer_analysis": 45},
                          "consistency_streak": 4, "last_activity_date": "2024-03-03"})
        state, report = repair_competency_state(raw)
        assert state.total_progress_points == 320
        assert state.overall_level == "Proficient"
        assert state.hidden_rank == "C"
        assert state.category_scores["customer_analysis"] == 45
        assert state.category_scores["strategic_thinking"] == 0
        assert state.last_activity_date == date(2024, 3, 3)
        assert report.repaired is False

    def test_corrupted_json_falls_back_to_defaults(self):
        state, report = repair_competency_state("{not json")
        assert state.total_progress_points == 0
        assert state.overall_level == "Foundation"
        assert report.repaired

    def test_out_of_range_values(self):
        state, report = repair_competency_state({
            "totalProgressPoints": -40,
            "categoryScores": {"customer_analysis": 140, "value_articulation": -5},
            "overallLevel": "Grandmaster",
            "hiddenRank": "Z",
            "consistencyStreak": -2,
        })
        assert state.total_progress_points == 0
        assert state.category_scores["customer_analysis"] == 100
        assert state.category_scores["value_articulation"] == 0
        assert state.overall_level == "Foundation"
        assert state.hidden_rank == "E"
        assert state.consistency_streak == 0
        assert len(report.issues) == 6

    def test_non_finite_values_are_reset(self):
        state, report = repair_competency_state('{"totalProgressPoints": NaN, "consistencyStreak": Infinity,'
                                                ' "categoryScores": {"customer_analysis": "nan", "value_articulation": -Infinity}}')
        assert state.total_progress_points == 0
        assert state.consistency_streak == 0
        assert state.category_scores["customer_analysis"] == 0
        assert state.category_scores["value_articulation"] == 0
        assert len(report.issues) == 4

    def test_unknown_categories_are_dropped(self):
        state, report = repair_competency_state({"categoryScores": {"customer_analysys": 40, "customer_analysis": 20}})
        assert "customer_analysys" not in state.category_scores
        assert state.category_scores["customer_analysis"] == 20
        assert report.issues == ["category_scores.customer_analysys: unknown category dropped"]

    def test_empty_field_is_default_without_issues(self):
        state, report = repair_competency_state(None)
        assert state.total_progress_points == 0
        assert report.repaired is False


class TestRepairToolAccess:

    def test_corrupted_access_means_all_gated_tools_locked(self):
        statuses, report = repair_tool_access("[[[")
        assert statuses == {}
        assert report.repaired

    def test_valid_entries_are_kept(self):
        raw = {"cost_calculator": {"hasAccess": True, "unlockedAt": "2024-03-04T09:00:00Z",
                                   "progress": {"completed": 3, "required": 3, "percentage": 100}}}
        statuses, report = repair_tool_access(raw)
        assert statuses["cost_calculator"].has_access is True
        assert statuses["cost_calculator"].progress.completed == 3
        assert report.repaired is False

    def test_unknown_tools_are_dropped(self):
        statuses, report = repair_tool_access({"crm_sync": {"has_access": True}})
        assert statuses == {}
        assert report.repaired


class TestRepairMilestoneProgress:

    def test_unknown_and_invalid_entries_are_dropped(self):
        raw = {
            "customer_intelligence_foundation": {"current": 1, "required": 1, "achieved": True},
            "legacy_badge": {"current": 1},
            "systematic_analyzer": "broken",
        }
        progress, report = repair_milestone_progress(raw)
        assert list(progress) == ["customer_intelligence_foundation"]
        assert progress["customer_intelligence_foundation"].achieved is True
        assert len(report.issues) == 2


class TestRepairHistory:

    def test_bad_entries_are_dropped_and_rest_sorted(self):
        raw = json.dumps([
            {"toolId": "icp", "timestamp": "2024-03-05T09:00:00Z", "metrics": {"score": 80}},
            {"toolId": "unknown", "timestamp": "2024-03-04T09:00:00Z"},
            {"toolId": "cost", "timestamp": "2024-03-04T09:00:00Z", "metrics": {"timeSpentSeconds": 700}},
        ])
        events, report = repair_history(raw)
        assert [e.tool_id for e in events] == ["cost", "icp"]
        assert len(report.issues) == 1

    def test_non_list_history(self):
        events, report = repair_history({"oops": True})
        assert events == []
        assert report.repaired
