"""
Tests for the scoring calculator.
"""
import pytest

import config
from factories import business_case, cost, daily_objective, export, icp, workflow
from scoring import (
    ScoringContext,
    business_case_quality,
    compute_points,
    impact_level,
    is_comprehensive_cost_analysis,
    streak_multiplier_for,
    validate_award,
)


class TestBasePoints:

    @pytest.mark.parametrize("event, expected", [
        (icp(), 25),
        (cost(), 35),
        (business_case(), 50),
        (workflow(), 100),
        (export(), 10),
    ])
    def test_base_points_per_tool(self, event, expected):
        award = compute_points(event)
        assert award.points == expected
        assert award.breakdown["base"] == expected
        assert award.errors == []

    def test_daily_objective_uses_supplied_points(self):
        award = compute_points(daily_objective(points=40))
        assert award.points == 40

    def test_negative_daily_objective_points_are_rejected(self):
        award = compute_points(daily_objective(points=-5))
        assert award.points == 0
        assert award.breakdown["rejected_points"] == 1
        assert award.errors

    def test_missing_daily_objective_points_are_rejected(self):
        award = compute_points(daily_objective(points=None))
        assert award.points == 0
        assert award.errors


class TestIcpScoreBonus:

    def test_documented_example_score_85(self):
        award = compute_points(icp(score=85))
        assert award.breakdown["score_bonus"] == 21
        assert award.points == 46

    def test_half_rounds_up(self):
        # 90 * 0.25 = 22.5
        assert compute_points(icp(score=90)).breakdown["score_bonus"] == 23

    def test_quarter_above_rounds_up(self):
        # 91 * 0.25 = 22.75
        assert compute_points(icp(score=91)).points == 48

    def test_missing_score_gives_no_bonus(self):
        award = compute_points(icp())
        assert "score_bonus" not in award.breakdown
        assert award.points == 25

    def test_negative_score_gives_no_bonus(self):
        assert compute_points(icp(score=-10)).points == 25

    def test_score_above_100_is_clamped(self):
        assert compute_points(icp(score=150)).breakdown["score_bonus"] == 25


class TestToolBonuses:

    def test_quick_cost_analysis_earns_efficiency_bonus(self):
        award = compute_points(cost(seconds=300))
        assert award.breakdown["efficiency_bonus"] == 5
        assert award.points == 40

    def test_efficiency_bonus_boundary_is_exclusive(self):
        assert compute_points(cost(seconds=1000)).points == 35

    def test_cost_without_time_gets_no_efficiency_bonus(self):
        assert compute_points(cost()).points == 35

    def test_comprehensive_business_case_bonus(self):
        award = compute_points(business_case(is_comprehensive_template=True))
        assert award.breakdown["comprehensive_bonus"] == 25
        assert award.points == 75


class TestStreakMultiplier:

    @pytest.mark.parametrize("streak, expected", [
        (0, 1.0), (2, 1.0), (3, 1.15), (6, 1.15), (7, 1.20), (30, 1.20),
    ])
    def test_tiers(self, streak, expected):
        assert streak_multiplier_for(streak) == expected

    def test_multiplier_applied_once_after_bonuses(self):
        award = compute_points(icp(score=85), ScoringContext(streak_multiplier=1.15))
        # round(46 * 1.15) = round(52.9)
        assert award.points == 53
        assert award.breakdown["streak_bonus"] == 7

    def test_seven_day_multiplier(self):
        assert compute_points(cost(seconds=300), ScoringContext(streak_multiplier=1.2)).points == 48

    def test_multiplier_below_one_is_ignored(self):
        award = compute_points(icp(score=85), ScoringContext(streak_multiplier=0.5))
        assert award.points == 46
        assert award.errors

    def test_custom_tiers(self):
        tiers = [{"min_streak": 2, "multiplier": 1.5}]
        assert streak_multiplier_for(2, tiers) == 1.5
        assert streak_multiplier_for(1, tiers) == 1.0


class TestValidateAward:

    def test_accepts_non_negative_numbers(self):
        assert validate_award(10) == (10, [])
        assert validate_award(2.5) == (3, [])

    @pytest.mark.parametrize("value", [-1, None, "10", True, float("nan"), float("inf")])
    def test_rejects_invalid_values(self, value):
        points, errors = validate_award(value)
        assert points == 0
        assert errors


class TestComprehensiveCostAnalysis:

    def test_quick_analysis_is_not_comprehensive(self):
        assert not is_comprehensive_cost_analysis(cost(seconds=300))

    def test_threshold_is_inclusive(self):
        assert is_comprehensive_cost_analysis(cost(seconds=600))
        assert not is_comprehensive_cost_analysis(cost(seconds=599))

    def test_other_tools_never_qualify(self):
        assert not is_comprehensive_cost_analysis(icp(score=90))

    def test_optional_annual_cost_floor(self):
        gate = {**config.COMPETENCY_GATES["business_case"], "min_annual_cost": 100000}
        assert not is_comprehensive_cost_analysis(cost(seconds=900, annual_cost=50000), gate)
        assert is_comprehensive_cost_analysis(cost(seconds=900, annual_cost=150000), gate)


class TestLabels:

    @pytest.mark.parametrize("annual_cost, expected", [
        (1200000, "Transformational"),
        (500000, "High Impact"),
        (100000, "Moderate"),
        (10000, "Minimal"),
        (None, "Minimal"),
    ])
    def test_impact_level(self, annual_cost, expected):
        assert impact_level(annual_cost) == expected

    def test_business_case_quality(self):
        assert business_case_quality("pilot_program", 100) == "Foundation"
        assert business_case_quality("pilot_program", 1000) == "Proficient"
        assert business_case_quality("full_implementation", 1000) == "Expert"
        assert business_case_quality("something_else", 100) == "Standard"
        assert business_case_quality(None, None) == "Standard"
