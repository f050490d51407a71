# progress-engine/scoring.py

"""
Scoring Calculator.

Maps a completed action to a progress point award. Additive bonuses are summed
first, then the streak multiplier is applied once to the raw total.
"""
import math
from dataclasses import dataclass

import config
from schemas import PointsAward
from utils import clamp, round_half_up


@dataclass(frozen=True)
class ScoringContext:
    streak_multiplier: float = 1.0


def streak_multiplier_for(streak: int, tiers: list | None = None) -> float:
    tiers = config.STREAK_MULTIPLIERS if tiers is None else tiers
    for tier in sorted(tiers, key=lambda t: t["min_streak"], reverse=True):
        if streak >= tier["min_streak"]:
            return tier["multiplier"]
    return 1.0


def validate_award(points) -> tuple[int, list[str]]:
    """Caller-supplied points must be a non-negative number; anything else scores 0."""
    if isinstance(points, bool) or not isinstance(points, (int, float)):
        return 0, [f"Invalid points value: {points!r}"]
    if points < 0 or not math.isfinite(points):
        return 0, [f"Invalid points value: {points}"]
    return round_half_up(points), []


def is_comprehensive_cost_analysis(event, gate: dict | None = None) -> bool:
    """Quick cost analyses (under the gate's minimum time) still score, but never count toward unlocks."""
    if event.tool_id != "cost":
        return False
    gate = config.COMPETENCY_GATES["business_case"] if gate is None else gate
    seconds = event.metrics.time_spent_seconds
    if seconds is None or seconds < gate["min_seconds"]:
        return False
    min_annual_cost = gate.get("min_annual_cost")
    if min_annual_cost is not None:
        return (event.metrics.annual_cost or 0) >= min_annual_cost
    return True


def compute_points(event, context: ScoringContext | None = None) -> PointsAward:
    context = context or ScoringContext()
    rules = config.POINT_CONFIG
    breakdown: dict[str, int] = {}
    errors: list[str] = []

    if event.tool_id == "daily_objective":
        base, errors = validate_award(event.metrics.points)
        if errors:
            breakdown["rejected_points"] = 1
    else:
        base = rules["base_points"][event.tool_id]
    breakdown["base"] = base

    if event.tool_id == "icp" and event.metrics.score is not None and event.metrics.score >= 0:
        score = clamp(event.metrics.score, 0, 100)
        breakdown["score_bonus"] = round_half_up(score * rules["icp_score_bonus_rate"])

    if event.tool_id == "cost":
        seconds = event.metrics.time_spent_seconds
        if seconds is not None and seconds < rules["efficiency_max_seconds"]:
            breakdown["efficiency_bonus"] = rules["efficiency_bonus_points"]

    if event.tool_id == "business_case" and event.metrics.is_comprehensive_template:
        breakdown["comprehensive_bonus"] = rules["comprehensive_bonus_points"]

    raw = sum(v for k, v in breakdown.items() if k != "rejected_points")

    multiplier = context.streak_multiplier
    if multiplier is None or multiplier < 1.0:
        errors.append(f"Invalid streak multiplier: {multiplier!r}")
        multiplier = 1.0
    points = round_half_up(raw * multiplier)
    if points != raw:
        breakdown["streak_bonus"] = points - raw

    return PointsAward(points=points, breakdown=breakdown, errors=errors)


def impact_level(annual_cost: float | None) -> str:
    cost = annual_cost or 0
    for minimum, label in config.IMPACT_LEVELS:
        if cost >= minimum:
            return label
    return "Minimal"


def business_case_quality(template_name: str | None, time_spent_seconds: float | None) -> str:
    quality = config.BUSINESS_CASE_TEMPLATE_QUALITY.get(template_name or "", "Standard")
    # Longer sessions indicate a more detailed case.
    if (time_spent_seconds or 0) > config.BUSINESS_CASE_THOROUGH_SECONDS:
        quality = {"Foundation": "Proficient", "Advanced": "Expert"}.get(quality, quality)
    return quality
