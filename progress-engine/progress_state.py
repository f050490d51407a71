# progress-engine/progress_state.py

"""
Progress/Streak State Manager.

Every function takes a CompetencyState snapshot and returns a new one; the
input is never mutated. Level and rank are always re-derived from
total_progress_points.
"""
from datetime import date, timedelta

import config
from exceptions import UnknownCategoryError
from schemas import CompetencyDelta, CompetencyState, ProgressUpdate
from scoring import validate_award
from utils import clamp, threshold_label


def level_for_points(points: int, thresholds: list | None = None) -> str:
    return threshold_label(points, config.LEVEL_THRESHOLDS if thresholds is None else thresholds)


def rank_for_points(points: int, thresholds: list | None = None) -> str:
    return threshold_label(points, config.RANK_THRESHOLDS if thresholds is None else thresholds)


def category_level(score: int) -> str:
    return threshold_label(score, config.CATEGORY_LEVEL_THRESHOLDS)


def _expand_deltas(deltas) -> list[CompetencyDelta]:
    expanded = []
    for delta in deltas or []:
        if isinstance(delta, dict):
            delta = CompetencyDelta(**delta)
        if delta.category == "all":
            expanded.extend(CompetencyDelta(category=c, amount=delta.amount) for c in config.COMPETENCY_CATEGORIES)
        elif delta.category in config.COMPETENCY_CATEGORIES:
            expanded.append(delta)
        else:
            raise UnknownCategoryError(delta.category)
    return expanded


def apply_event(state: CompetencyState, event, points_awarded, competency_deltas=None) -> ProgressUpdate:
    """Adds awarded points and competency gains for one action event.

    `event` is carried for the caller's audit trail; the update itself depends
    only on the awarded points and deltas. Negative or non-numeric points are
    rejected (clamped to 0) so the total never goes down.
    """
    points, errors = validate_award(points_awarded)

    scores = dict(state.category_scores)
    mastery = []
    for delta in _expand_deltas(competency_deltas):
        before = scores.get(delta.category, 0)
        after = clamp(before + delta.amount, config.COMPETENCY_SCORE_MIN, config.COMPETENCY_SCORE_MAX)
        scores[delta.category] = after
        if before < config.COMPETENCY_SCORE_MAX <= after and delta.category not in mastery:
            mastery.append(delta.category)

    total = state.total_progress_points + points
    new_state = state.model_copy(update={
        "total_progress_points": total,
        "category_scores": scores,
        "overall_level": level_for_points(total),
        "hidden_rank": rank_for_points(total),
    })
    return ProgressUpdate(
        state=new_state,
        points_applied=points,
        mastery_achieved=mastery,
        level_advanced=new_state.overall_level != state.overall_level,
        rank_advanced=new_state.hidden_rank != state.hidden_rank,
        errors=errors,
    )


def update_streak(state: CompetencyState, today: date) -> CompetencyState:
    last = state.last_activity_date
    if last == today:
        return state
    if last is not None and last > today:
        # Activity already recorded for a later day (clock skew); keep it.
        return state
    if last == today - timedelta(days=1):
        streak = state.consistency_streak + 1
    else:
        streak = 1
    return state.model_copy(update={"consistency_streak": streak, "last_activity_date": today})


def streak_bonus_points(previous: CompetencyState, current: CompetencyState) -> int:
    """Bonus for reaching a weekly streak boundary (7, 14, 21...). Paid once per boundary."""
    every = config.POINT_CONFIG["streak_bonus_every_days"]
    streak = current.consistency_streak
    if streak == previous.consistency_streak or streak <= 1 or streak % every:
        return 0
    return (streak // every) * config.POINT_CONFIG["streak_bonus_points"]


def rederive(state: CompetencyState) -> CompetencyState:
    return state.model_copy(update={
        "overall_level": level_for_points(state.total_progress_points),
        "hidden_rank": rank_for_points(state.total_progress_points),
    })
