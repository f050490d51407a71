# progress-engine/evaluation.py

"""
Runs one action event through the five engine components in order:

    streak -> points -> competency -> milestones (+ rewards) -> gates -> unlocks

Input is an immutable CustomerSnapshot; the result carries the next snapshot
plus everything the caller needs to persist and announce. Nothing here reads
the clock or touches storage.
"""
import logging
from datetime import date, datetime

import config
from competency_gates import evaluate_all_access
from milestones import check_milestones, merge_progress, reward_deltas, reward_points_total, with_event
from progress_state import apply_event, rederive, streak_bonus_points, update_streak
from schemas import CompetencyDelta, CustomerSnapshot, EvaluationOutcome
from scoring import ScoringContext, business_case_quality, compute_points, impact_level, streak_multiplier_for
from unlocks import detect_new_unlocks

logger = logging.getLogger(__name__)


def competency_deltas_for(tool_id: str) -> list[CompetencyDelta]:
    return [CompetencyDelta(**gain) for gain in config.TOOL_COMPETENCY_GAINS.get(tool_id, [])]


def evaluate_action(
    snapshot: CustomerSnapshot,
    event,
    today: date | None = None,
    now: datetime | None = None,
) -> EvaluationOutcome:
    """Evaluates a single completed action for one customer.

    `today` drives the streak and defaults to the event's calendar date.
    `now` stamps milestone and unlock records and defaults to the event time.
    """
    today = today or event.timestamp.date()
    now = now or event.timestamp
    before = snapshot.competency

    streaked = update_streak(before, today)
    bonus = streak_bonus_points(before, streaked)
    award = compute_points(event, ScoringContext(streak_multiplier=streak_multiplier_for(streaked.consistency_streak)))

    deltas = competency_deltas_for(event.tool_id)
    update = apply_event(streaked, event, award.points + bonus, deltas)
    state = update.state
    mastery = list(update.mastery_achieved)
    errors = [*award.errors, *update.errors]

    history = with_event(event, snapshot.history)
    milestones = check_milestones(event, history, snapshot.milestone_progress, competency=state, now=now)
    if milestones.rewards:
        # Milestone rewards are flat: no streak multiplier.
        rewarded = apply_event(state, event, reward_points_total(milestones.rewards), reward_deltas(milestones.rewards))
        state = rewarded.state
        mastery.extend(c for c in rewarded.mastery_achieved if c not in mastery)
        errors.extend(rewarded.errors)

    tool_access = evaluate_all_access(history, state, previous=snapshot.tool_access)
    unlocks = detect_new_unlocks(snapshot.tool_access, tool_access, now=now)
    for unlock in unlocks:
        logger.info("Customer %s unlocked %s", snapshot.customer_id, unlock.tool_id)

    next_snapshot = snapshot.model_copy(update={
        "history": history,
        "competency": state,
        "tool_access": tool_access,
        "milestone_progress": merge_progress(snapshot.milestone_progress, milestones),
    })

    outcome_impact = None
    quality = None
    if event.tool_id == "cost":
        outcome_impact = impact_level(event.metrics.annual_cost)
    elif event.tool_id == "business_case":
        quality = business_case_quality(event.metrics.template_name, event.metrics.time_spent_seconds)

    return EvaluationOutcome(
        snapshot=next_snapshot,
        award=award,
        streak_bonus_points=bonus,
        competency_deltas=deltas,
        unlocks=unlocks,
        milestones=milestones,
        mastery_achieved=mastery,
        level_advanced=state.overall_level != before.overall_level,
        rank_advanced=state.hidden_rank != before.hidden_rank,
        impact_level=outcome_impact,
        quality_level=quality,
        errors=errors,
    )


def reevaluate_snapshot(snapshot: CustomerSnapshot, now: datetime | None = None):
    """Recomputes derived fields and gate access from stored history. Returns (snapshot, unlocks)."""
    competency = rederive(snapshot.competency)
    tool_access = evaluate_all_access(snapshot.history, competency, previous=snapshot.tool_access)
    unlocks = detect_new_unlocks(snapshot.tool_access, tool_access, now=now)
    return snapshot.model_copy(update={"competency": competency, "tool_access": tool_access}), unlocks
