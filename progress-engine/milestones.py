# progress-engine/milestones.py

"""
Milestone Progress Evaluator.

The registry is built once from config.MILESTONES into a read-only mapping.
check_milestones() never touches CompetencyState; rewards are handed back to
the caller, who applies them through progress_state.apply_event().

Requirement types fall into three groups:
  * count-based (tool_count, windowed_tool_count, metric_total,
    consecutive_days): only events of the matching tool move `current`.
  * streak-based (consistency_streak): `current` mirrors the caller's streak.
  * composite (workflow_speed, all_competencies_at_level,
    all_tools_completed): a boolean snap, reported only once satisfied.
"""
import logging
from datetime import datetime, timedelta
from types import MappingProxyType

import config
from exceptions import UnknownMilestoneError
from schemas import (
    CompetencyDelta,
    CompetencyState,
    MilestoneCheck,
    MilestoneDefinition,
    MilestoneProgress,
    MilestoneReward,
)
from utils import ensure_timezone_aware, round_half_up, threshold_label

logger = logging.getLogger(__name__)


def _build_registry(definitions) -> MappingProxyType:
    registry = {}
    for raw in definitions:
        definition = MilestoneDefinition(**raw)
        if definition.id in registry:
            raise ValueError(f"Duplicate milestone id: {definition.id}")
        registry[definition.id] = definition
    return MappingProxyType(registry)


MILESTONE_REGISTRY = _build_registry(config.MILESTONES)


def get_milestone(milestone_id: str, registry=None) -> MilestoneDefinition:
    registry = MILESTONE_REGISTRY if registry is None else registry
    try:
        return registry[milestone_id]
    except KeyError:
        raise UnknownMilestoneError(milestone_id) from None


def list_milestones(registry=None) -> list[MilestoneDefinition]:
    registry = MILESTONE_REGISTRY if registry is None else registry
    return list(registry.values())


# --- Helpers ---

def with_event(event, history) -> list:
    """History sorted by time, with the incoming event included exactly once."""
    events = list(history or [])
    if event not in events:
        events.append(event)
    return sorted(events, key=lambda e: e.timestamp)


def _roi_percentage(event, params: dict) -> float:
    investment = event.metrics.investment or params.get("default_investment") or 0
    if not investment:
        return 0.0
    return (event.metrics.annual_cost or 0) / investment * 100


def _passes_filters(event, params: dict) -> bool:
    if event.tool_id != params["tool"]:
        return False
    if "min_roi" in params and _roi_percentage(event, params) < params["min_roi"]:
        return False
    if params.get("require_complete") and not event.metrics.complete:
        return False
    return True


def _category_level_rank(level: str) -> int:
    names = [name for _, name in config.CATEGORY_LEVEL_THRESHOLDS]
    return names.index(level)


# --- Requirement Evaluators ---
# Each returns (current, required) when the milestone is touched by this
# event, or None when its progress must stay as it is.

def _eval_tool_count(definition, event, events, existing, competency, now):
    params = definition.requirement_params
    if not _passes_filters(event, params):
        return None
    current = existing.current if existing else 0
    return current + 1, params["count"]


def _eval_windowed_tool_count(definition, event, events, existing, competency, now):
    params = definition.requirement_params
    if not _passes_filters(event, params):
        return None
    window_start = now - timedelta(days=params["days"])
    current = sum(
        1 for e in events
        if _passes_filters(e, params) and window_start <= e.timestamp <= now
    )
    return current, params["count"]


def _eval_metric_total(definition, event, events, existing, competency, now):
    params = definition.requirement_params
    if event.tool_id != params["tool"]:
        return None
    value = getattr(event.metrics, params["metric"], None)
    if not value or value < 0:
        return None
    current = existing.current if existing else 0
    return current + value, params["amount"]


def _eval_consecutive_days(definition, event, events, existing, competency, now):
    params = definition.requirement_params
    if event.tool_id != params["tool"]:
        return None
    days = {e.timestamp.date() for e in events if e.tool_id == params["tool"]}
    day = event.timestamp.date()
    run = 0
    while day in days:
        run += 1
        day -= timedelta(days=1)
    return run, params["days"]


def _eval_consistency_streak(definition, event, events, existing, competency, now):
    if competency is None:
        return None
    current = competency.consistency_streak
    if existing is not None and existing.current == current:
        return None
    if existing is None and current == 0:
        return None
    return current, definition.requirement_params["days"]


def _eval_workflow_speed(definition, event, events, existing, competency, now):
    if event.tool_id != "workflow_complete":
        return None
    duration = event.metrics.duration_seconds
    satisfied = duration is not None and duration <= definition.requirement_params["max_minutes"] * 60
    return (1 if satisfied else 0), 1


def _eval_all_competencies_at_level(definition, event, events, existing, competency, now):
    if competency is None:
        return None
    target = _category_level_rank(definition.requirement_params["level"])
    satisfied = all(
        _category_level_rank(threshold_label(competency.category_scores.get(c, 0), config.CATEGORY_LEVEL_THRESHOLDS)) >= target
        for c in config.COMPETENCY_CATEGORIES
    )
    return (1 if satisfied else 0), 1


def _eval_all_tools_completed(definition, event, events, existing, competency, now):
    used = {e.tool_id for e in events}
    satisfied = all(tool in used for tool in definition.requirement_params["tools"])
    return (1 if satisfied else 0), 1


REQUIREMENT_EVALUATORS = MappingProxyType({
    "tool_count": _eval_tool_count,
    "windowed_tool_count": _eval_windowed_tool_count,
    "metric_total": _eval_metric_total,
    "consecutive_days": _eval_consecutive_days,
    "consistency_streak": _eval_consistency_streak,
    "workflow_speed": _eval_workflow_speed,
    "all_competencies_at_level": _eval_all_competencies_at_level,
    "all_tools_completed": _eval_all_tools_completed,
})

COMPOSITE_TYPES = frozenset({"workflow_speed", "all_competencies_at_level", "all_tools_completed"})


def _reward_for(definition: MilestoneDefinition) -> MilestoneReward:
    return MilestoneReward(
        milestone_id=definition.id,
        name=definition.name,
        badge=definition.badge,
        reward_points=definition.reward_points,
        reward_competency_gain=definition.reward_competency_gain,
    )


def check_milestones(
    event,
    history,
    existing_progress: dict[str, MilestoneProgress] | None,
    competency: CompetencyState | None = None,
    now: datetime | None = None,
    registry=None,
) -> MilestoneCheck:
    """Evaluates every registered milestone against one action event.

    `now` stamps `last_update`/`achieved_at`; it defaults to the event's own
    timestamp so repeated evaluation of the same input is deterministic.
    """
    registry = MILESTONE_REGISTRY if registry is None else registry
    existing_progress = existing_progress or {}
    for milestone_id in existing_progress:
        get_milestone(milestone_id, registry)

    now = ensure_timezone_aware(now) if now else event.timestamp
    events = with_event(event, history)

    updated, achieved, rewards = [], [], []
    for definition in registry.values():
        existing = existing_progress.get(definition.id)
        if existing is not None and existing.achieved:
            continue

        result = REQUIREMENT_EVALUATORS[definition.requirement_type](
            definition, event, events, existing, competency, now
        )
        if result is None:
            continue
        current, required = result
        if definition.requirement_type in COMPOSITE_TYPES and not current:
            continue

        is_achieved = current >= required
        progress = MilestoneProgress(
            milestone_id=definition.id,
            current=current,
            required=required,
            achieved=is_achieved,
            achieved_at=now if is_achieved else None,
            last_update=now,
        )
        updated.append(progress)
        if is_achieved:
            logger.info("Milestone achieved: %s", definition.id)
            achieved.append(progress)
            rewards.append(_reward_for(definition))

    return MilestoneCheck(updated=updated, achieved=achieved, rewards=rewards)


def merge_progress(existing_progress: dict | None, check: MilestoneCheck) -> dict[str, MilestoneProgress]:
    merged = dict(existing_progress or {})
    for progress in check.updated:
        previous = merged.get(progress.milestone_id)
        if previous is not None and previous.achieved:
            continue
        merged[progress.milestone_id] = progress
    return merged


def reward_points_total(rewards) -> int:
    return sum(r.reward_points for r in rewards)


def reward_deltas(rewards) -> list[CompetencyDelta]:
    return [r.reward_competency_gain for r in rewards if r.reward_competency_gain is not None]


def milestone_summary(progress: dict[str, MilestoneProgress] | None, registry=None) -> dict:
    """Counts achieved milestones and picks the three closest to completion."""
    registry = MILESTONE_REGISTRY if registry is None else registry
    progress = progress or {}
    total = len(registry)
    achieved = [p for p in progress.values() if p.achieved]

    candidates = []
    for definition in registry.values():
        entry = progress.get(definition.id)
        if entry is not None and entry.achieved:
            continue
        ratio = (entry.current / entry.required) if entry and entry.required else 0
        candidates.append({
            "id": definition.id,
            "name": definition.name,
            "badge": definition.badge,
            "current": entry.current if entry else 0,
            "required": entry.required if entry else None,
            "progress_ratio": min(ratio, 1.0),
        })
    candidates.sort(key=lambda c: c["progress_ratio"], reverse=True)

    return {
        "achieved": len(achieved),
        "available": total,
        "completion_percentage": round_half_up(len(achieved) / total * 100) if total else 0,
        "next_milestones": candidates[:3],
    }
