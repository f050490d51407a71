# progress-engine/competency_gates.py

"""
Competency Gate Evaluator.

Decides, from a customer's action history, whether each gated tool's unlock
requirement is met. Gates count *qualifying* completions only: three ICP
analyses scoring 45 do not open the Cost Calculator, three scoring 70 do.

evaluate_access() is a pure function of its inputs. The one-way
Locked -> Available rule across evaluation cycles is applied by
evaluate_all_access(), which latches unlocks already present in the
previously persisted snapshot.
"""
import logging

import config
from exceptions import UnknownToolError
from schemas import CompetencyState, ToolAccessStatus, ToolProgress
from scoring import is_comprehensive_cost_analysis
from utils import round_half_up

logger = logging.getLogger(__name__)


# --- Qualifiers ---

def _qualifies_min_score(event, gate: dict) -> bool:
    score = event.metrics.score
    return score is not None and score >= gate["min_score"]

def _qualifies_comprehensive_cost(event, gate: dict) -> bool:
    return is_comprehensive_cost_analysis(event, gate)

QUALIFIERS = {
    "min_score": _qualifies_min_score,
    "comprehensive_cost": _qualifies_comprehensive_cost,
}


def _check_tool(tool_id: str) -> None:
    if tool_id not in config.UNGATED_TOOLS and tool_id not in config.COMPETENCY_GATES:
        raise UnknownToolError(tool_id)


def is_gated(tool_id: str) -> bool:
    _check_tool(tool_id)
    return tool_id in config.COMPETENCY_GATES


def _ungated_status(tool_id: str) -> ToolAccessStatus:
    meta = config.UNGATED_TOOLS[tool_id]
    return ToolAccessStatus(
        tool_id=tool_id,
        has_access=True,
        progress=ToolProgress(percentage=100),
        level=meta["level"],
        competency=meta["competency"],
        reason=meta["unlocked_reason"],
    )


def _meets_category_floor(gate: dict, competency: CompetencyState | None) -> bool:
    floor = gate.get("min_category_score")
    if not floor:
        return True
    if competency is None:
        return False
    return competency.category_scores.get(floor["category"], 0) >= floor["score"]


def evaluate_access(tool_id: str, history, competency: CompetencyState | None = None) -> ToolAccessStatus:
    _check_tool(tool_id)
    if tool_id in config.UNGATED_TOOLS:
        return _ungated_status(tool_id)

    gate = config.COMPETENCY_GATES[tool_id]
    qualifier = QUALIFIERS[gate["qualifier"]]
    required = gate["required"]

    # No history simply means no qualifying completions yet.
    attempts = sorted((e for e in history or [] if e.tool_id == gate["source_tool"]), key=lambda e: e.timestamp)
    qualifying = [e for e in attempts if qualifier(e, gate)]

    has_access = len(qualifying) >= required and _meets_category_floor(gate, competency)
    completed = min(len(qualifying), required)
    if has_access:
        percentage = 100
    else:
        percentage = min(100, round_half_up(completed / required * 100)) if required else 0

    average_score = None
    highest_annual_cost = None
    if gate["source_tool"] == "icp" and qualifying:
        average_score = round_half_up(sum(e.metrics.score for e in qualifying) / len(qualifying))
    if gate["source_tool"] == "cost":
        costs = [e.metrics.annual_cost for e in attempts if e.metrics.annual_cost is not None]
        highest_annual_cost = max(costs) if costs else None

    return ToolAccessStatus(
        tool_id=tool_id,
        has_access=has_access,
        progress=ToolProgress(
            completed=completed,
            required=required,
            qualifying_count=len(qualifying),
            attempts=len(attempts),
            percentage=percentage,
            average_score=average_score,
            highest_annual_cost=highest_annual_cost,
        ),
        # The qualifying event that satisfied the gate fixes the unlock time.
        unlocked_at=qualifying[required - 1].timestamp if has_access else None,
        level=gate["level"],
        competency=gate["competency"],
        reason=gate["unlocked_reason"] if has_access else gate["locked_reason"],
    )


def latch(previous: ToolAccessStatus | None, current: ToolAccessStatus) -> ToolAccessStatus:
    """Keeps a persisted unlock (and its first unlocked_at) even if the history no longer satisfies the gate."""
    if previous is None or not previous.has_access:
        return current
    gate = config.COMPETENCY_GATES.get(current.tool_id, {})
    progress = current.progress
    if not current.has_access:
        logger.info("Keeping persisted unlock for %s despite unmet gate", current.tool_id)
        progress = progress.model_copy(update={"percentage": 100})
    return current.model_copy(update={
        "has_access": True,
        "progress": progress,
        "unlocked_at": previous.unlocked_at or current.unlocked_at,
        "reason": gate.get("unlocked_reason", current.reason),
    })


def evaluate_all_access(history, competency: CompetencyState | None = None, previous: dict | None = None) -> dict:
    previous = previous or {}
    for tool_id in previous:
        _check_tool(tool_id)
    return {
        tool_id: latch(previous.get(tool_id), evaluate_access(tool_id, history, competency))
        for tool_id in config.TOOL_ORDER
    }


def next_requirement(tool_id: str) -> str | None:
    _check_tool(tool_id)
    return config.COMPETENCY_GATES.get(tool_id, {}).get("next_requirement")
