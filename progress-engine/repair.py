# progress-engine/repair.py

"""
Repair pass for inbound payloads and stored customer state.

Anything with a safe default is clamped or reset and noted in a RepairReport
so the pipeline keeps running. Only action events that cannot be interpreted
at all (no tool id, unknown tool id, unreadable timestamp) raise.
"""
import json
import logging
import math
import re
from datetime import date, datetime

from pydantic import ValidationError

import config
from exceptions import InvalidActionEventError
from schemas import (
    BusinessCaseEvent,
    CompetencyState,
    CostEvent,
    DailyObjectiveEvent,
    ExportEvent,
    IcpEvent,
    MilestoneProgress,
    RepairReport,
    ToolAccessStatus,
    WorkflowCompleteEvent,
    default_category_scores,
)
from milestones import MILESTONE_REGISTRY
from progress_state import rederive
from utils import clamp, ensure_timezone_aware, parse_iso_datetime

logger = logging.getLogger(__name__)

EVENT_MODELS = {
    "icp": IcpEvent,
    "cost": CostEvent,
    "business_case": BusinessCaseEvent,
    "export": ExportEvent,
    "daily_objective": DailyObjectiveEvent,
    "workflow_complete": WorkflowCompleteEvent,
}

TIME_FIELDS = ("time_spent_seconds", "duration_seconds")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _load_json(raw, default, label: str, report: list):
    """Stored Airtable fields arrive as JSON text; dicts/lists pass through."""
    if raw is None or raw == "":
        return default
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        report.append(f"{label}: unparseable JSON, using defaults")
        return default


def _as_number(value):
    """Returns a finite int or float, or None when the value is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return None
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


# --- Action Events ---

def sanitize_event_payload(payload: dict):
    """Turns a raw dashboard payload into a typed ActionEvent. Returns (event, RepairReport)."""
    if not isinstance(payload, dict):
        raise InvalidActionEventError("Action event payload must be an object")
    issues = []
    data = {camel_to_snake(k): v for k, v in payload.items()}

    tool_id = data.get("tool_id")
    if not tool_id:
        raise InvalidActionEventError("Action event is missing tool_id")
    model = EVENT_MODELS.get(tool_id)
    if model is None:
        raise InvalidActionEventError(f"Unknown tool_id: {tool_id!r}")

    timestamp = data.get("timestamp")
    try:
        if isinstance(timestamp, datetime):
            timestamp = ensure_timezone_aware(timestamp)
        else:
            timestamp = parse_iso_datetime(timestamp)
    except (TypeError, ValueError, AttributeError):
        raise InvalidActionEventError(f"Unparseable timestamp: {timestamp!r}") from None

    raw_metrics = data.get("metrics", data.get("data")) or {}
    if not isinstance(raw_metrics, dict):
        issues.append("metrics: not an object, ignored")
        raw_metrics = {}
    metrics_model = model.model_fields["metrics"].annotation
    known = metrics_model.model_fields
    metrics = {}
    for key, value in raw_metrics.items():
        field = camel_to_snake(key)
        if field not in known:
            continue
        annotation = str(known[field].annotation)
        if "float" in annotation and value is not None:
            number = _as_number(value)
            if number is None:
                issues.append(f"{field}: non-numeric or non-finite value {value!r} dropped")
                continue
            value = number
        metrics[field] = value

    for field in TIME_FIELDS:
        if field in metrics and metrics[field] is not None and metrics[field] < 0:
            issues.append(f"{field}: negative value {metrics[field]} clamped to 0")
            metrics[field] = 0
    score = metrics.get("score")
    if score is not None and not 0 <= score <= 100:
        metrics["score"] = clamp(score, 0, 100)
        issues.append(f"score: {score} clamped to {metrics['score']}")

    event_id = data.get("event_id") or data.get("id")
    try:
        event = model(timestamp=timestamp, event_id=event_id, metrics=metrics)
    except ValidationError as exc:
        raise InvalidActionEventError(f"Invalid {tool_id} event: {exc}") from exc
    return event, RepairReport(issues=issues)


def repair_history(raw):
    issues = []
    entries = _load_json(raw, [], "history", issues)
    if not isinstance(entries, list):
        issues.append("history: not a list, using empty history")
        entries = []
    events = []
    for index, entry in enumerate(entries):
        try:
            event, report = sanitize_event_payload(entry)
        except InvalidActionEventError as exc:
            issues.append(f"history[{index}]: dropped ({exc})")
            continue
        issues.extend(f"history[{index}].{issue}" for issue in report.issues)
        events.append(event)
    events.sort(key=lambda e: e.timestamp)
    return events, RepairReport(issues=issues)


# --- Stored State ---

def repair_competency_state(raw):
    issues = []
    data = _load_json(raw, {}, "competency", issues)
    if not isinstance(data, dict):
        issues.append("competency: not an object, using defaults")
        data = {}
    data = {camel_to_snake(k): v for k, v in data.items()}

    points = _as_number(data.get("total_progress_points", 0))
    if points is None or points < 0:
        issues.append(f"total_progress_points: invalid value {data.get('total_progress_points')!r} reset to 0")
        points = 0

    scores = default_category_scores()
    raw_scores = data.get("category_scores") or {}
    if not isinstance(raw_scores, dict):
        issues.append("category_scores: not an object, reset")
        raw_scores = {}
    for category, value in raw_scores.items():
        if category not in scores:
            issues.append(f"category_scores.{category}: unknown category dropped")
            continue
        number = _as_number(value)
        if number is None:
            issues.append(f"category_scores.{category}: invalid value {value!r} reset to 0")
            number = 0
        clamped = clamp(int(round(number)), config.COMPETENCY_SCORE_MIN, config.COMPETENCY_SCORE_MAX)
        if not config.COMPETENCY_SCORE_MIN <= number <= config.COMPETENCY_SCORE_MAX:
            issues.append(f"category_scores.{category}: {value} clamped to {clamped}")
        scores[category] = clamped

    level_names = [name for _, name in config.LEVEL_THRESHOLDS]
    level = data.get("overall_level", config.DEFAULT_LEVEL)
    if level not in level_names:
        issues.append(f"overall_level: unknown value {level!r} re-derived from points")
    rank_names = [name for _, name in config.RANK_THRESHOLDS]
    rank = data.get("hidden_rank", config.DEFAULT_RANK)
    if rank not in rank_names:
        issues.append(f"hidden_rank: unknown value {rank!r} re-derived from points")

    streak = _as_number(data.get("consistency_streak", 0))
    if streak is None or streak < 0:
        issues.append(f"consistency_streak: invalid value {data.get('consistency_streak')!r} reset to 0")
        streak = 0

    last_activity = data.get("last_activity_date")
    if last_activity and not isinstance(last_activity, date):
        try:
            last_activity = date.fromisoformat(str(last_activity)[:10])
        except ValueError:
            issues.append(f"last_activity_date: unparseable value {last_activity!r} cleared")
            last_activity = None

    state = CompetencyState(
        total_progress_points=int(points),
        category_scores=scores,
        consistency_streak=int(streak),
        last_activity_date=last_activity or None,
    )
    # Level and rank always follow the points total.
    return rederive(state), RepairReport(issues=issues)


def repair_tool_access(raw):
    issues = []
    data = _load_json(raw, {}, "tool_access", issues)
    if not isinstance(data, dict):
        issues.append("tool_access: not an object, all gated tools locked")
        data = {}
    statuses = {}
    for tool_id, entry in data.items():
        if tool_id not in config.TOOL_ORDER:
            issues.append(f"tool_access.{tool_id}: unknown tool dropped")
            continue
        if not isinstance(entry, dict):
            issues.append(f"tool_access.{tool_id}: invalid entry dropped")
            continue
        entry = {camel_to_snake(k): v for k, v in entry.items()}
        entry["tool_id"] = tool_id
        if isinstance(entry.get("progress"), dict):
            entry["progress"] = {camel_to_snake(k): v for k, v in entry["progress"].items()}
        try:
            statuses[tool_id] = ToolAccessStatus(**entry)
        except ValidationError:
            issues.append(f"tool_access.{tool_id}: invalid entry dropped")
    return statuses, RepairReport(issues=issues)


def repair_milestone_progress(raw):
    issues = []
    data = _load_json(raw, {}, "milestone_progress", issues)
    if not isinstance(data, dict):
        issues.append("milestone_progress: not an object, reset")
        data = {}
    progress = {}
    for milestone_id, entry in data.items():
        if milestone_id not in MILESTONE_REGISTRY:
            issues.append(f"milestone_progress.{milestone_id}: unknown milestone dropped")
            continue
        if not isinstance(entry, dict):
            issues.append(f"milestone_progress.{milestone_id}: invalid entry dropped")
            continue
        entry = {camel_to_snake(k): v for k, v in entry.items()}
        entry["milestone_id"] = milestone_id
        try:
            progress[milestone_id] = MilestoneProgress(**entry)
        except ValidationError:
            issues.append(f"milestone_progress.{milestone_id}: invalid entry dropped")
    return progress, RepairReport(issues=issues)


def log_report(customer_id: str, report: RepairReport) -> None:
    for issue in report.issues:
        logger.warning("Repaired state for customer %s: %s", customer_id, issue)
