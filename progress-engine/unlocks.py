# progress-engine/unlocks.py

"""
Unlock Transition Detector.

Compares the previously persisted access snapshot with a freshly computed one
and reports each gated tool that moved from locked to unlocked. Running it
again once `previous` has been updated yields nothing, so unlocks are
announced exactly once.
"""
from datetime import datetime

import config
from competency_gates import is_gated
from schemas import ToolAccessStatus, UnlockEvent


def _order(tool_id: str) -> int:
    return config.TOOL_ORDER.index(tool_id)


def detect_new_unlocks(
    previous: dict[str, ToolAccessStatus] | None,
    current: dict[str, ToolAccessStatus],
    now: datetime | None = None,
) -> list[UnlockEvent]:
    previous = previous or {}
    for tool_id in [*previous, *current]:
        is_gated(tool_id)  # raises UnknownToolError

    events = []
    for tool_id in sorted(current, key=_order):
        if not is_gated(tool_id):
            continue
        status = current[tool_id]
        before = previous.get(tool_id)
        was_unlocked = before is not None and before.has_access
        if status.has_access and not was_unlocked:
            gate = config.COMPETENCY_GATES[tool_id]
            events.append(UnlockEvent(
                tool_id=tool_id,
                competency_achieved=gate["competency_achieved"],
                level=gate["level"],
                timestamp=status.unlocked_at or now,
            ))
    return events
