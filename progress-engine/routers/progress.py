from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
import httpx
from sqlalchemy import desc
from sqlalchemy.orm import Session

import config
import customer_state
from competency_gates import next_requirement
from database import get_db
from milestones import milestone_summary
from models import PointsLedger
from progress_state import category_level
from utils import time_ago

router = APIRouter()

# --- Pydantic Models ---
class CategoryProgress(BaseModel):
    category: str
    score: int
    level: str

class ToolAccessItem(BaseModel):
    tool_id: str
    has_access: bool
    percentage: int
    completed: int
    required: int
    level: Optional[str] = None
    competency: Optional[str] = None
    reason: Optional[str] = None
    next_requirement: Optional[str] = None
    unlocked_at: Optional[datetime] = None

class NextMilestone(BaseModel):
    id: str
    name: str
    badge: str
    progress_ratio: float

class MilestoneSummary(BaseModel):
    achieved: int
    available: int
    completion_percentage: int
    next_milestones: List[NextMilestone]

class CustomerProgressResponse(BaseModel):
    customer_id: str
    total_progress_points: int
    overall_level: str
    consistency_streak: int
    last_activity: str
    categories: List[CategoryProgress]
    tools: List[ToolAccessItem]
    milestones: MilestoneSummary
    repaired: bool

class LedgerEntry(BaseModel):
    id: int
    event_type: str
    points: int
    notes: Optional[str]
    time: str


@router.get("/customers/{customer_id}/progress", response_model=CustomerProgressResponse, tags=["Progress"])
async def get_customer_progress(customer_id: str):
    try:
        snapshot = await customer_state.load_customer_state_async(customer_id)
    except httpx.HTTPError:
        raise HTTPException(status_code=503, detail="Customer store is unavailable")
    competency = snapshot.competency

    categories = [
        CategoryProgress(category=c, score=competency.category_scores.get(c, 0), level=category_level(competency.category_scores.get(c, 0)))
        for c in config.COMPETENCY_CATEGORIES
    ]

    tools = []
    for tool_id in config.TOOL_ORDER:
        status = snapshot.tool_access.get(tool_id)
        if status is None:
            # Not evaluated yet: only the ungated tool is open.
            has_access = tool_id in config.UNGATED_TOOLS
            tools.append(ToolAccessItem(tool_id=tool_id, has_access=has_access, percentage=100 if has_access else 0,
                                        completed=0, required=config.COMPETENCY_GATES.get(tool_id, {}).get("required", 0),
                                        next_requirement=None if has_access else next_requirement(tool_id)))
            continue
        tools.append(ToolAccessItem(
            tool_id=tool_id, has_access=status.has_access, percentage=status.progress.percentage,
            completed=status.progress.completed, required=status.progress.required,
            level=status.level, competency=status.competency, reason=status.reason,
            next_requirement=None if status.has_access else next_requirement(tool_id),
            unlocked_at=status.unlocked_at,
        ))

    # The hidden rank is internal and never leaves the service.
    return CustomerProgressResponse(
        customer_id=customer_id,
        total_progress_points=competency.total_progress_points,
        overall_level=competency.overall_level,
        consistency_streak=competency.consistency_streak,
        last_activity=time_ago(snapshot.history[-1].timestamp) if snapshot.history else "N/A",
        categories=categories,
        tools=tools,
        milestones=milestone_summary(snapshot.milestone_progress),
        repaired=snapshot.repairs.repaired,
    )


@router.get("/customers/{customer_id}/points-ledger", response_model=List[LedgerEntry], tags=["Progress"])
def get_points_ledger(customer_id: str, limit: int = 50, db: Session = Depends(get_db)):
    if limit < 1 or limit > 500:
        raise HTTPException(status_code=422, detail="limit must be between 1 and 500")
    entries = (
        db.query(PointsLedger)
        .filter(PointsLedger.customer_id == customer_id)
        .order_by(desc(PointsLedger.created_at), desc(PointsLedger.id))
        .limit(limit)
        .all()
    )
    return [
        LedgerEntry(id=e.id, event_type=e.event_type.value, points=e.points, notes=e.notes, time=time_ago(e.created_at))
        for e in entries
    ]
