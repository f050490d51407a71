# progress-engine/schemas.py
from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

import config
from utils import ensure_timezone_aware

OverallLevel = Literal["Foundation", "Developing", "Proficient", "Advanced", "Expert"]
HiddenRank = Literal["E", "D", "C", "B", "A", "S"]
CategoryScore = Annotated[int, Field(ge=config.COMPETENCY_SCORE_MIN, le=config.COMPETENCY_SCORE_MAX)]

RequirementType = Literal[
    "tool_count",
    "windowed_tool_count",
    "metric_total",
    "consistency_streak",
    "consecutive_days",
    "workflow_speed",
    "all_competencies_at_level",
    "all_tools_completed",
]


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Action Events ---
# One metrics model per tool; the event union is discriminated on tool_id.

class EventMetrics(FrozenModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

class IcpMetrics(EventMetrics):
    score: Optional[float] = None
    time_spent_seconds: Optional[float] = Field(default=None, ge=0)
    company_name: Optional[str] = None

class CostMetrics(EventMetrics):
    time_spent_seconds: Optional[float] = Field(default=None, ge=0)
    annual_cost: Optional[float] = None
    investment: Optional[float] = None

class BusinessCaseMetrics(EventMetrics):
    template_name: Optional[str] = None
    is_comprehensive_template: bool = False
    time_spent_seconds: Optional[float] = Field(default=None, ge=0)

class ExportMetrics(EventMetrics):
    export_format: Optional[str] = None
    shared: bool = False

class DailyObjectiveMetrics(EventMetrics):
    objective_id: Optional[str] = None
    points: Optional[float] = None

class WorkflowCompleteMetrics(EventMetrics):
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    complete: bool = True


class _ActionEventBase(FrozenModel):
    timestamp: datetime
    event_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        return ensure_timezone_aware(value)

class IcpEvent(_ActionEventBase):
    tool_id: Literal["icp"] = "icp"
    metrics: IcpMetrics = IcpMetrics()

class CostEvent(_ActionEventBase):
    tool_id: Literal["cost"] = "cost"
    metrics: CostMetrics = CostMetrics()

class BusinessCaseEvent(_ActionEventBase):
    tool_id: Literal["business_case"] = "business_case"
    metrics: BusinessCaseMetrics = BusinessCaseMetrics()

class ExportEvent(_ActionEventBase):
    tool_id: Literal["export"] = "export"
    metrics: ExportMetrics = ExportMetrics()

class DailyObjectiveEvent(_ActionEventBase):
    tool_id: Literal["daily_objective"] = "daily_objective"
    metrics: DailyObjectiveMetrics = DailyObjectiveMetrics()

class WorkflowCompleteEvent(_ActionEventBase):
    tool_id: Literal["workflow_complete"] = "workflow_complete"
    metrics: WorkflowCompleteMetrics = WorkflowCompleteMetrics()


ActionEvent = Annotated[
    Union[IcpEvent, CostEvent, BusinessCaseEvent, ExportEvent, DailyObjectiveEvent, WorkflowCompleteEvent],
    Field(discriminator="tool_id"),
]

# --- Competency State ---

def default_category_scores() -> dict[str, int]:
    return {category: 0 for category in config.COMPETENCY_CATEGORIES}

class CompetencyState(FrozenModel):
    total_progress_points: int = Field(default=0, ge=0)
    category_scores: dict[str, CategoryScore] = Field(default_factory=default_category_scores)
    overall_level: OverallLevel = "Foundation"
    hidden_rank: HiddenRank = "E"
    consistency_streak: int = Field(default=0, ge=0)
    last_activity_date: Optional[date] = None

class CompetencyDelta(FrozenModel):
    category: str
    amount: int


# --- Tool Access ---

class ToolProgress(FrozenModel):
    completed: int = 0
    required: int = 0
    qualifying_count: int = 0
    attempts: int = 0
    percentage: int = 0
    average_score: Optional[float] = None
    highest_annual_cost: Optional[float] = None

class ToolAccessStatus(FrozenModel):
    tool_id: str
    has_access: bool = False
    progress: ToolProgress = ToolProgress()
    unlocked_at: Optional[datetime] = None
    level: Optional[str] = None
    competency: Optional[str] = None
    reason: Optional[str] = None

class UnlockEvent(FrozenModel):
    tool_id: str
    competency_achieved: str
    level: Optional[str] = None
    timestamp: Optional[datetime] = None


# --- Milestones ---

class MilestoneDefinition(FrozenModel):
    id: str
    name: str
    description: str = ""
    category: str
    requirement_type: RequirementType
    requirement_params: dict = Field(default_factory=dict)
    reward_points: int = Field(default=0, ge=0)
    reward_competency_gain: Optional[CompetencyDelta] = None
    badge: str = ""
    hidden_rank: Optional[HiddenRank] = None

class MilestoneProgress(FrozenModel):
    milestone_id: str
    current: float = 0
    required: float = 1
    achieved: bool = False
    achieved_at: Optional[datetime] = None
    last_update: Optional[datetime] = None

class MilestoneReward(FrozenModel):
    milestone_id: str
    name: str
    badge: str
    reward_points: int
    reward_competency_gain: Optional[CompetencyDelta] = None

class MilestoneCheck(FrozenModel):
    updated: list[MilestoneProgress] = Field(default_factory=list)
    achieved: list[MilestoneProgress] = Field(default_factory=list)
    rewards: list[MilestoneReward] = Field(default_factory=list)


# --- Scoring & State Results ---

class PointsAward(FrozenModel):
    points: int
    breakdown: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

class ProgressUpdate(FrozenModel):
    state: CompetencyState
    points_applied: int = 0
    mastery_achieved: list[str] = Field(default_factory=list)
    level_advanced: bool = False
    rank_advanced: bool = False
    errors: list[str] = Field(default_factory=list)


# --- Customer Snapshot ---

class RepairReport(FrozenModel):
    issues: list[str] = Field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.issues)

    def merge(self, other: "RepairReport") -> "RepairReport":
        return RepairReport(issues=[*self.issues, *other.issues])

class CustomerSnapshot(FrozenModel):
    customer_id: str
    history: list[ActionEvent] = Field(default_factory=list)
    competency: CompetencyState = CompetencyState()
    tool_access: dict[str, ToolAccessStatus] = Field(default_factory=dict)
    milestone_progress: dict[str, MilestoneProgress] = Field(default_factory=dict)
    version: int = 0
    repairs: RepairReport = RepairReport()

class EvaluationOutcome(FrozenModel):
    snapshot: CustomerSnapshot
    award: PointsAward
    streak_bonus_points: int = 0
    competency_deltas: list[CompetencyDelta] = Field(default_factory=list)
    unlocks: list[UnlockEvent] = Field(default_factory=list)
    milestones: MilestoneCheck = MilestoneCheck()
    mastery_achieved: list[str] = Field(default_factory=list)
    level_advanced: bool = False
    rank_advanced: bool = False
    impact_level: Optional[str] = None
    quality_level: Optional[str] = None
    errors: list[str] = Field(default_factory=list)
