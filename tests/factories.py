from datetime import date, datetime, timedelta, timezone

from schemas import (
    BusinessCaseEvent,
    BusinessCaseMetrics,
    CostEvent,
    CostMetrics,
    DailyObjectiveEvent,
    DailyObjectiveMetrics,
    ExportEvent,
    IcpEvent,
    IcpMetrics,
    WorkflowCompleteEvent,
    WorkflowCompleteMetrics,
)

BASE_TIME = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
TODAY = date(2024, 3, 4)


def at(days=0, hours=0):
    return BASE_TIME + timedelta(days=days, hours=hours)


def icp(score=None, days=0, hours=0, **metrics):
    return IcpEvent(timestamp=at(days, hours), metrics=IcpMetrics(score=score, **metrics))


def cost(seconds=None, days=0, hours=0, **metrics):
    return CostEvent(timestamp=at(days, hours), metrics=CostMetrics(time_spent_seconds=seconds, **metrics))


def business_case(days=0, hours=0, **metrics):
    return BusinessCaseEvent(timestamp=at(days, hours), metrics=BusinessCaseMetrics(**metrics))


def export(days=0, hours=0):
    return ExportEvent(timestamp=at(days, hours))


def daily_objective(points=None, days=0, hours=0):
    return DailyObjectiveEvent(timestamp=at(days, hours), metrics=DailyObjectiveMetrics(points=points))


def workflow(duration_seconds=None, days=0, hours=0, complete=True):
    return WorkflowCompleteEvent(
        timestamp=at(days, hours),
        metrics=WorkflowCompleteMetrics(duration_seconds=duration_seconds, complete=complete),
    )
