# models.py
import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Enum,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class LedgerEventType(enum.Enum):
    TOOL_COMPLETION = "TOOL_COMPLETION"
    STREAK_BONUS = "STREAK_BONUS"
    MILESTONE_REWARD = "MILESTONE_REWARD"

class PointsLedger(Base):
    __tablename__ = 'points_ledger'

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String, nullable=False, index=True)
    event_type = Column(Enum(LedgerEventType), nullable=False)
    tool_id = Column(String, nullable=True)
    milestone_id = Column(String, nullable=True)
    points = Column(Integer, nullable=False)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class ProcessedEvent(Base):
    __tablename__ = 'processed_events'
    __table_args__ = (UniqueConstraint('customer_id', 'event_key', name='uq_processed_event'),)

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String, nullable=False, index=True)
    event_key = Column(String, nullable=False)
    tool_id = Column(String, nullable=False)
    state_version = Column(Integer, nullable=True)
    processed_at = Column(DateTime(timezone=True), server_default=func.now())
