from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    JSON,
)
from radiofit.core.database import Base


class ExerciseDay(Base):
    """All exercise records for one local calendar date (key is YYYY-MM-DD)."""

    __tablename__ = "exercise_days"

    date_key = Column(String, primary_key=True)
    records = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ReminderSchedule(Base):
    """The single persisted daily reminder."""

    __tablename__ = "reminder_schedule"

    id = Column(Integer, primary_key=True, autoincrement=True)
    time = Column(String, nullable=False)  # "HH:MM"
    timezone = Column(String, nullable=False)
    next_run_at = Column(DateTime, nullable=False)  # naive UTC
