# Database models
from radiofit.models.database import (
    ExerciseDay,
    ReminderSchedule,
)

__all__ = [
    "ExerciseDay",
    "ReminderSchedule",
]
