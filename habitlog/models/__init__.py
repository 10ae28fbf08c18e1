from .habit_template import HabitTemplate
from .habit import Habit, FrequencyType
from .habit_log import HabitLog, LogStatus
from .habit_statistics import HabitDailyStatistics, StatisticsRun

__all__ = [
    "HabitTemplate",
    "Habit",
    "FrequencyType",
    "HabitLog",
    "LogStatus",
    "HabitDailyStatistics",
    "StatisticsRun",
]
