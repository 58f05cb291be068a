from .logs import ExecutionLogEntry, ExecutionLogger
from .scheduler import Scheduler
from .store import ScheduleStore, StoredSchedule

__all__ = ["ExecutionLogEntry", "ExecutionLogger", "ScheduleStore", "Scheduler", "StoredSchedule"]
