from .process import ManagedProcess, OutputTarget, SpawnRequest
from .scheduler import Scheduler, SchedulerState

__all__ = ["ManagedProcess", "OutputTarget", "Scheduler", "SchedulerState", "SpawnRequest"]
