"""Models: ProcessRecord, ProcessState, RunReport"""

from .record import ProcessRecord
from .report import RunReport, TimeoutRecord
from .status import ProcessState

__all__ = ["ProcessRecord", "ProcessState", "RunReport", "TimeoutRecord"]
