"""
Run report models.
"""

from pydantic import BaseModel, ConfigDict
from typing import Optional, Tuple
from datetime import datetime
from enum import Enum

from controller.src.models.step import StepResult, StepStatus
from controller.src.models.workflow import TriggerEvent

class RunStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    ABORTED = "aborted"

class RunReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    workflow: str
    event: TriggerEvent
    steps: Tuple[StepResult, ...]
    status: RunStatus
    started_at: datetime
    finished_at: datetime
    error: Optional[str] = None

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def passed(self) -> bool:
        return self.status == RunStatus.PASSED

    def step(self, name: str) -> StepResult:
        for result in self.steps:
            if result.name == name:
                return result
        raise KeyError(name)

    def count(self, status: StepStatus) -> int:
        return sum(1 for result in self.steps if result.status == status)
