"""
Step definition and step execution models.
"""

from pydantic import BaseModel, ConfigDict
from typing import Dict, Optional, Tuple, Union
from datetime import datetime
from enum import Enum

class StepStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"
    ERRORED = "errored"

class StepDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    # A string runs through the configured shell, a tuple is exec'd as argv
    command: Union[str, Tuple[str, ...]]
    working_directory: Optional[str] = None
    continue_on_error: bool = False
    timeout_seconds: int = 600
    env: Dict[str, str] = {}

    @property
    def display_command(self) -> str:
        if isinstance(self.command, str):
            return self.command
        return " ".join(self.command)

class StepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    status: StepStatus
    exit_code: Optional[int] = None
    duration: float = 0.0
    output: str = ""
    truncated: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def skipped(cls, name: str) -> "StepResult":
        return cls(name=name, status=StepStatus.SKIPPED)

    @property
    def is_failure(self) -> bool:
        return self.status in (StepStatus.FAILED, StepStatus.TIMED_OUT, StepStatus.ERRORED)
