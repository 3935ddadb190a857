from controller.src.models.step import (
    StepStatus,
    StepDefinition,
    StepResult,
)
from controller.src.models.workflow import (
    EventType,
    TriggerEvent,
    TriggerRule,
    WorkflowDefinition,
    ExecutionContext,
)
from controller.src.models.report import RunStatus, RunReport

__all__ = [
    "StepStatus",
    "StepDefinition",
    "StepResult",
    "EventType",
    "TriggerEvent",
    "TriggerRule",
    "WorkflowDefinition",
    "ExecutionContext",
    "RunStatus",
    "RunReport",
]
