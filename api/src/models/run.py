from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from controller.src.models.report import RunReport
from controller.src.models.workflow import TriggerEvent

class RunSummary(BaseModel):
    run_id: str
    workflow: str
    event: TriggerEvent
    status: str
    created_at: datetime
    finished_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "RunSummary":
        return cls(
            run_id=record.run_id,
            workflow=record.workflow,
            event=record.event,
            status=record.status,
            created_at=record.created_at,
            finished_at=record.report.finished_at if record.report else None,
        )

class RunDetail(RunSummary):
    current_step: Optional[str] = None
    error: Optional[str] = None
    report: Optional[RunReport] = None

    @classmethod
    def from_record(cls, record) -> "RunDetail":
        engine = record.engine
        current = None
        index = engine.current_step
        if index is not None:
            current = engine.workflow.steps[index].name
        return cls(
            **RunSummary.from_record(record).model_dump(),
            current_step=current,
            error=record.error,
            report=record.report,
        )

class TriggerResponse(BaseModel):
    status: str
    reason: Optional[str] = None
    run_id: Optional[str] = None
    workflow: Optional[str] = None
    steps: List[str] = []
