"""
Assemble step results into a run report and render it.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from controller.src.models.report import RunReport, RunStatus
from controller.src.models.step import StepDefinition, StepResult, StepStatus
from controller.src.models.workflow import TriggerEvent, WorkflowDefinition

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    StepStatus.PASSED: "PASS",
    StepStatus.FAILED: "FAIL",
    StepStatus.SKIPPED: "SKIP",
    StepStatus.TIMED_OUT: "TIME",
    StepStatus.ABORTED: "ABRT",
    StepStatus.ERRORED: "ERR ",
}

class RunReportAssembler:
    """
    Collects results while a run progresses and produces the final report.
    The report always holds exactly one result per declared step, in
    declared order.
    """

    def __init__(self, workflow: WorkflowDefinition, event: TriggerEvent, run_id: str):
        self.workflow = workflow
        self.event = event
        self.run_id = run_id
        self.started_at = datetime.now(timezone.utc)
        self._order = {name: i for i, name in enumerate(workflow.step_names)}
        self._results: Dict[str, StepResult] = {}
        self._report: Optional[RunReport] = None

    def record(self, result: StepResult):
        if self._report is not None:
            raise RuntimeError("Run report is already finished")
        if result.name not in self._order:
            raise ValueError(f"Step '{result.name}' is not declared in workflow '{self.workflow.name}'")
        if result.name in self._results:
            raise ValueError(f"Step '{result.name}' already has a result")
        self._results[result.name] = result

    def skip(self, step: StepDefinition):
        self.record(StepResult.skipped(step.name))

    def finish(self, aborted: bool = False, error: Optional[str] = None) -> RunReport:
        """Compute the overall status and freeze the report. Callable once."""
        if self._report is not None:
            raise RuntimeError("Run report is already finished")

        steps = tuple(
            self._results.get(name) or StepResult.skipped(name)
            for name in self.workflow.step_names
        )

        if aborted:
            status = RunStatus.ABORTED
        elif error or any(result.is_failure for result in steps):
            status = RunStatus.FAILED
        else:
            status = RunStatus.PASSED

        self._report = RunReport(
            run_id=self.run_id,
            workflow=self.workflow.name,
            event=self.event,
            steps=steps,
            status=status,
            started_at=self.started_at,
            finished_at=datetime.now(timezone.utc),
            error=error,
        )
        return self._report

def report_to_dict(report: RunReport) -> dict:
    return report.model_dump(mode="json")

def render_json(report: RunReport) -> str:
    return json.dumps(report_to_dict(report), indent=2)

def render_text(report: RunReport, show_output: bool = True) -> str:
    """Human-readable report: one line per step, then output of failing steps."""
    width = max(len(result.name) for result in report.steps)
    lines = [
        f"Workflow: {report.workflow}",
        f"Run:      {report.run_id}",
        f"Event:    {report.event.describe()}",
        "",
    ]

    for i, result in enumerate(report.steps, start=1):
        detail = ""
        if result.exit_code is not None and result.exit_code != 0:
            detail = f"exit {result.exit_code}"
        elif result.status == StepStatus.ERRORED:
            detail = result.error or ""
        timing = f"{result.duration:6.2f}s" if result.started_at else " " * 7
        lines.append(
            f"  {i:>2}. [{STATUS_LABELS[result.status]}] {result.name:<{width}}  {timing}  {detail}".rstrip()
        )

    if show_output:
        for result in report.steps:
            if result.status in (StepStatus.FAILED, StepStatus.TIMED_OUT) and result.output:
                note = " (truncated)" if result.truncated else ""
                lines.append("")
                lines.append(f"--- output of '{result.name}'{note} ---")
                lines.append(result.output.rstrip("\n"))

    lines.append("")
    if report.error:
        lines.append(f"Error: {report.error}")
    lines.append(f"Result: {report.status.value.upper()} in {report.duration:.2f}s")
    return "\n".join(lines)
