"""
Pipeline engine - evaluates a workflow against a trigger event and runs
its steps in order.
"""

import logging
import threading
import uuid
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import SecretStr

from controller.src.config import Settings, get_settings
from controller.src.errors import ExecutorFault
from controller.src.models.report import RunReport
from controller.src.models.step import StepResult, StepStatus
from controller.src.models.workflow import ExecutionContext, TriggerEvent, WorkflowDefinition
from controller.src.services.executor import CommandExecutor
from controller.src.services.host import CommandHost, LocalHost
from controller.src.services.report import RunReportAssembler

logger = logging.getLogger(__name__)

class EngineState(str, Enum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"

class PipelineEngine:
    """
    Runs one workflow once.

    idle -> triggered -> running(i) -> completed | aborted

    An event that does not match the workflow's triggers leaves the engine
    idle and `run` returns None. A failing step without continue-on-error
    skips every later step. `cancel` may be called from any thread.
    """

    def __init__(
        self,
        workflow: WorkflowDefinition,
        host: Optional[CommandHost] = None,
        settings: Optional[Settings] = None,
        run_id: Optional[str] = None,
    ):
        self.workflow = workflow
        self.settings = settings or get_settings()
        self.host = host or LocalHost(self.settings)
        self.executor = CommandExecutor(self.host, self.settings)
        self.run_id = run_id or str(uuid.uuid4())
        self.state = EngineState.IDLE
        self.current_step: Optional[int] = None
        self.report: Optional[RunReport] = None
        self._cancel = threading.Event()
        self._started = False
        self._lock = threading.Lock()

    def matches(self, event: TriggerEvent) -> bool:
        return self.workflow.matches(event)

    def cancel(self):
        """Stop the run; the in-flight command is terminated."""
        if self.state in (EngineState.COMPLETED, EngineState.ABORTED):
            return
        logger.warning(f"Cancelling run {self.run_id} of '{self.workflow.name}'")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(
        self,
        event: TriggerEvent,
        workspace: Union[str, Path],
        secrets: Optional[Dict[str, str]] = None,
    ) -> Optional[RunReport]:
        """
        Run the workflow for `event` in `workspace`.
        Returns the run report, or None when the event does not trigger
        the workflow. Raises ExecutorFault (with `.report` set) when a
        step could not be launched.
        """
        if not self.matches(event):
            logger.info(f"Workflow '{self.workflow.name}' not triggered by {event.describe()}")
            return None

        with self._lock:
            if self._started:
                raise RuntimeError(f"Engine for run {self.run_id} has already run")
            self._started = True

        self.state = EngineState.TRIGGERED
        logger.info(
            f"Workflow '{self.workflow.name}' triggered by {event.describe()} "
            f"(run {self.run_id}, {len(self.workflow.steps)} steps)"
        )

        context = ExecutionContext(
            run_id=self.run_id,
            workspace=Path(workspace),
            event=event,
            env=dict(self.workflow.env),
            secrets={name: SecretStr(value) for name, value in (secrets or {}).items()},
            cancel_event=self._cancel,
        )
        assembler = RunReportAssembler(self.workflow, event, self.run_id)

        if self.workflow.runtime:
            try:
                self.host.install_runtime(self.workflow.runtime)
            except ExecutorFault as e:
                logger.error(f"Runtime setup failed for run {self.run_id}: {e}")
                self._finish(assembler, error=f"Runtime setup failed: {e}")
                e.report = self.report
                raise

        halted = False
        stopped_early = False
        for index, step in enumerate(self.workflow.steps):
            if not halted and self.cancelled:
                stopped_early = True
            if halted or stopped_early:
                assembler.skip(step)
                continue

            self.state = EngineState.RUNNING
            self.current_step = index

            try:
                result = self.executor.execute(step, context)
            except ExecutorFault as e:
                assembler.record(StepResult(name=step.name, status=StepStatus.ERRORED, error=e.message))
                for remaining in self.workflow.steps[index + 1:]:
                    assembler.skip(remaining)
                self._finish(assembler, error=str(e))
                e.report = self.report
                raise

            assembler.record(result)

            if result.status == StepStatus.ABORTED:
                halted = stopped_early = True
            elif result.is_failure:
                if step.continue_on_error:
                    logger.warning(f"Step '{step.name}' failed, continuing (continue-on-error)")
                else:
                    logger.error(f"Step '{step.name}' failed, skipping remaining steps")
                    halted = True

        self.current_step = None
        # A cancel that arrives after the last step has run does not change the outcome
        report = self._finish(assembler, aborted=stopped_early)
        logger.info(f"Run {self.run_id} of '{self.workflow.name}' finished with status: {report.status.value}")
        return report

    def _finish(self, assembler: RunReportAssembler, error: Optional[str] = None, aborted: bool = False) -> RunReport:
        aborted = aborted and error is None
        self.report = assembler.finish(aborted=aborted, error=error)
        self.current_step = None
        self.state = EngineState.ABORTED if aborted else EngineState.COMPLETED
        return self.report
