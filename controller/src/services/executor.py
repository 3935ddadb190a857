"""
Command executor - runs a single workflow step through the host.
"""

import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from controller.src.config import Settings, get_settings
from controller.src.errors import ExecutorFault
from controller.src.models.step import StepDefinition, StepResult, StepStatus
from controller.src.models.workflow import ExecutionContext
from controller.src.services.host import CommandHost, LocalHost
from controller.src.services.log_collector import collect_output, tail_lines

logger = logging.getLogger(__name__)

class CommandExecutor:
    def __init__(self, host: Optional[CommandHost] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.host = host or LocalHost(self.settings)

    def execute(self, step: StepDefinition, context: ExecutionContext) -> StepResult:
        """
        Execute a single step.
        Step failures and timeouts come back as results; only a launch
        failure raises (ExecutorFault).
        """
        cwd = self.resolve_working_directory(step, context)
        env = self.build_env(step, context)
        secrets = context.secret_values()
        # Headroom so a secret cut at the capture edge is dropped, not leaked
        margin = max((len(s.encode("utf-8")) for s in secrets), default=0)

        logger.info(f"Running step '{step.name}': {step.display_command}")
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        try:
            outcome = self.host.run(
                step.command,
                cwd=str(cwd),
                env=env,
                timeout=step.timeout_seconds,
                cancel=context.cancel_event,
                output_limit=self.settings.output_limit_bytes + margin,
            )
        except ExecutorFault as e:
            e.step = e.step or step.name
            logger.error(f"Step '{step.name}' could not run: {e.message}")
            raise

        duration = time.monotonic() - start
        output, truncated = collect_output(
            outcome.output,
            self.settings.output_limit_bytes,
            secrets=secrets,
            truncated=outcome.truncated,
        )

        exit_code = None
        if outcome.cancelled:
            status = StepStatus.ABORTED
        elif outcome.timed_out:
            status = StepStatus.TIMED_OUT
        else:
            exit_code = outcome.exit_code
            status = StepStatus.PASSED if exit_code == 0 else StepStatus.FAILED

        result = StepResult(
            name=step.name,
            status=status,
            exit_code=exit_code,
            duration=duration,
            output=output,
            truncated=truncated,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

        if status == StepStatus.PASSED:
            logger.info(f"Step '{step.name}' passed in {duration:.2f}s")
        elif status == StepStatus.FAILED:
            logger.error(f"Step '{step.name}' failed with exit code {exit_code}\n{tail_lines(output)}")
        elif status == StepStatus.TIMED_OUT:
            logger.error(f"Step '{step.name}' timed out after {step.timeout_seconds}s")
        else:
            logger.warning(f"Step '{step.name}' aborted")

        return result

    def resolve_working_directory(self, step: StepDefinition, context: ExecutionContext) -> Path:
        workspace = Path(context.workspace).resolve()
        if not step.working_directory:
            return workspace

        cwd = (workspace / step.working_directory).resolve()
        # A symlink inside the checkout may still point outside it
        if cwd != workspace and workspace not in cwd.parents:
            raise ExecutorFault(
                f"Working directory '{step.working_directory}' escapes the workspace",
                step=step.name,
            )
        return cwd

    def build_env(self, step: StepDefinition, context: ExecutionContext) -> Dict[str, str]:
        env = dict(os.environ) if self.settings.inherit_env else {}
        if not self.settings.inherit_env and "PATH" in os.environ:
            env["PATH"] = os.environ["PATH"]

        env.update({
            "CI": "true",
            "FLOWGATE_RUN_ID": context.run_id,
            "FLOWGATE_STEP_NAME": step.name,
            "FLOWGATE_EVENT": context.event.event_type.value,
            "FLOWGATE_BRANCH": context.event.branch or "",
        })
        if context.event.commit_sha:
            env["FLOWGATE_COMMIT_SHA"] = context.event.commit_sha

        env.update(context.env)
        env.update(step.env)
        env.update({name: value.get_secret_value() for name, value in context.secrets.items()})
        return env
