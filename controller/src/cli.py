"""
Command-line interface: run or validate a workflow file locally.
"""

import json
import logging
import os
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import typer

from controller.src.config import get_settings
from controller.src.errors import ExecutorFault, ParseError
from controller.src.models.report import RunReport, RunStatus
from controller.src.models.workflow import TriggerEvent, WorkflowDefinition
from controller.src.services.engine import PipelineEngine
from controller.src.services.host import LocalHost
from controller.src.services.report import render_json, render_text, report_to_dict
from controller.src.services.workflow_parser import parse_workflow_file

logger = logging.getLogger(__name__)

# 2 is taken by click for usage errors
EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_PARSE_ERROR = 3
EXIT_ABORTED = 4
EXIT_EXECUTOR_FAULT = 5

EXIT_CODES = {
    RunStatus.PASSED: EXIT_PASSED,
    RunStatus.FAILED: EXIT_FAILED,
    RunStatus.ABORTED: EXIT_ABORTED,
}

app = typer.Typer(add_completion=False, help="flowgate - run declarative CI workflows locally")

def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every engine transition"),
) -> None:
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)

def _emit_error(kind: str, error: Exception, as_json: bool, report: Optional[RunReport] = None):
    """Structured error output instead of a traceback."""
    payload = {"status": "error", "error": {"type": kind, "message": getattr(error, "message", str(error))}}
    if isinstance(error, ParseError) and error.location:
        payload["error"]["location"] = error.location
    if isinstance(error, ExecutorFault) and error.step:
        payload["error"]["step"] = error.step
    if report is not None:
        payload["report"] = report_to_dict(report)

    if as_json:
        typer.echo(json.dumps(payload, indent=2))
        return

    if report is not None:
        typer.echo(render_text(report))
    typer.echo(f"{kind}: {error}", err=True)

def _load(path: Path, as_json: bool) -> WorkflowDefinition:
    try:
        return parse_workflow_file(path)
    except ParseError as e:
        _emit_error("ParseError", e, as_json)
        raise typer.Exit(code=EXIT_PARSE_ERROR)

def _collect_secrets(names: Iterable[str]) -> Dict[str, str]:
    secrets = {}
    for name in names:
        value = os.environ.get(name)
        if value is None:
            typer.echo(f"warning: secret '{name}' is not set in the environment", err=True)
            continue
        secrets[name] = value
    return secrets

@contextmanager
def _cancel_on_signals(engine: PipelineEngine):
    """Route Ctrl-C / SIGTERM to engine cancellation for the duration of a run."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, frame):
        typer.echo(f"Received signal {signum}, cancelling run...", err=True)
        engine.cancel()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)

@app.command()
def run(
    workflow_path: Path = typer.Argument(..., metavar="WORKFLOW", help="Path to the workflow YAML file"),
    event: str = typer.Option("manual", "--event", "-e", help="Trigger event as EVENT[:BRANCH], e.g. push:main"),
    workdir: Optional[Path] = typer.Option(None, "--workdir", "-C", help="Workspace to run steps in (default: current directory)"),
    repo: Optional[str] = typer.Option(None, "--repo", help="Clone this repository into a temporary workspace"),
    ref: Optional[str] = typer.Option(None, "--ref", help="Revision to check out with --repo"),
    secret: List[str] = typer.Option([], "--secret", "-s", help="Environment variable to inject as a redacted secret"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
    report_file: Optional[Path] = typer.Option(None, "--report-file", help="Also write the JSON report here"),
) -> None:
    """
    Run a workflow for a simulated trigger event.

    Exit codes: 0 passed (or not triggered), 1 failed, 3 invalid workflow,
    4 aborted, 5 a step could not be launched.
    """
    try:
        trigger = TriggerEvent.parse(event)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--event")

    workflow = _load(workflow_path, as_json)

    if not workflow.matches(trigger):
        if as_json:
            typer.echo(json.dumps({"status": "not_triggered", "workflow": workflow.name, "event": trigger.describe()}))
        else:
            typer.echo(f"Workflow '{workflow.name}' not triggered by {trigger.describe()}")
        raise typer.Exit(code=EXIT_PASSED)

    secrets = _collect_secrets(list(workflow.secrets) + [s for s in secret if s not in workflow.secrets])

    host = LocalHost()
    checkout = None
    try:
        if repo:
            try:
                checkout = host.checkout(repo, ref)
            except ExecutorFault as e:
                _emit_error("ExecutorFault", e, as_json)
                raise typer.Exit(code=EXIT_EXECUTOR_FAULT)
            workspace = Path(checkout)
            if ref and not trigger.commit_sha:
                trigger = trigger.model_copy(update={"commit_sha": ref})
        else:
            workspace = (workdir or Path.cwd()).resolve()

        engine = PipelineEngine(workflow, host=host)
        try:
            with _cancel_on_signals(engine):
                report = engine.run(trigger, workspace, secrets=secrets)
        except ExecutorFault as e:
            if report_file and e.report is not None:
                report_file.write_text(render_json(e.report), encoding="utf-8")
            _emit_error("ExecutorFault", e, as_json, report=e.report)
            raise typer.Exit(code=EXIT_EXECUTOR_FAULT)
    finally:
        if checkout:
            host.cleanup(checkout)

    if report_file:
        report_file.write_text(render_json(report), encoding="utf-8")

    typer.echo(render_json(report) if as_json else render_text(report))
    raise typer.Exit(code=EXIT_CODES[report.status])

@app.command()
def validate(
    workflow_path: Path = typer.Argument(..., metavar="WORKFLOW", help="Path to the workflow YAML file"),
    as_json: bool = typer.Option(False, "--json", help="Print the parsed workflow as JSON"),
) -> None:
    """Parse a workflow file and print what it would run."""
    workflow = _load(workflow_path, as_json)

    if as_json:
        typer.echo(json.dumps({"status": "valid", "workflow": workflow.model_dump(mode="json")}, indent=2))
        return

    typer.echo(f"Workflow '{workflow.name}' is valid")
    for rule in workflow.triggers:
        branches = ", ".join(rule.branch_patterns) or "any branch"
        typer.echo(f"  on {rule.event_type.value}: {branches}")
    for i, step in enumerate(workflow.steps, start=1):
        flags = []
        if step.continue_on_error:
            flags.append("continue-on-error")
        if step.working_directory:
            flags.append(f"in {step.working_directory}")
        flags.append(f"timeout {step.timeout_seconds}s")
        typer.echo(f"  {i:>2}. {step.name}: {step.display_command} ({', '.join(flags)})")
