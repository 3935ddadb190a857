"""Tests for the command executor against real local processes."""

import sys
import threading
import time

import pytest
from controller.src.errors import ExecutorFault
from controller.src.models.step import StepDefinition, StepStatus
from controller.src.models.workflow import EventType, ExecutionContext, TriggerEvent
from controller.src.services.executor import CommandExecutor
from controller.src.services.host import LocalHost

PUSH_MAIN = TriggerEvent(event_type=EventType.PUSH, branch="main", commit_sha="abc123")

def python_step(name, code, **kwargs):
    return StepDefinition(name=name, command=(sys.executable, "-c", code), **kwargs)

@pytest.fixture
def executor(settings):
    return CommandExecutor(LocalHost(settings), settings)

@pytest.fixture
def context(tmp_path):
    return ExecutionContext(workspace=tmp_path, event=PUSH_MAIN)

def test_exit_zero_passes(executor, context):
    result = executor.execute(python_step("ok", "print('hello')"), context)
    assert result.status == StepStatus.PASSED
    assert result.exit_code == 0
    assert result.output == "hello\n"
    assert result.duration >= 0
    assert result.started_at is not None

def test_non_zero_exit_fails_and_keeps_code(executor, context):
    result = executor.execute(python_step("lint", "import sys; print('2 problems'); sys.exit(3)"), context)
    assert result.status == StepStatus.FAILED
    assert result.exit_code == 3
    assert "2 problems" in result.output

def test_stderr_is_captured(executor, context):
    result = executor.execute(python_step("warn", "import sys; sys.stderr.write('careful\\n')"), context)
    assert "careful" in result.output

def test_shell_command(executor, context):
    result = executor.execute(StepDefinition(name="sh", command="echo one && exit 4"), context)
    assert result.status == StepStatus.FAILED
    assert result.exit_code == 4
    assert result.output == "one\n"

def test_timeout_kills_process(executor, context):
    step = python_step("slow", "import time; print('start', flush=True); time.sleep(30)", timeout_seconds=1)
    start = time.monotonic()
    result = executor.execute(step, context)
    assert time.monotonic() - start < 10
    assert result.status == StepStatus.TIMED_OUT
    assert result.exit_code is None
    assert "start" in result.output

def test_cancellation_aborts_step(executor, context):
    step = python_step("hang", "import time; time.sleep(30)")
    timer = threading.Timer(0.5, context.cancel_event.set)
    timer.start()
    try:
        result = executor.execute(step, context)
    finally:
        timer.cancel()
    assert result.status == StepStatus.ABORTED
    assert result.exit_code is None

def test_missing_binary_is_executor_fault(executor, context):
    step = StepDefinition(name="scan", command=("definitely-not-a-real-binary-xyz",))
    with pytest.raises(ExecutorFault, match="Could not launch") as exc:
        executor.execute(step, context)
    assert exc.value.step == "scan"

def test_missing_working_directory_is_executor_fault(executor, context):
    step = python_step("build", "pass", working_directory="does-not-exist")
    with pytest.raises(ExecutorFault, match="Working directory does not exist"):
        executor.execute(step, context)

def test_runs_in_working_directory(executor, context, tmp_path):
    (tmp_path / "app").mkdir()
    step = python_step("pwd", "import os; print(os.getcwd())", working_directory="app")
    result = executor.execute(step, context)
    assert result.output.strip() == str((tmp_path / "app").resolve())

def test_environment(executor, tmp_path):
    context = ExecutionContext(
        workspace=tmp_path,
        event=PUSH_MAIN,
        env={"WORKFLOW_VAR": "w", "OVERRIDE": "workflow"},
    )
    code = "import os; print(os.environ['CI'], os.environ['FLOWGATE_BRANCH'], os.environ['WORKFLOW_VAR'], os.environ['OVERRIDE'], os.environ['FLOWGATE_STEP_NAME'])"
    step = python_step("env", code, env={"OVERRIDE": "step"})
    result = executor.execute(step, context)
    assert result.output.split() == ["true", "main", "w", "step", "env"]

def test_secrets_are_injected_and_redacted(executor, tmp_path):
    context = ExecutionContext(
        workspace=tmp_path,
        event=PUSH_MAIN,
        secrets={"API_TOKEN": "tok-123456"},
    )
    step = python_step("leak", "import os; print('token is', os.environ['API_TOKEN'])")
    result = executor.execute(step, context)
    assert result.status == StepStatus.PASSED
    assert "tok-123456" not in result.output
    assert result.output == "token is ***\n"

def test_secret_is_not_in_context_repr(tmp_path):
    context = ExecutionContext(workspace=tmp_path, event=PUSH_MAIN, secrets={"API_TOKEN": "tok-123456"})
    assert "tok-123456" not in repr(context)

def test_output_is_truncated(executor, context, settings):
    step = python_step("noisy", "print('x' * 5000 + 'END')")
    result = executor.execute(step, context)
    assert result.truncated
    assert len(result.output.encode()) <= settings.output_limit_bytes
    assert result.output.rstrip().endswith("END")

def test_timeout_holds_with_coarse_polling(settings, context):
    coarse = settings.model_copy(update={"poll_interval": 1.5})
    executor = CommandExecutor(LocalHost(coarse), coarse)
    step = python_step("slow", "import time; time.sleep(2.5)", timeout_seconds=2)
    result = executor.execute(step, context)
    assert result.status == StepStatus.TIMED_OUT
    assert result.exit_code is None

def process_alive(pid):
    try:
        with open(f"/proc/{pid}/stat") as f:
            state = f.read().rsplit(")", 1)[1].split()[0]
    except FileNotFoundError:
        return False
    return state != "Z"

@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="reads /proc")
def test_background_children_do_not_outlive_step(settings, context, tmp_path):
    patient = settings.model_copy(update={"kill_grace_seconds": 5.0})
    executor = CommandExecutor(LocalHost(patient), patient)
    step = StepDefinition(name="bg", command="sleep 30 & echo $! > bg.pid; echo done")

    start = time.monotonic()
    result = executor.execute(step, context)
    assert time.monotonic() - start < patient.kill_grace_seconds
    assert result.status == StepStatus.PASSED
    assert result.output == "done\n"

    pid = int((tmp_path / "bg.pid").read_text())
    for _ in range(200):
        if not process_alive(pid):
            break
        time.sleep(0.01)
    assert not process_alive(pid)
