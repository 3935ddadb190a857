"""
Host environment - the external capabilities the engine consumes:
source checkout, runtime provisioning and running commands.
"""

import logging
import os
import shutil
import signal
import subprocess
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence, Union

from pydantic import BaseModel

from controller.src.config import Settings, get_settings
from controller.src.errors import ExecutorFault
from controller.src.services.log_collector import OutputBuffer

logger = logging.getLogger(__name__)

Command = Union[str, Sequence[str]]

class ProcessResult(BaseModel):
    exit_code: Optional[int] = None
    output: bytes = b""
    truncated: bool = False
    timed_out: bool = False
    cancelled: bool = False

class CommandHost(ABC):
    """Abstract host the executor runs steps through."""

    @abstractmethod
    def checkout(self, repo_url: str, ref: Optional[str] = None) -> str:
        """Materialize the repository at `ref`; returns the working directory."""

    @abstractmethod
    def install_runtime(self, version_spec: str) -> None:
        """Provision the language runtime. Raises ExecutorFault on failure."""

    @abstractmethod
    def run(
        self,
        command: Command,
        cwd: str,
        env: Dict[str, str],
        timeout: float,
        cancel: Optional[threading.Event] = None,
        output_limit: int = 64 * 1024,
    ) -> ProcessResult:
        """
        Run one command to completion, deadline or cancellation.
        Raises ExecutorFault if the program cannot be launched.
        """

    def cleanup(self, path: str) -> None:
        """Remove a checkout made by this host."""

class LocalHost(CommandHost):
    """Runs everything as local subprocesses."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def checkout(self, repo_url: str, ref: Optional[str] = None) -> str:
        """
        Clone repository to temporary directory.
        Returns path to cloned repo.
        """
        temp_dir = tempfile.mkdtemp(prefix="flowgate_")
        repo_path = os.path.join(temp_dir, "repo")

        try:
            subprocess.run(
                ["git", "clone", "--depth", "1", repo_url, repo_path],
                check=True,
                capture_output=True,
                timeout=120
            )

            # Checkout specific commit if provided
            if ref:
                subprocess.run(
                    ["git", "fetch", "--depth", "1", "origin", ref],
                    cwd=repo_path,
                    capture_output=True,
                    timeout=60
                )
                subprocess.run(
                    ["git", "checkout", ref],
                    cwd=repo_path,
                    check=True,
                    capture_output=True,
                    timeout=30
                )

            logger.info(f"Checked out {repo_url} at {ref or 'HEAD'} into {repo_path}")
            return repo_path
        except FileNotFoundError:
            shutil.rmtree(temp_dir, ignore_errors=True)
            raise ExecutorFault("git is not installed")
        except subprocess.TimeoutExpired:
            shutil.rmtree(temp_dir, ignore_errors=True)
            raise ExecutorFault("Repository checkout timed out")
        except subprocess.CalledProcessError as e:
            shutil.rmtree(temp_dir, ignore_errors=True)
            raise ExecutorFault(f"Failed to check out repository: {e.stderr.decode(errors='replace').strip()}")

    def cleanup(self, path: str) -> None:
        """Clean up a cloned repository and its temporary parent."""
        if path and os.path.exists(path):
            parent = os.path.dirname(path)
            if os.path.basename(parent).startswith("flowgate_"):
                shutil.rmtree(parent, ignore_errors=True)
            else:
                shutil.rmtree(path, ignore_errors=True)
            logger.debug(f"Removed checkout {path}")

    def install_runtime(self, version_spec: str) -> None:
        template = self.settings.runtime_install_command
        if not template:
            logger.info(f"No runtime installer configured, using runtime on PATH for '{version_spec}'")
            return

        command = template.format(version=version_spec)
        logger.info(f"Installing runtime {version_spec}: {command}")
        result = self.run(
            command,
            cwd=os.getcwd(),
            env=dict(os.environ),
            timeout=self.settings.default_step_timeout,
        )
        if result.timed_out:
            raise ExecutorFault(f"Runtime installation for '{version_spec}' timed out")
        if result.exit_code != 0:
            raise ExecutorFault(
                f"Runtime installation for '{version_spec}' exited with {result.exit_code}"
            )

    def run(
        self,
        command: Command,
        cwd: str,
        env: Dict[str, str],
        timeout: float,
        cancel: Optional[threading.Event] = None,
        output_limit: int = 64 * 1024,
    ) -> ProcessResult:
        if isinstance(command, str):
            argv = [self.settings.shell, "-c", command]
        else:
            argv = list(command)

        if not os.path.isdir(cwd):
            raise ExecutorFault(f"Working directory does not exist: {cwd}")

        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                # Own process group so termination reaches grandchildren
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise ExecutorFault(f"Could not launch {argv[0]!r}: {e.strerror or e}")

        buffer = OutputBuffer(output_limit)
        reader = threading.Thread(target=buffer.drain, args=(proc.stdout,), daemon=True)
        reader.start()

        deadline = time.monotonic() + timeout
        timed_out = False
        cancelled = False

        try:
            while True:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    proc.wait(timeout=min(self.settings.poll_interval, remaining))
                except subprocess.TimeoutExpired:
                    pass
                else:
                    # Exited, but only counts if it beat the deadline
                    timed_out = time.monotonic() >= deadline
                    break

                if cancel is not None and cancel.is_set():
                    cancelled = True
                elif time.monotonic() >= deadline:
                    timed_out = True

                if cancelled or timed_out:
                    logger.warning(
                        f"Terminating pid {proc.pid} ({'cancelled' if cancelled else f'timed out after {timeout}s'})"
                    )
                    self._terminate(proc)
                    break

            if os.name == "posix":
                # Nothing the step started outlives it
                self._signal(proc, signal.SIGKILL)

            reader.join(timeout=self.settings.kill_grace_seconds)
            if reader.is_alive():
                logger.warning(f"Output of pid {proc.pid} still open after exit, keeping what was read")
        finally:
            proc.stdout.close()

        return ProcessResult(
            exit_code=None if (timed_out or cancelled) else proc.returncode,
            output=buffer.getvalue(),
            truncated=buffer.truncated,
            timed_out=timed_out,
            cancelled=cancelled,
        )

    def _terminate(self, proc: subprocess.Popen):
        """SIGTERM the process group, SIGKILL it if it is still alive after the grace period."""
        self._signal(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.settings.kill_grace_seconds)
        except subprocess.TimeoutExpired:
            self._signal(proc, signal.SIGKILL if os.name == "posix" else signal.SIGTERM)
            proc.wait()

    def _signal(self, proc: subprocess.Popen, sig: int):
        try:
            if os.name == "posix":
                os.killpg(proc.pid, sig)
            else:
                proc.send_signal(sig)
        except (ProcessLookupError, PermissionError):
            pass
