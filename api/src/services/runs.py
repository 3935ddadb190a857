"""
In-memory registry of webhook-triggered runs.
"""

import logging
import os
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, List, Optional

from api.src.config import get_settings
from controller.src.errors import ExecutorFault
from controller.src.models.report import RunReport
from controller.src.models.workflow import TriggerEvent
from controller.src.services.engine import PipelineEngine
from controller.src.services.host import CommandHost, LocalHost

logger = logging.getLogger(__name__)

class RunRecord:
    def __init__(self, engine: PipelineEngine, event: TriggerEvent):
        self.engine = engine
        self.event = event
        self.status = "queued"
        self.report: Optional[RunReport] = None
        self.error: Optional[str] = None
        self.created_at = datetime.now(timezone.utc)

    @property
    def run_id(self) -> str:
        return self.engine.run_id

    @property
    def workflow(self) -> str:
        return self.engine.workflow.name

class RunRegistry:
    def __init__(self, max_runs: int = 100):
        self.max_runs = max_runs
        self._runs: "OrderedDict[str, RunRecord]" = OrderedDict()
        self._lock = threading.Lock()

    def add(self, engine: PipelineEngine, event: TriggerEvent) -> RunRecord:
        record = RunRecord(engine, event)
        with self._lock:
            self._runs[record.run_id] = record
            self._evict()
        return record

    def get(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            return self._runs.get(run_id)

    def list(self, status: Optional[str] = None) -> List[RunRecord]:
        with self._lock:
            records = list(reversed(self._runs.values()))
        if status:
            records = [r for r in records if r.status == status]
        return records

    def counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for record in self.list():
            counts[record.status] = counts.get(record.status, 0) + 1
        return counts

    def cancel(self, run_id: str) -> bool:
        record = self.get(run_id)
        if record is None or record.status not in ("queued", "running"):
            return False
        record.engine.cancel()
        return True

    def execute(self, run_id: str, workspace: str, host: CommandHost):
        """Run a registered engine to completion and clean up its workspace."""
        record = self.get(run_id)
        if record is None:
            logger.error(f"Run {run_id} is not registered")
            return

        secrets = {
            name: os.environ[name]
            for name in record.engine.workflow.secrets
            if name in os.environ
        }

        record.status = "running"
        try:
            report = record.engine.run(record.event, workspace, secrets=secrets)
            record.report = report
            record.status = report.status.value if report else "not_triggered"
        except ExecutorFault as e:
            logger.error(f"Run {run_id} could not execute: {e}")
            record.report = e.report
            record.error = str(e)
            record.status = "error"
        finally:
            host.cleanup(workspace)

    def _evict(self):
        # Finished runs only; a running engine stays reachable for cancel
        while len(self._runs) > self.max_runs:
            for run_id, record in self._runs.items():
                if record.status not in ("queued", "running"):
                    del self._runs[run_id]
                    break
            else:
                return

@lru_cache()
def get_registry() -> RunRegistry:
    return RunRegistry(max_runs=get_settings().max_runs_kept)

def get_host() -> CommandHost:
    return LocalHost()
