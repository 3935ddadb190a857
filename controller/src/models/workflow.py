"""
Workflow, trigger and execution-context models.
"""

import threading
import uuid
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from controller.src.models.step import StepDefinition

BRANCH_REF_PREFIX = "refs/heads/"

class EventType(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    MANUAL = "manual"
    SCHEDULE = "schedule"

# Event types whose rules must name at least one branch pattern
BRANCH_SCOPED_EVENTS = (EventType.PUSH, EventType.PULL_REQUEST)

def normalize_branch(ref: Optional[str]) -> Optional[str]:
    """refs/heads/main -> main"""
    if ref and ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):]
    return ref

class TriggerEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: EventType
    branch: Optional[str] = None
    commit_sha: Optional[str] = None
    actor: Optional[str] = None

    @classmethod
    def parse(cls, descriptor: str) -> "TriggerEvent":
        """
        Build an event from a compact descriptor such as ``push:main`` or
        ``manual``. Raises ValueError for an unknown event type.
        """
        event, _, branch = descriptor.strip().partition(":")
        try:
            event_type = EventType(event.strip())
        except ValueError:
            choices = ", ".join(e.value for e in EventType)
            raise ValueError(f"Unknown event type '{event}' (expected one of: {choices})")
        return cls(event_type=event_type, branch=normalize_branch(branch.strip()) or None)

    def describe(self) -> str:
        if self.branch:
            return f"{self.event_type.value}:{self.branch}"
        return self.event_type.value

class TriggerRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: EventType
    branch_patterns: Tuple[str, ...] = ()

    def matches(self, event: TriggerEvent) -> bool:
        if event.event_type != self.event_type:
            return False
        if not self.branch_patterns:
            return True
        branch = normalize_branch(event.branch)
        if not branch:
            return False
        return any(fnmatchcase(branch, pattern) for pattern in self.branch_patterns)

class WorkflowDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    triggers: Tuple[TriggerRule, ...]
    steps: Tuple[StepDefinition, ...]
    env: Dict[str, str] = {}
    secrets: Tuple[str, ...] = ()
    runtime: Optional[str] = None

    def matches(self, event: TriggerEvent) -> bool:
        return any(rule.matches(event) for rule in self.triggers)

    @property
    def step_names(self) -> Tuple[str, ...]:
        return tuple(step.name for step in self.steps)

class ExecutionContext(BaseModel):
    """State owned by exactly one pipeline run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workspace: Path
    event: TriggerEvent
    env: Dict[str, str] = {}
    secrets: Dict[str, SecretStr] = {}
    cancel_event: threading.Event = Field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def secret_values(self) -> Tuple[str, ...]:
        return tuple(
            value.get_secret_value()
            for value in self.secrets.values()
            if value.get_secret_value()
        )
