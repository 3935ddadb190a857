"""
Workflow YAML parser and validator.
"""

import re
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from controller.src.config import get_settings
from controller.src.errors import ParseError
from controller.src.models.step import StepDefinition
from controller.src.models.workflow import (
    BRANCH_SCOPED_EVENTS,
    EventType,
    TriggerRule,
    WorkflowDefinition,
)

WORKFLOW_FIELDS = {"name", "trigger", "steps", "env", "secrets", "runtime"}
TRIGGER_FIELDS = {"event", "branches"}
STEP_FIELDS = {"name", "run", "working-directory", "continue-on-error", "timeout", "env"}

ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

def parse_workflow(yaml_content: str, default_timeout: Optional[int] = None) -> WorkflowDefinition:
    """Parse workflow YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML: {e}")

    return parse_workflow_dict(config, default_timeout=default_timeout)

def parse_workflow_file(path: Union[str, Path], default_timeout: Optional[int] = None) -> WorkflowDefinition:
    """Read and parse a workflow file."""
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Cannot read workflow file: {e}", location=str(path))

    return parse_workflow(content, default_timeout=default_timeout)

def parse_workflow_dict(config: Any, default_timeout: Optional[int] = None) -> WorkflowDefinition:
    """Validate workflow configuration structure."""
    if not config:
        raise ParseError("Empty workflow configuration")

    if not isinstance(config, dict):
        raise ParseError("Workflow configuration must be a mapping")

    # YAML 1.1 loads a bare `on:` key as boolean True
    if any(key is True for key in config):
        raise ParseError("Unknown field 'on' (use 'trigger')", location="on")

    _reject_unknown_fields(config, WORKFLOW_FIELDS, None)

    if default_timeout is None:
        default_timeout = get_settings().default_step_timeout

    if "name" not in config:
        raise ParseError("Workflow must have a 'name'")
    name = config["name"]
    if not isinstance(name, str) or not name.strip():
        raise ParseError("Workflow 'name' must be a non-empty string", location="name")

    if "trigger" not in config:
        raise ParseError("Workflow must have a 'trigger' defined")
    triggers = validate_triggers(config["trigger"])

    if "steps" not in config:
        raise ParseError("Workflow must have 'steps' defined")

    steps = config["steps"]
    if not isinstance(steps, list):
        raise ParseError("Workflow 'steps' must be a list", location="steps")

    if len(steps) == 0:
        raise ParseError("Workflow must have at least one step", location="steps")

    validated_steps = []
    seen = set()
    for i, step in enumerate(steps):
        validated_step = validate_step(step, i, default_timeout)
        if validated_step.name in seen:
            raise ParseError(
                f"Duplicate step name '{validated_step.name}'",
                location=f"steps[{i}].name",
            )
        seen.add(validated_step.name)
        validated_steps.append(validated_step)

    return WorkflowDefinition(
        name=name.strip(),
        triggers=triggers,
        steps=tuple(validated_steps),
        env=validate_env(config.get("env"), "env"),
        secrets=validate_secrets(config.get("secrets")),
        runtime=validate_runtime(config.get("runtime")),
    )

def validate_triggers(trigger: Any) -> Tuple[TriggerRule, ...]:
    """Validate a single trigger mapping or a list of them."""
    if isinstance(trigger, dict):
        return (validate_trigger(trigger, "trigger"),)

    if not isinstance(trigger, list) or len(trigger) == 0:
        raise ParseError("'trigger' must be a mapping or a non-empty list", location="trigger")

    return tuple(validate_trigger(rule, f"trigger[{i}]") for i, rule in enumerate(trigger))

def validate_trigger(rule: Any, location: str) -> TriggerRule:
    if not isinstance(rule, dict):
        raise ParseError("Trigger must be a mapping", location=location)

    _reject_unknown_fields(rule, TRIGGER_FIELDS, location)

    if "event" not in rule:
        raise ParseError("Trigger missing 'event'", location=location)

    try:
        event_type = EventType(rule["event"])
    except ValueError:
        choices = ", ".join(e.value for e in EventType)
        raise ParseError(
            f"Unknown event type {rule['event']!r} (expected one of: {choices})",
            location=f"{location}.event",
        )

    branches = rule.get("branches", [])
    if isinstance(branches, str):
        branches = [branches]
    if not isinstance(branches, list):
        raise ParseError("'branches' must be a list of patterns", location=f"{location}.branches")

    for j, pattern in enumerate(branches):
        if not isinstance(pattern, str) or not pattern.strip():
            raise ParseError(
                f"Branch pattern {j} must be a non-empty string",
                location=f"{location}.branches",
            )

    if event_type in BRANCH_SCOPED_EVENTS and not branches:
        raise ParseError(
            f"'{event_type.value}' trigger needs at least one branch pattern",
            location=f"{location}.branches",
        )

    return TriggerRule(
        event_type=event_type,
        branch_patterns=tuple(pattern.strip() for pattern in branches),
    )

def validate_step(step: Any, index: int, default_timeout: int = 600) -> StepDefinition:
    """Validate a single workflow step."""
    location = f"steps[{index}]"
    if not isinstance(step, dict):
        raise ParseError(f"Step {index} must be a mapping", location=location)

    _reject_unknown_fields(step, STEP_FIELDS, location)

    # Required fields
    if "name" not in step:
        raise ParseError(f"Step {index} missing 'name'", location=location)

    if "run" not in step:
        raise ParseError(f"Step {index} missing 'run'", location=location)

    if not isinstance(step["name"], str) or not step["name"].strip():
        raise ParseError(f"Step {index} 'name' must be a non-empty string", location=f"{location}.name")

    command = validate_command(step["run"], f"{location}.run")

    timeout = step.get("timeout", default_timeout)
    # bool is an int subclass; `timeout: true` is a typo, not one second
    if isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0:
        raise ParseError(
            f"Step {index} 'timeout' must be a positive integer number of seconds",
            location=f"{location}.timeout",
        )

    continue_on_error = step.get("continue-on-error", False)
    if not isinstance(continue_on_error, bool):
        raise ParseError(
            f"Step {index} 'continue-on-error' must be true or false",
            location=f"{location}.continue-on-error",
        )

    return StepDefinition(
        name=step["name"].strip(),
        command=command,
        working_directory=validate_working_directory(
            step.get("working-directory"), f"{location}.working-directory"
        ),
        continue_on_error=continue_on_error,
        timeout_seconds=timeout,
        env=validate_env(step.get("env"), f"{location}.env"),
    )

def validate_command(command: Any, location: str) -> Union[str, Tuple[str, ...]]:
    if isinstance(command, str):
        if not command.strip():
            raise ParseError("Command must not be empty", location=location)
        return command

    if isinstance(command, list):
        if len(command) == 0:
            raise ParseError("Command must not be empty", location=location)
        for j, arg in enumerate(command):
            if not isinstance(arg, (str, int, float)) or isinstance(arg, bool):
                raise ParseError(f"Command argument {j} must be a string", location=location)
        argv = tuple(str(arg) for arg in command)
        if not argv[0].strip():
            raise ParseError("Command program must not be empty", location=location)
        return argv

    raise ParseError("Command must be a string or a list of arguments", location=location)

def validate_working_directory(value: Any, location: str) -> Optional[str]:
    if value is None:
        return None

    if not isinstance(value, str) or not value.strip():
        raise ParseError("'working-directory' must be a non-empty string", location=location)

    path = PurePosixPath(value.strip())
    if path.is_absolute() or ".." in path.parts:
        raise ParseError("'working-directory' must be a relative path inside the workspace", location=location)

    return str(path)

def validate_env(env: Any, location: str) -> Dict[str, str]:
    if env is None:
        return {}

    if not isinstance(env, dict):
        raise ParseError("'env' must be a mapping", location=location)

    validated = {}
    for key in sorted(env, key=str):
        if not isinstance(key, str) or not ENV_NAME.match(key):
            raise ParseError(f"Invalid environment variable name {key!r}", location=location)
        value = env[key]
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif value is None:
            value = ""
        elif not isinstance(value, (str, int, float)):
            raise ParseError(f"Environment variable '{key}' must be a scalar", location=location)
        validated[key] = str(value)

    return validated

def validate_secrets(secrets: Any) -> Tuple[str, ...]:
    if secrets is None:
        return ()

    if not isinstance(secrets, list):
        raise ParseError("'secrets' must be a list of names", location="secrets")

    names: List[str] = []
    for name in secrets:
        if not isinstance(name, str) or not ENV_NAME.match(name):
            raise ParseError(f"Invalid secret name {name!r}", location="secrets")
        if name not in names:
            names.append(name)

    return tuple(names)

def validate_runtime(runtime: Any) -> Optional[str]:
    if runtime is None:
        return None

    if isinstance(runtime, bool) or not isinstance(runtime, (str, int, float)) or not str(runtime).strip():
        raise ParseError("'runtime' must be a version string", location="runtime")

    return str(runtime).strip()

def _reject_unknown_fields(mapping: Dict[Any, Any], allowed: set, location: Optional[str]):
    unknown = sorted(str(key) for key in mapping if key not in allowed)
    if unknown:
        where = f"{location}.{unknown[0]}" if location else unknown[0]
        raise ParseError(f"Unknown field '{unknown[0]}'", location=where)
