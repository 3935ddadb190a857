"""Tests for workflow parser."""

import pytest
from controller.src.errors import ParseError
from controller.src.models.workflow import EventType
from controller.src.services.workflow_parser import (
    parse_workflow,
    parse_workflow_dict,
    parse_workflow_file,
)

NODE_CI = """
name: node-ci
trigger:
  event: push
  branches: [main]
secrets: [SEMGREP_APP_TOKEN]
steps:
  - name: install
    run: npm ci
  - name: lint
    run: npx eslint .
    working-directory: app
  - name: audit
    run: npm audit --audit-level=high
    continue-on-error: true
    timeout: 120
  - name: semgrep
    run: [semgrep, ci]
    env:
      SEMGREP_RULES: p/default
"""

def test_valid_workflow():
    result = parse_workflow(NODE_CI, default_timeout=600)
    assert result.name == "node-ci"
    assert result.step_names == ("install", "lint", "audit", "semgrep")
    assert result.triggers[0].event_type == EventType.PUSH
    assert result.triggers[0].branch_patterns == ("main",)
    assert result.secrets == ("SEMGREP_APP_TOKEN",)

    install, lint, audit, semgrep = result.steps
    assert install.command == "npm ci"
    assert install.timeout_seconds == 600
    assert install.continue_on_error is False
    assert lint.working_directory == "app"
    assert audit.continue_on_error is True
    assert audit.timeout_seconds == 120
    assert semgrep.command == ("semgrep", "ci")
    assert semgrep.env == {"SEMGREP_RULES": "p/default"}

def test_parsing_is_deterministic():
    assert parse_workflow(NODE_CI, default_timeout=60) == parse_workflow(NODE_CI, default_timeout=60)

def test_duplicate_step_name():
    config = """
name: dup
trigger: {event: push, branches: [main]}
steps:
  - name: build
    run: make
  - name: build
    run: make test
"""
    with pytest.raises(ParseError, match="Duplicate step name 'build'") as exc:
        parse_workflow(config)
    assert exc.value.location == "steps[1].name"

def test_missing_steps():
    config = """
name: Bad Workflow
trigger: {event: manual}
"""
    with pytest.raises(ParseError, match="must have 'steps'"):
        parse_workflow(config)

def test_empty_steps():
    config = """
name: Bad Workflow
trigger: {event: manual}
steps: []
"""
    with pytest.raises(ParseError, match="at least one step"):
        parse_workflow(config)

def test_missing_trigger():
    config = """
name: Bad Workflow
steps:
  - name: Build
    run: make
"""
    with pytest.raises(ParseError, match="must have a 'trigger'"):
        parse_workflow(config)

def test_bare_on_key_is_reported():
    config = """
name: Actions style
on: push
steps:
  - name: Build
    run: make
"""
    with pytest.raises(ParseError, match="use 'trigger'"):
        parse_workflow(config)

def test_missing_step_name():
    config = """
name: Bad Workflow
trigger: {event: manual}
steps:
  - run: npm install
"""
    with pytest.raises(ParseError, match="missing 'name'"):
        parse_workflow(config)

def test_missing_step_command():
    config = """
name: Bad Workflow
trigger: {event: manual}
steps:
  - name: Build
"""
    with pytest.raises(ParseError, match="missing 'run'"):
        parse_workflow(config)

@pytest.mark.parametrize("command", ['""', '"   "', "[]", '[""]'])
def test_empty_command(command):
    config = f"""
name: Bad Workflow
trigger: {{event: manual}}
steps:
  - name: Build
    run: {command}
"""
    with pytest.raises(ParseError, match="must not be empty"):
        parse_workflow(config)

@pytest.mark.parametrize("timeout", ["0", "-5", "1.5", "true", '"60"'])
def test_invalid_timeout(timeout):
    config = f"""
name: Bad Workflow
trigger: {{event: manual}}
steps:
  - name: Build
    run: make
    timeout: {timeout}
"""
    with pytest.raises(ParseError, match="positive integer") as exc:
        parse_workflow(config)
    assert exc.value.location == "steps[0].timeout"

def test_unknown_step_field():
    config = """
name: Bad Workflow
trigger: {event: manual}
steps:
  - name: Build
    run: make
    uses: actions/checkout@v4
"""
    with pytest.raises(ParseError, match="Unknown field 'uses'") as exc:
        parse_workflow(config)
    assert exc.value.location == "steps[0].uses"

def test_unknown_top_level_field():
    config = """
name: Bad Workflow
trigger: {event: manual}
jobs: {}
steps:
  - name: Build
    run: make
"""
    with pytest.raises(ParseError, match="Unknown field 'jobs'"):
        parse_workflow(config)

def test_push_trigger_needs_branches():
    config = """
name: Bad Workflow
trigger: {event: push}
steps:
  - name: Build
    run: make
"""
    with pytest.raises(ParseError, match="at least one branch pattern"):
        parse_workflow(config)

def test_unknown_event_type():
    config = """
name: Bad Workflow
trigger: {event: release}
steps:
  - name: Build
    run: make
"""
    with pytest.raises(ParseError, match="Unknown event type 'release'"):
        parse_workflow(config)

def test_trigger_list():
    config = """
name: Multi
trigger:
  - event: push
    branches: main
  - event: pull_request
    branches: ["main", "release/*"]
  - event: schedule
steps:
  - name: Build
    run: make
"""
    result = parse_workflow(config)
    assert [rule.event_type for rule in result.triggers] == [
        EventType.PUSH, EventType.PULL_REQUEST, EventType.SCHEDULE,
    ]
    assert result.triggers[0].branch_patterns == ("main",)
    assert result.triggers[2].branch_patterns == ()

@pytest.mark.parametrize("directory", ["/etc", "../outside", "app/../../x"])
def test_working_directory_must_stay_in_workspace(directory):
    config = {
        "name": "Bad",
        "trigger": {"event": "manual"},
        "steps": [{"name": "Build", "run": "make", "working-directory": directory}],
    }
    with pytest.raises(ParseError, match="relative path inside the workspace"):
        parse_workflow_dict(config)

def test_env_values_are_strings():
    config = {
        "name": "Env",
        "trigger": {"event": "manual"},
        "env": {"CI": True, "RETRIES": 3},
        "runtime": 18,
        "steps": [{"name": "Build", "run": "make"}],
    }
    result = parse_workflow_dict(config)
    assert result.env == {"CI": "true", "RETRIES": "3"}
    assert result.runtime == "18"

def test_invalid_yaml():
    with pytest.raises(ParseError, match="Invalid YAML"):
        parse_workflow("name: [unclosed")

def test_empty_config():
    with pytest.raises(ParseError, match="Empty"):
        parse_workflow("")

def test_non_mapping_config():
    with pytest.raises(ParseError, match="must be a mapping"):
        parse_workflow("- just\n- a list\n")

def test_dict_parsing():
    config = {
        "name": "Dict Workflow",
        "trigger": {"event": "manual"},
        "steps": [
            {"name": "Step 1", "run": "echo hello"}
        ]
    }
    result = parse_workflow_dict(config, default_timeout=42)
    assert result.name == "Dict Workflow"
    assert len(result.steps) == 1
    assert result.steps[0].timeout_seconds == 42

def test_file_parsing(tmp_path):
    path = tmp_path / ".pipeline.yml"
    path.write_text(NODE_CI)
    assert parse_workflow_file(path).name == "node-ci"

def test_missing_file(tmp_path):
    with pytest.raises(ParseError, match="Cannot read workflow file"):
        parse_workflow_file(tmp_path / "nope.yml")

def test_workflow_is_immutable():
    result = parse_workflow(NODE_CI)
    with pytest.raises(Exception):
        result.steps[0].name = "renamed"
