from controller.src.services.engine import PipelineEngine, EngineState
from controller.src.services.executor import CommandExecutor
from controller.src.services.host import CommandHost, LocalHost, ProcessResult
from controller.src.services.log_collector import OutputBuffer, collect_output
from controller.src.services.report import (
    RunReportAssembler,
    render_json,
    render_text,
)
from controller.src.services.workflow_parser import (
    parse_workflow,
    parse_workflow_dict,
    parse_workflow_file,
)

__all__ = [
    "PipelineEngine",
    "EngineState",
    "CommandExecutor",
    "CommandHost",
    "LocalHost",
    "ProcessResult",
    "OutputBuffer",
    "collect_output",
    "RunReportAssembler",
    "render_json",
    "render_text",
    "parse_workflow",
    "parse_workflow_dict",
    "parse_workflow_file",
]
