from api.src.services.github import (
    verify_signature,
    parse_webhook_payload,
    parse_pull_request_payload,
    event_from_webhook,
    find_workflow_file,
)
from api.src.services.runs import (
    RunRecord,
    RunRegistry,
    get_registry,
    get_host,
)

__all__ = [
    "verify_signature",
    "parse_webhook_payload",
    "parse_pull_request_payload",
    "event_from_webhook",
    "find_workflow_file",
    "RunRecord",
    "RunRegistry",
    "get_registry",
    "get_host",
]
