"""
GitHub webhook endpoints.
"""

from fastapi import APIRouter, Request, HTTPException, Header, Depends, BackgroundTasks
from fastapi.concurrency import run_in_threadpool
from typing import Optional, Dict, Any
import logging

from api.src.models.run import TriggerResponse
from api.src.services.github import (
    verify_signature,
    event_from_webhook,
    find_workflow_file,
)
from api.src.services.runs import RunRegistry, get_host, get_registry
from controller.src.errors import ExecutorFault, ParseError
from controller.src.services.engine import PipelineEngine
from controller.src.services.host import CommandHost
from controller.src.services.workflow_parser import parse_workflow_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

def prepare_run(
    webhook_data: Dict[str, Any],
    host: CommandHost,
    registry: RunRegistry,
):
    """
    Check out the pushed commit, load its workflow and evaluate the trigger.
    Returns the response and, when a run was registered, its workspace.
    """
    event = webhook_data["trigger"]

    if not webhook_data["commit_sha"]:
        logger.warning("No commit SHA in webhook payload")
        return TriggerResponse(status="skipped", reason="No commit SHA"), None

    repo_path = None
    try:
        repo_path = host.checkout(webhook_data["clone_url"], webhook_data["commit_sha"])

        workflow_path = find_workflow_file(repo_path)
        if not workflow_path:
            logger.info(f"No workflow file found in {webhook_data['repo_full_name']}")
            host.cleanup(repo_path)
            return TriggerResponse(status="skipped", reason="No workflow file found"), None

        workflow = parse_workflow_file(workflow_path)

    except ParseError as e:
        logger.error(f"Invalid workflow in {webhook_data['repo_full_name']}: {e}")
        host.cleanup(repo_path)
        return TriggerResponse(status="error", reason=str(e)), None
    except ExecutorFault as e:
        logger.error(f"Failed to check out {webhook_data['repo_full_name']}: {e}")
        if repo_path:
            host.cleanup(repo_path)
        return TriggerResponse(status="error", reason=str(e)), None

    if not workflow.matches(event):
        logger.info(f"Workflow '{workflow.name}' not triggered by {event.describe()}")
        host.cleanup(repo_path)
        return TriggerResponse(
            status="not_triggered",
            workflow=workflow.name,
            reason=f"{event.describe()} does not match any trigger",
        ), None

    engine = PipelineEngine(workflow, host=host)
    record = registry.add(engine, event)
    logger.info(f"Run {record.run_id} of '{workflow.name}' queued for {event.describe()}")

    return TriggerResponse(
        status="queued",
        run_id=record.run_id,
        workflow=workflow.name,
        steps=list(workflow.step_names),
    ), repo_path

@router.post("/github", response_model=TriggerResponse, response_model_exclude_none=True)
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    host: CommandHost = Depends(get_host),
    registry: RunRegistry = Depends(get_registry),
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
):
    """
    Receive GitHub webhook events.
    """
    # Get raw body for signature verification
    body = await request.body()

    if not verify_signature(body, x_hub_signature_256):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    if x_github_event == "ping":
        return TriggerResponse(status="pong", reason="Webhook configured successfully")

    webhook_data = event_from_webhook(x_github_event, payload)
    if webhook_data is None:
        return TriggerResponse(status="ignored", reason=f"Event type '{x_github_event}' not handled")

    # Checkout and parsing block; keep them off the event loop
    response, workspace = await run_in_threadpool(prepare_run, webhook_data, host, registry)

    if workspace is not None:
        background_tasks.add_task(registry.execute, response.run_id, workspace, host)

    return response
