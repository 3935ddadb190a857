"""
GitHub service for webhook validation and payload handling.
"""

import hmac
import hashlib
import os
from typing import Optional, Dict, Any

from api.src.config import get_settings
from controller.src.models.workflow import EventType, TriggerEvent, normalize_branch

settings = get_settings()

# GitHub event header -> trigger event type
GITHUB_EVENTS = {
    "push": EventType.PUSH,
    "pull_request": EventType.PULL_REQUEST,
    "workflow_dispatch": EventType.MANUAL,
}

# Pull request actions that should start a run
PULL_REQUEST_ACTIONS = {"opened", "synchronize", "reopened"}

def verify_signature(payload: bytes, signature: Optional[str]) -> bool:
    """Verify GitHub webhook signature."""
    if not settings.github_webhook_secret:
        # Skip verification if no secret configured (development)
        return True

    if not signature:
        return False

    expected = "sha256=" + hmac.new(
        settings.github_webhook_secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)

def parse_webhook_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Extract relevant info from GitHub push webhook payload."""
    repo = payload.get("repository", {})
    head_commit = payload.get("head_commit") or {}

    return {
        "repo_name": repo.get("name", ""),
        "repo_full_name": repo.get("full_name", ""),
        "clone_url": repo.get("clone_url", ""),
        "commit_sha": head_commit.get("id", payload.get("after", "")),
        "branch": normalize_branch(payload.get("ref", "")),
        "commit_message": head_commit.get("message", ""),
        "pusher": payload.get("pusher", {}).get("name", ""),
    }

def parse_pull_request_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extract relevant info from a pull_request payload.
    The branch is the PR's base branch, the commit is its head.
    """
    repo = payload.get("repository", {})
    pull_request = payload.get("pull_request", {})

    return {
        "repo_name": repo.get("name", ""),
        "repo_full_name": repo.get("full_name", ""),
        "clone_url": repo.get("clone_url", ""),
        "commit_sha": pull_request.get("head", {}).get("sha", ""),
        "branch": pull_request.get("base", {}).get("ref", ""),
        "action": payload.get("action", ""),
        "pusher": payload.get("sender", {}).get("login", ""),
    }

def event_from_webhook(github_event: Optional[str], payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Turn a webhook delivery into webhook data plus a TriggerEvent under
    the "trigger" key. Returns None for events that never start a run.
    """
    event_type = GITHUB_EVENTS.get(github_event or "")
    if event_type is None:
        return None

    if event_type == EventType.PULL_REQUEST:
        if payload.get("action") not in PULL_REQUEST_ACTIONS:
            return None
        webhook_data = parse_pull_request_payload(payload)
    else:
        webhook_data = parse_webhook_payload(payload)

    webhook_data["trigger"] = TriggerEvent(
        event_type=event_type,
        branch=webhook_data["branch"] or None,
        commit_sha=webhook_data["commit_sha"] or None,
        actor=webhook_data["pusher"] or None,
    )
    return webhook_data

def find_workflow_file(repo_path: str) -> Optional[str]:
    """
    Locate the workflow file in a repository.
    Returns its path or None if not found.
    """
    for name in settings.workflow_files:
        config_path = os.path.join(repo_path, name)
        if os.path.exists(config_path):
            return config_path

    return None
