"""Continuation webhook and GitHub pull request webhook."""

import hashlib
import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from codescribe_worker.config import Settings
from codescribe_worker.dispatcher import CONTINUATION_SECRET_HEADER, Dispatcher
from codescribe_worker.errors import IntakeValidationError, JobNotFoundError
from codescribe_worker.guard import TimeBudgetGuard
from codescribe_worker.models import ContinuationRequest, RepositoryRef
from codescribe_worker.processor import ChunkProcessor
from codescribe_worker.store import JobStore

from ..schemas import WebhookResponse
from .deps import get_dispatcher, get_processor, get_settings, get_store
from .intake import start_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

REVIEW_ACTIONS = ("opened", "synchronize")


def _verify_github_signature(payload: bytes, signature_header: str, secret: str) -> bool:
    """
    Verify GitHub webhook HMAC-SHA256 signature.

    Args:
        payload: Raw request body bytes
        signature_header: Value of X-Hub-Signature-256 header
        secret: Webhook secret configured in GitHub

    Returns:
        True if signature is valid
    """
    if not signature_header or not signature_header.startswith("sha256="):
        return False

    expected_sig = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected_sig, signature_header[7:])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/processor")
async def process_continuation(
    request: Request,
    settings: Settings = Depends(get_settings),
    processor: ChunkProcessor = Depends(get_processor),
):
    """
    Run one continuation of a chunked job.

    trigger="start" discovers and plans the job, then processes chunk 0;
    trigger="process" resumes at chunkIndex with the carried counters.
    """
    # the invocation budget counts from arrival
    guard = TimeBudgetGuard.from_settings(settings)

    if settings.continuation_secret:
        received = request.headers.get(CONTINUATION_SECRET_HEADER, "")
        if not hmac.compare_digest(received, settings.continuation_secret):
            logger.warning("[WEBHOOK] Continuation rejected: bad secret")
            return _error(401, "Unauthorized")

    try:
        continuation = ContinuationRequest.model_validate(await request.json())
    except ValueError as e:
        # json decode errors and pydantic ValidationError are both ValueErrors
        detail = "; ".join(err["msg"] for err in e.errors()) if isinstance(e, ValidationError) else "Invalid JSON"
        return _error(422, f"Malformed continuation: {detail}")

    try:
        result = await run_in_threadpool(processor.handle, continuation, guard)
    except JobNotFoundError as e:
        return _error(404, str(e))
    except Exception as e:
        logger.exception(f"[WEBHOOK] Continuation for job {continuation.job_id} failed")
        return _error(500, f"Processing failed: {str(e)}")

    if result.outcome == "rejected":
        return _error(409, result.message)
    return result.to_response()


@router.post("/github", response_model=WebhookResponse)
async def github_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: JobStore = Depends(get_store),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Receive GitHub pull_request webhooks and start review jobs.

    Only "opened" and "synchronize" actions create a job; a PR that
    already has an active review keeps it.
    """
    body = await request.body()

    webhook_secret = settings.github_webhook_secret
    if webhook_secret:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not _verify_github_signature(body, signature, webhook_secret):
            logger.warning("[WEBHOOK] GitHub signature verification failed")
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
    else:
        logger.warning("[WEBHOOK] GITHUB_WEBHOOK_SECRET not configured, skipping signature verification")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_type = request.headers.get("X-GitHub-Event", "")
    action = payload.get("action")
    if event_type != "pull_request" or action not in REVIEW_ACTIONS:
        return WebhookResponse(status="ignored", message=f"Event '{event_type}' ({action}) ignored")

    pull_request = payload.get("pull_request") or {}
    repo_data = payload.get("repository") or {}
    owner = (repo_data.get("owner") or {}).get("login")
    if not owner or not repo_data.get("name") or not pull_request.get("number"):
        raise HTTPException(status_code=400, detail="Pull request payload is missing repository or number")

    repository = RepositoryRef(
        owner=owner,
        repo=repo_data["name"],
        branch=(pull_request.get("head") or {}).get("ref") or "main",
        pull_number=pull_request["number"],
    )
    requested_by = (payload.get("sender") or {}).get("login")

    try:
        job, created = await run_in_threadpool(
            start_job, store, dispatcher, "review", repository, None, requested_by
        )
    except IntakeValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if not created:
        return WebhookResponse(status="duplicate", job_id=job.id, message=f"Review already running for {repository}")
    return WebhookResponse(status="queued", job_id=job.id, message=f"Review job started for {repository}")
