"""
Continuation dispatch: schedules the next invocation of the chunk processor.

Dispatch is fire-and-forget. A failure is logged and reported to the
caller as `False`; it never fails the job, which stays "processing"
until an external staleness check reconciles it.
"""

import logging
import threading
from typing import Protocol

import httpx

from .errors import DispatchError
from .models import ContinuationRequest

logger = logging.getLogger(__name__)

CONTINUATION_SECRET_HEADER = "X-Continuation-Secret"
PROCESS_CHUNK_TASK = "process_chunk_task"


class Dispatcher(Protocol):
    def dispatch(self, request: ContinuationRequest) -> bool:
        ...


class WebhookDispatcher:
    """
    POSTs the continuation to the processor webhook.

    The send runs on a timer thread after `delay_ms`, so the current
    invocation can finish before the next one starts. With
    background=False the send happens inline (used by tests and scripts).
    """

    def __init__(
        self,
        url: str,
        secret: str = "",
        delay_ms: int = 100,
        timeout: float = 10.0,
        background: bool = True,
        client: httpx.Client | None = None,
    ):
        self.url = url
        self.secret = secret
        self.delay_ms = delay_ms
        self.timeout = timeout
        self.background = background
        self._client = client

    def send(self, request: ContinuationRequest) -> None:
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers[CONTINUATION_SECRET_HEADER] = self.secret
        try:
            if self._client is not None:
                response = self._client.post(self.url, json=request.to_wire(), headers=headers, timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=request.to_wire(), headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DispatchError(
                f"Continuation for job {request.job_id} chunk {request.chunk_index} failed: {str(e)}"
            ) from e

    def _send_logged(self, request: ContinuationRequest) -> bool:
        try:
            self.send(request)
        except DispatchError as e:
            logger.error(f"[DISPATCH] {str(e)}")
            return False
        logger.info(f"[DISPATCH] Job {request.job_id}: {request.trigger} chunk {request.chunk_index} sent")
        return True

    def dispatch(self, request: ContinuationRequest) -> bool:
        if not self.background:
            return self._send_logged(request)
        timer = threading.Timer(self.delay_ms / 1000, self._send_logged, args=(request,))
        timer.daemon = True
        timer.start()
        return True


class CeleryDispatcher:
    """Publishes the continuation as a Celery task with a short countdown."""

    def __init__(self, celery_app, delay_ms: int = 100):
        self.celery_app = celery_app
        self.delay_ms = delay_ms

    def dispatch(self, request: ContinuationRequest) -> bool:
        try:
            self.celery_app.send_task(
                PROCESS_CHUNK_TASK,
                args=[request.to_wire()],
                countdown=self.delay_ms / 1000,
            )
        except Exception as e:
            logger.error(
                f"[DISPATCH] Job {request.job_id}: failed to enqueue chunk {request.chunk_index}: {str(e)}"
            )
            return False
        logger.info(f"[DISPATCH] Job {request.job_id}: {request.trigger} chunk {request.chunk_index} enqueued")
        return True


def build_dispatcher(settings, celery_app=None) -> Dispatcher:
    if settings.dispatch_mode == "webhook":
        return WebhookDispatcher(
            settings.processor_webhook_url,
            secret=settings.continuation_secret,
            delay_ms=settings.dispatch_delay_ms,
        )
    if celery_app is None:
        from .celery_app import app as celery_app
    return CeleryDispatcher(celery_app, delay_ms=settings.dispatch_delay_ms)
