from celery.utils.log import get_task_logger
from pydantic import ValidationError

from .celery_app import app
from .config import load_settings
from .dispatcher import CeleryDispatcher
from .errors import JobNotFoundError
from .log import init_logger
from .models import ContinuationRequest
from .processor import ChunkProcessor, build_processor

logger = get_task_logger(__name__)

_processor: ChunkProcessor | None = None


def get_processor() -> ChunkProcessor:
    """One processor per worker process, continuing through this Celery app."""
    global _processor
    if _processor is None:
        init_logger()
        settings = load_settings()
        _processor = build_processor(
            settings,
            dispatcher=CeleryDispatcher(app, delay_ms=settings.dispatch_delay_ms),
        )
    return _processor


def set_processor(processor: ChunkProcessor | None) -> None:
    global _processor
    _processor = processor


@app.task(name="process_chunk_task")
def process_chunk_task(payload: dict) -> dict:
    """
    Run one continuation (start or process) for a job.

    Args:
        payload: Continuation body in wire form (jobId, trigger, chunkIndex, ...)

    Returns:
        The processor response body, or {"success": False, "error": ...}
    """
    try:
        request = ContinuationRequest.model_validate(payload)
    except ValidationError as e:
        logger.error(f"[TASK] Rejected malformed continuation: {str(e)}")
        return {"success": False, "error": "Malformed continuation payload"}

    logger.info(f"[TASK] Job {request.job_id}: {request.trigger} chunk {request.chunk_index}")
    try:
        result = get_processor().handle(request)
    except JobNotFoundError as e:
        logger.error(f"[TASK] {str(e)}")
        return {"success": False, "error": str(e)}

    logger.info(f"[TASK] Job {request.job_id}: {result.outcome} - {result.message}")
    return result.to_response()
