"""Pydantic schemas for API request/response validation."""
from .schemas import (
    DocumentationRequest,
    JobStatusResponse,
    JobSubmitResponse,
    ReviewRequest,
    WebhookResponse,
)

__all__ = [
    "DocumentationRequest",
    "JobStatusResponse",
    "JobSubmitResponse",
    "ReviewRequest",
    "WebhookResponse",
]
