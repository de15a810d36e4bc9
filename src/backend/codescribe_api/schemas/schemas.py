from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DocumentationRequest(CamelModel):
    owner: str = Field(..., min_length=1, description="Repository owner (user or organization)")
    repo: str = Field(..., min_length=1, description="Repository name")
    branch: str = Field("main", min_length=1)
    file_paths: list[str] | None = Field(None, alias="filePaths", description="Explicit files; skips listing")
    requested_by: str | None = Field(None, alias="requestedBy")


class ReviewRequest(CamelModel):
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    pull_number: int = Field(..., ge=1, alias="pullNumber")
    branch: str = Field("main", min_length=1)
    requested_by: str | None = Field(None, alias="requestedBy")


class JobSubmitResponse(CamelModel):
    job_id: str = Field(..., alias="jobId")
    status: str
    message: str | None = None


class JobStatusResponse(CamelModel):
    job_id: str = Field(..., alias="jobId")
    kind: str
    status: str
    progress: int
    files_processed: int = Field(0, alias="filesProcessed")
    total_files: int | None = Field(None, alias="totalFiles")
    total_chunks: int | None = Field(None, alias="totalChunks")
    result: dict | None = None
    error: str | None = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    completed_at: datetime | None = Field(None, alias="completedAt")


class WebhookResponse(CamelModel):
    status: str
    message: str
    job_id: str | None = Field(None, alias="jobId")
