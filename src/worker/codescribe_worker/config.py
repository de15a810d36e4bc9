import os
from dataclasses import dataclass

# Broker / result backend for the queue-driven continuation
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://redis:6379/0")

# Job store
JOB_STORE = os.environ.get("JOB_STORE", "redis")
REDIS_URL = os.environ.get("REDIS_URL", "redis://redis:6379/1")
JOB_TTL_SECONDS = int(os.environ.get("JOB_TTL_SECONDS", str(7 * 24 * 60 * 60)))

# Continuation dispatch
DISPATCH_MODE = os.environ.get("DISPATCH_MODE", "celery")
PROCESSOR_WEBHOOK_URL = os.environ.get(
    "PROCESSOR_WEBHOOK_URL", "http://localhost:8000/api/webhooks/processor"
)
CONTINUATION_SECRET = os.environ.get("CONTINUATION_SECRET", "")
DISPATCH_DELAY_MS = int(os.environ.get("DISPATCH_DELAY_MS", "100"))

# Invocation budget
MAX_EXECUTION_MS = int(os.environ.get("MAX_EXECUTION_MS", "8000"))
SAFETY_MARGIN_MS = int(os.environ.get("SAFETY_MARGIN_MS", "1000"))

# Chunking
MAX_CHUNK_SIZE = int(os.environ.get("MAX_CHUNK_SIZE", "200"))
SMALL_WORK_THRESHOLD = int(os.environ.get("SMALL_WORK_THRESHOLD", "30"))
CHUNK_CAP = int(os.environ.get("CHUNK_CAP", "10"))
DISCOVERY_CEILING = int(os.environ.get("DISCOVERY_CEILING", "500"))

# GitHub
GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN", "")
GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")
GITHUB_WEBHOOK_SECRET = os.environ.get("GITHUB_WEBHOOK_SECRET", "")
# Link appended to pull request review comments; {job_id} is substituted
REVIEW_URL_TEMPLATE = os.environ.get("REVIEW_URL_TEMPLATE", "")

# LLM
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TEMPERATURE = float(os.environ.get("OPENAI_TEMPERATURE", "0.3"))
LLM_TIMEOUT_SECONDS = float(os.environ.get("LLM_TIMEOUT_SECONDS", "60"))

# HTTP server (codescribe-api)
API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class Settings:
    """Runtime knobs for one process. Built from the environment by default."""

    job_store: str = JOB_STORE
    redis_url: str = REDIS_URL
    job_ttl_seconds: int = JOB_TTL_SECONDS

    dispatch_mode: str = DISPATCH_MODE
    processor_webhook_url: str = PROCESSOR_WEBHOOK_URL
    continuation_secret: str = CONTINUATION_SECRET
    dispatch_delay_ms: int = DISPATCH_DELAY_MS

    max_execution_ms: int = MAX_EXECUTION_MS
    safety_margin_ms: int = SAFETY_MARGIN_MS

    max_chunk_size: int = MAX_CHUNK_SIZE
    small_work_threshold: int = SMALL_WORK_THRESHOLD
    chunk_cap: int = CHUNK_CAP
    discovery_ceiling: int = DISCOVERY_CEILING

    github_token: str = GITHUB_TOKEN
    github_api_url: str = GITHUB_API_URL
    github_webhook_secret: str = GITHUB_WEBHOOK_SECRET
    review_url_template: str = REVIEW_URL_TEMPLATE

    openai_model: str = OPENAI_MODEL
    openai_temperature: float = OPENAI_TEMPERATURE
    llm_timeout_seconds: float = LLM_TIMEOUT_SECONDS


def load_settings(**overrides) -> Settings:
    """Return settings from the environment, with keyword overrides applied."""
    return Settings(**overrides)
