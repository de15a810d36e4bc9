"""
Process-wide collaborators for the routers.

Each provider is a FastAPI dependency, so tests swap them through
app.dependency_overrides.
"""

from functools import lru_cache

from codescribe_worker.config import Settings, load_settings
from codescribe_worker.dispatcher import Dispatcher, build_dispatcher
from codescribe_worker.processor import ChunkProcessor, build_processor
from codescribe_worker.store import JobStore, build_store


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_store() -> JobStore:
    return build_store(get_settings())


@lru_cache
def get_dispatcher() -> Dispatcher:
    return build_dispatcher(get_settings())


@lru_cache
def get_processor() -> ChunkProcessor:
    return build_processor(get_settings(), store=get_store(), dispatcher=get_dispatcher())
