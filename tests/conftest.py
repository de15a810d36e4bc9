"""Shared test fixtures for the CodeScribe test suite.

Everything runs in-process: an in-memory job store, a scripted LLM, a fake
GitHub source and a dispatcher that records continuations instead of
sending them. No Redis, broker or network access is needed.
"""

import os

# Settings are read at import time; keep every test off Redis and the network.
os.environ["JOB_STORE"] = "memory"
os.environ["DISPATCH_MODE"] = "webhook"
os.environ["CONTINUATION_SECRET"] = ""
os.environ["GITHUB_WEBHOOK_SECRET"] = ""

import copy

import pytest

from codescribe_worker.config import load_settings
from codescribe_worker.discovery import Discovery
from codescribe_worker.documentation import build_documentation_workflow
from codescribe_worker.guard import TimeBudgetGuard
from codescribe_worker.models import ContinuationRequest, RepositoryRef
from codescribe_worker.parsing import RegexStructureParser
from codescribe_worker.processor import ChunkProcessor
from codescribe_worker.review import build_review_workflow
from codescribe_worker.scheduler import ChunkScheduler
from codescribe_worker.store import InMemoryJobStore

DEFAULT_REPLIES = {
    "doc_analyze": {
        "components": [{"componentId": "app", "filePath": "src/app.py", "purpose": "Entry point"}],
        "architecture": {"layers": ["api"], "modules": ["app"], "description": "Single service"},
    },
    "doc_generate": {
        "overview": "A small service",
        "components": [{"componentId": "app", "filePath": "src/app.py", "description": "Starts the server"}],
        "architecture": "One process",
        "usageGuide": "Run it",
    },
    "doc_quality": {"score": 80, "coverage": 70, "clarity": 90, "completeness": 75, "consistency": 85},
    "doc_gaps": [{"componentName": "helper", "filePath": "src/util.py", "severity": "low"}],
    "doc_diagram": [{"type": "flowchart", "title": "Request flow", "content": "graph TD; A-->B"}],
    "review_analyze": {
        "issues": [
            {"file": "src/app.py", "line": 3, "category": "bug", "severity": "high", "description": "Unchecked None"},
        ]
    },
    "review_suggest": {"suggestions": [{"file": "src/app.py", "title": "Guard None", "description": "Add a check"}]},
    "review_explain": {"explanations": [{"file": "src/app.py", "explanation": "Adds a route"}]},
    "review_summarize": {"overview": "Mostly fine", "keyPoints": ["One bug"], "riskLevel": "medium"},
}


class FakeLLM:
    """Scripted CompletionClient: task name -> reply (or exception to raise)."""

    def __init__(self, replies=None):
        self.replies = {**DEFAULT_REPLIES, **(replies or {})}
        self.calls = []

    def complete(self, task, variables):
        self.calls.append((task, variables))
        reply = self.replies[task]
        if isinstance(reply, Exception):
            raise reply
        return copy.deepcopy(reply)

    @property
    def tasks(self):
        return [task for task, _ in self.calls]


class FakeGitHub:
    """Repository lister, source fetcher, PR source and comment poster in one."""

    def __init__(self, files=None, pull_files=None):
        self.files = files if files is not None else ["src/app.py", "src/util.py", "README.md"]
        self.pull_files = pull_files if pull_files is not None else ["src/app.py"]
        self.fetched = []
        self.comments = []
        self.list_error = None
        self.on_fetch = None  # one-shot callback run inside the next fetch

    def list_files(self, repository):
        if self.list_error is not None:
            raise self.list_error
        return list(self.pull_files if repository.pull_number is not None else self.files)

    def fetch_files(self, repository, paths):
        self.fetched.append(list(paths))
        self._run_fetch_hook()
        return {path: f"def handler_{i}():\n    return {i}\n" for i, path in enumerate(paths)}

    def fetch_pull_changes(self, repository, paths):
        self.fetched.append(list(paths))
        self._run_fetch_hook()
        return {
            "pull_request": {"number": repository.pull_number, "title": "Add route", "description": "New route"},
            "changes": [{"filename": path, "status": "modified", "patch": "@@ -1 +1 @@\n+x = 1"} for path in paths],
        }

    def _run_fetch_hook(self):
        hook, self.on_fetch = self.on_fetch, None
        if hook is not None:
            hook()

    def post_issue_comment(self, repository, number, body):
        self.comments.append((repository.full_name, number, body))
        return f"https://github.com/{repository.full_name}/pull/{number}#issuecomment-1"


class RecordingDispatcher:
    def __init__(self, succeed=True):
        self.requests = []
        self.succeed = succeed

    def dispatch(self, request: ContinuationRequest) -> bool:
        self.requests.append(request)
        return self.succeed

    @property
    def last(self) -> ContinuationRequest:
        return self.requests[-1]


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += ms / 1000


@pytest.fixture()
def settings():
    return load_settings(job_store="memory", dispatch_mode="webhook")


@pytest.fixture()
def store():
    return InMemoryJobStore()


@pytest.fixture()
def llm():
    return FakeLLM()


@pytest.fixture()
def github():
    return FakeGitHub()


@pytest.fixture()
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def repository():
    return RepositoryRef(owner="acme", repo="shop", branch="main")


@pytest.fixture()
def pr_repository():
    return RepositoryRef(owner="acme", repo="shop", branch="feature", pull_number=42)


@pytest.fixture()
def make_processor(store, llm, github, dispatcher, clock):
    """Build a ChunkProcessor around the shared fakes; scheduler knobs can be overridden."""

    def _make(max_chunk_size=200, small_work_threshold=30, chunk_cap=10, ceiling=500, max_execution_ms=8000):
        return ChunkProcessor(
            store=store,
            scheduler=ChunkScheduler(max_chunk_size, small_work_threshold, chunk_cap),
            discoveries={
                "documentation": Discovery(github, ceiling=ceiling),
                "review": Discovery(github, ceiling=ceiling, source_only=False),
            },
            workflows={
                "documentation": build_documentation_workflow(llm, github, RegexStructureParser(), store),
                "review": build_review_workflow(llm, github, store),
            },
            dispatcher=dispatcher,
            guard_factory=lambda: TimeBudgetGuard(max_execution_ms, 1000, clock=clock),
            comment_poster=github,
            review_url_template="https://codescribe.dev/reviews/{job_id}",
        )

    return _make
