"""
Discovery stage: enumerate, filter and truncate the work items of a job.

The same remote listing must always produce the same work-item list,
because later invocations only carry the remaining paths and rely on
the original order for chunk boundaries.
"""

import logging
from pathlib import PurePosixPath
from typing import Iterable, Protocol

from .errors import DiscoveryError
from .models import RepositoryRef, WorkItem

logger = logging.getLogger(__name__)

# Path segments that never contain hand-written source
EXCLUDE_DIRS = {
    ".git", "node_modules", "__pycache__", ".venv", "venv", "env", ".env",
    "dist", "build", "out", "target", "vendor", "coverage", "htmlcov",
    ".next", ".nuxt", ".tox", ".pytest_cache", ".mypy_cache", "bower_components",
}

EXCLUDE_EXTENSIONS = {
    ".pyc", ".pyo", ".pyd", ".so", ".dll", ".exe", ".bin", ".class", ".jar",
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".ico", ".webp",
    ".pdf", ".zip", ".tar", ".gz", ".mp4", ".mp3", ".woff", ".woff2", ".ttf",
    ".lock", ".map",
}

CODE_EXTENSIONS = {
    ".py", ".js", ".ts", ".jsx", ".tsx", ".mjs", ".go", ".rs",
    ".java", ".cpp", ".c", ".h", ".hpp", ".cs", ".rb",
    ".php", ".swift", ".kt", ".scala", ".vue", ".svelte", ".sql", ".sh",
    ".json", ".yaml", ".yml", ".toml", ".xml", ".html", ".css", ".scss",
}

SPECIAL_FILES = {"Dockerfile", "Makefile", "Procfile"}

CONFIG_PATTERNS = [
    "package.json", "requirements.txt", "dockerfile", "docker-compose",
    "setup.py", "setup.cfg", "pyproject.toml", "cargo.toml", "go.mod", "pom.xml",
    "build.gradle", "tsconfig.json", "webpack.config", "vite.config", "next.config",
    "makefile", ".github/workflows",
]
ENTRYPOINT_NAMES = {
    "main.py", "app.py", "server.py", "manage.py", "__main__.py", "wsgi.py", "asgi.py",
    "index.js", "index.ts", "index.tsx", "main.js", "main.ts", "app.js", "app.ts",
    "server.js", "server.ts", "main.go", "main.rs", "lib.rs",
}
TEST_DIRS = {"test", "tests", "__tests__", "spec", "specs", "__mocks__", "fixtures", "e2e"}

# Lower rank survives truncation first
PRIORITY_RANK = {"config": 0, "entrypoint": 0, "source": 1, "other": 2, "test": 3}


class RepositoryLister(Protocol):
    def list_files(self, repository: RepositoryRef) -> list[str]:
        ...


def is_excluded(path: str) -> bool:
    parts = PurePosixPath(path).parts
    if any(part in EXCLUDE_DIRS for part in parts[:-1]):
        return True
    return PurePosixPath(path).suffix.lower() in EXCLUDE_EXTENSIONS


def is_source_like(path: str) -> bool:
    pure = PurePosixPath(path)
    return pure.suffix.lower() in CODE_EXTENSIONS or pure.name in SPECIAL_FILES


def is_test_path(path: str) -> bool:
    pure = PurePosixPath(path)
    name = pure.name.lower()
    if any(part.lower() in TEST_DIRS for part in pure.parts[:-1]):
        return True
    return (
        name.startswith("test_")
        or name.endswith(("_test.py", "_test.go", "_spec.rb"))
        or ".test." in name
        or ".spec." in name
    )


def classify(path: str) -> str:
    """Priority tag for a path: config, entrypoint, test, source or other."""
    lower = path.lower()
    name = PurePosixPath(path).name.lower()
    if is_test_path(path):
        return "test"
    if any(pattern in lower for pattern in CONFIG_PATTERNS):
        return "config"
    if name in ENTRYPOINT_NAMES:
        return "entrypoint"
    if PurePosixPath(path).suffix.lower() in CODE_EXTENSIONS - {".json", ".yaml", ".yml", ".toml", ".xml"}:
        return "source"
    return "other"


class Discovery:
    """
    Turns a raw repository listing into the ordered work items of a job.

    Args:
        lister: Remote listing collaborator (may fail with any error)
        ceiling: Maximum number of work items kept
        source_only: Keep only source-like files (documentation jobs).
            Review jobs keep every non-excluded changed file.
    """

    def __init__(self, lister: RepositoryLister | None, ceiling: int = 500, source_only: bool = True):
        if ceiling < 1:
            raise ValueError(f"ceiling must be a positive integer, got {ceiling}")
        self.lister = lister
        self.ceiling = ceiling
        self.source_only = source_only

    def discover(self, repository: RepositoryRef, explicit_files: list[str] | None = None) -> list[WorkItem]:
        if explicit_files:
            candidates = list(dict.fromkeys(explicit_files))
            logger.info(f"[DISCOVERY] Using {len(candidates)} explicit files for {repository}")
            return self._truncate(candidates)

        if self.lister is None:
            raise DiscoveryError(f"No repository lister configured for {repository}")

        try:
            listing = self.lister.list_files(repository)
        except DiscoveryError:
            raise
        except Exception as e:
            raise DiscoveryError(f"Failed to list files for {repository}: {str(e)}") from e

        candidates = list(self.filter(listing))
        logger.info(
            f"[DISCOVERY] {repository}: {len(listing)} listed, {len(candidates)} after filtering"
        )
        if not candidates:
            logger.warning(f"[DISCOVERY] No candidate files found for {repository}")
        return self._truncate(candidates)

    def filter(self, paths: Iterable[str]) -> Iterable[str]:
        seen = set()
        for path in sorted(paths):
            if path in seen or is_excluded(path):
                continue
            if self.source_only and not is_source_like(path):
                continue
            seen.add(path)
            yield path

    def _truncate(self, paths: list[str]) -> list[WorkItem]:
        tagged = [WorkItem(path=path, priority=classify(path)) for path in paths]
        if len(tagged) <= self.ceiling:
            return tagged

        # sorted() is stable, so paths keep their listing order within a rank
        prioritized = sorted(tagged, key=lambda item: PRIORITY_RANK[item.priority])
        kept = prioritized[: self.ceiling]
        logger.info(
            f"[DISCOVERY] Truncated {len(tagged)} candidates to {len(kept)} "
            f"(ceiling {self.ceiling})"
        )
        return kept
