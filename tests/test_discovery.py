"""Tests for work-item discovery: filtering, explicit files and truncation."""

import pytest

from codescribe_worker.discovery import Discovery, classify, is_excluded
from codescribe_worker.errors import DiscoveryError


class StaticLister:
    def __init__(self, paths=None, error=None):
        self.paths = paths or []
        self.error = error
        self.calls = 0

    def list_files(self, repository):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.paths)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestFiltering:
    def test_excludes_vendor_and_binary_paths(self):
        assert is_excluded("node_modules/react/index.js")
        assert is_excluded("src/__pycache__/app.cpython-311.pyc")
        assert is_excluded("assets/logo.png")
        assert not is_excluded("src/app.py")

    def test_keeps_source_like_files_sorted(self, repository):
        lister = StaticLister([
            "src/b.py", "README.md", "src/a.ts", "dist/bundle.js", "Dockerfile", "docs/guide.txt", "src/a.ts",
        ])
        items = Discovery(lister).discover(repository)
        assert [item.path for item in items] == ["Dockerfile", "src/a.ts", "src/b.py"]

    def test_review_discovery_keeps_non_source_changes(self, pr_repository):
        lister = StaticLister(["README.md", "src/app.py", "logo.png"])
        items = Discovery(lister, source_only=False).discover(pr_repository)
        assert [item.path for item in items] == ["README.md", "src/app.py"]

    def test_same_listing_same_items(self, repository):
        lister = StaticLister(["z.py", "a.py", "m/b.js"])
        discovery = Discovery(lister)
        assert discovery.discover(repository) == discovery.discover(repository)

    def test_empty_repository_yields_no_items(self, repository):
        assert Discovery(StaticLister(["README.md"])).discover(repository) == []


# ---------------------------------------------------------------------------
# Explicit files and failures
# ---------------------------------------------------------------------------


class TestExplicitFilesAndErrors:
    def test_explicit_files_skip_listing(self, repository):
        lister = StaticLister(["other.py"])
        items = Discovery(lister).discover(repository, ["b.py", "a.py", "b.py"])
        assert [item.path for item in items] == ["b.py", "a.py"]
        assert lister.calls == 0

    def test_listing_failure_becomes_discovery_error(self, repository):
        lister = StaticLister(error=RuntimeError("API rate limit exceeded"))
        with pytest.raises(DiscoveryError, match="rate limit"):
            Discovery(lister).discover(repository)

    def test_missing_lister(self, repository):
        with pytest.raises(DiscoveryError):
            Discovery(None).discover(repository)


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------


class TestTruncation:
    def test_classify(self):
        assert classify("package.json") == "config"
        assert classify("src/main.py") == "entrypoint"
        assert classify("tests/test_app.py") == "test"
        assert classify("src/models.py") == "source"
        assert classify("data/seed.json") == "other"

    def test_ceiling_prefers_config_and_entrypoints_over_tests(self, repository):
        paths = [f"tests/test_{i}.py" for i in range(5)] + [f"src/mod_{i}.py" for i in range(5)]
        paths += ["pyproject.toml", "src/main.py"]
        items = Discovery(StaticLister(paths), ceiling=4).discover(repository)
        kept = [item.path for item in items]
        assert len(kept) == 4
        assert kept[:2] == ["pyproject.toml", "src/main.py"]
        assert all(not path.startswith("tests/") for path in kept)

    def test_under_ceiling_keeps_sorted_order(self, repository):
        items = Discovery(StaticLister(["tests/test_a.py", "pyproject.toml"]), ceiling=10).discover(repository)
        assert [item.path for item in items] == ["pyproject.toml", "tests/test_a.py"]
