"""
Pull request review workflow:
fetch_pr -> analyze -> suggest -> explain -> summarize -> persist
"""

import json
from typing import Protocol

from .llm import CompletionClient
from .models import RepositoryRef
from .pipeline import ChunkPipelineState, PersistStage, Stage, Workflow
from .store import JobStore

# Patch text sent to the model is capped per file
MAX_PATCH_CHARS = 8000

REVIEW_MERGE_RULES = {
    "issues": lambda i: (i.get("file"), i.get("description")),
    "suggestions": lambda s: (s.get("file"), s.get("title")),
    "explanations": lambda e: e.get("file"),
}

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


class PullRequestSource(Protocol):
    def fetch_pull_changes(self, repository: RepositoryRef, paths: list[str]) -> dict:
        ...


class ReviewState(ChunkPipelineState, total=False):
    pr_data: dict
    analysis: dict
    suggestions: dict
    explanation: dict
    summary: dict


def code_diff(pr_data: dict) -> str:
    parts = []
    for change in pr_data.get("changes", []):
        patch = change.get("patch") or "Binary file changed"
        if len(patch) > MAX_PATCH_CHARS:
            patch = patch[:MAX_PATCH_CHARS] + "\n... (truncated for brevity)"
        parts.append(f"File: {change['filename']}\n{patch}")
    return "\n\n".join(parts)


def _records(raw, key: str) -> list:
    if isinstance(raw, dict):
        raw = raw.get(key)
    return [r for r in raw if isinstance(r, dict)] if isinstance(raw, list) else []


def normalize_issues(raw) -> dict:
    return {
        "issues": [
            {
                "file": i.get("file", ""),
                "line": i.get("line"),
                "category": i.get("category") or "bug",
                "severity": i.get("severity") if i.get("severity") in SEVERITY_ORDER else "medium",
                "description": i.get("description", ""),
            }
            for i in _records(raw, "issues")
        ]
    }


def normalize_suggestions(raw) -> dict:
    return {
        "suggestions": [
            {
                "file": s.get("file", ""),
                "title": s.get("title") or "Suggestion",
                "description": s.get("description", ""),
                "suggestedCode": s.get("suggestedCode", ""),
            }
            for s in _records(raw, "suggestions")
        ]
    }


def normalize_explanations(raw) -> dict:
    return {
        "explanations": [
            {"file": e.get("file", ""), "explanation": e.get("explanation", "")}
            for e in _records(raw, "explanations")
        ]
    }


def normalize_summary(raw) -> dict:
    raw = raw if isinstance(raw, dict) else {}
    key_points = raw.get("keyPoints")
    return {
        "overview": raw.get("overview") or "Code review completed",
        "keyPoints": [p for p in key_points if isinstance(p, str)] if isinstance(key_points, list) else [],
        "riskLevel": raw.get("riskLevel") if raw.get("riskLevel") in SEVERITY_ORDER else "medium",
    }


def review_contribution(state: dict) -> dict:
    contribution = {
        "issues": (state.get("analysis") or {}).get("issues", []),
        "suggestions": (state.get("suggestions") or {}).get("suggestions", []),
        "explanations": (state.get("explanation") or {}).get("explanations", []),
        "metadata": {
            "filesReviewed": state["files_processed"],
            "totalFiles": state["total_files"],
            "chunksCompleted": state["chunk_index"] + 1,
            "totalChunks": state["total_chunks"],
        },
    }
    if state.get("pr_data"):
        contribution["pullRequest"] = state["pr_data"]["pull_request"]
    if state.get("summary"):
        contribution["summary"] = state["summary"]
    return contribution


def build_review_workflow(llm: CompletionClient, source: PullRequestSource, store: JobStore) -> Workflow:
    def fetch_pr(state):
        return source.fetch_pull_changes(state["repository"], state["file_paths"])

    def analyze(state):
        pr = state["pr_data"]["pull_request"]
        raw = llm.complete("review_analyze", {
            "pr_number": pr.get("number"),
            "pr_title": pr.get("title", ""),
            "pr_description": pr.get("description", ""),
            "code_diff": code_diff(state["pr_data"]),
        })
        return normalize_issues(raw)

    def suggest(state):
        raw = llm.complete("review_suggest", {
            "code_analysis": json.dumps(state["analysis"]),
            "code_diff": code_diff(state["pr_data"]),
        })
        return normalize_suggestions(raw)

    def explain(state):
        raw = llm.complete("review_explain", {"code_diff": code_diff(state["pr_data"])})
        return normalize_explanations(raw)

    def summarize(state):
        pr = state["pr_data"]["pull_request"]
        previous = (state.get("previous_result") or {}).get("issues", [])
        raw = llm.complete("review_summarize", {
            "pr_number": pr.get("number"),
            "pr_title": pr.get("title", ""),
            "files_changed": state["total_files"],
            "previous_issues": json.dumps(previous),
            "code_analysis": json.dumps(state["analysis"]),
            "improvement_suggestions": json.dumps(state["suggestions"]),
        })
        return normalize_summary(raw)

    stages = [
        Stage("fetch_pr", fetch_pr, "pr_data", requires=("repository", "file_paths")),
        Stage("analyze", analyze, "analysis", requires=("pr_data",)),
        Stage("suggest", suggest, "suggestions", requires=("analysis", "pr_data")),
        Stage("explain", explain, "explanation", requires=("pr_data",)),
        Stage("summarize", summarize, "summary", requires=("analysis", "suggestions", "pr_data")),
    ]
    persist = PersistStage(store, review_contribution, REVIEW_MERGE_RULES)
    return Workflow("review", ReviewState, stages, persist)
