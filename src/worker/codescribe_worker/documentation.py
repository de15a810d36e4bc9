"""
Documentation workflow:
fetch_code -> parse -> analyze -> generate -> assess_quality -> detect_gaps -> diagram -> persist
"""

import json
from typing import Protocol

from .llm import CompletionClient
from .models import RepositoryRef
from .parsing import StructureParser
from .pipeline import ChunkPipelineState, PersistStage, Stage, Workflow
from .store import JobStore

# Per-file cap on source sent to the model
MAX_FILE_CHARS = 10000

DOCUMENTATION_MERGE_RULES = {
    "components": lambda c: c.get("componentId"),
    "missingDocs": lambda m: (m.get("filePath"), m.get("componentName")),
    "diagrams": lambda d: d.get("title"),
    "files": lambda f: f.get("path"),
}


class SourceFetcher(Protocol):
    def fetch_files(self, repository: RepositoryRef, paths: list[str]) -> dict[str, str]:
        ...


class DocumentationState(ChunkPipelineState, total=False):
    code_content: dict
    parsed_components: list
    code_analysis: dict
    documentation: dict
    quality_assessment: dict
    missing_docs: list
    diagrams: list


def code_blob(code_content: dict[str, str]) -> str:
    parts = []
    for path, content in code_content.items():
        if len(content) > MAX_FILE_CHARS:
            content = content[:MAX_FILE_CHARS] + "\n... (truncated for brevity)"
        parts.append(f"File: {path}\n{content}")
    return "\n\n".join(parts)


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


def normalize_analysis(raw) -> dict:
    raw = raw if isinstance(raw, dict) else {}
    components = [
        {
            "componentId": c.get("componentId") or c.get("name") or "",
            "type": c.get("type", "module"),
            "filePath": c.get("filePath", ""),
            "purpose": c.get("purpose", ""),
            "dependencies": _as_list(c.get("dependencies")),
        }
        for c in _as_list(raw.get("components"))
        if isinstance(c, dict)
    ]
    architecture = raw.get("architecture") if isinstance(raw.get("architecture"), dict) else {}
    return {
        "components": components,
        "architecture": {
            "layers": _as_list(architecture.get("layers")),
            "modules": _as_list(architecture.get("modules")),
            "description": architecture.get("description", ""),
        },
    }


def normalize_documentation(raw) -> dict:
    raw = raw if isinstance(raw, dict) else {}
    return {
        "overview": raw.get("overview") or "Documentation overview",
        "components": [
            {
                "componentId": c.get("componentId", ""),
                "filePath": c.get("filePath", ""),
                "description": c.get("description", ""),
                "usage": c.get("usage", ""),
                "examples": _as_list(c.get("examples")),
            }
            for c in _as_list(raw.get("components"))
            if isinstance(c, dict)
        ],
        "architecture": raw.get("architecture") or "",
        "usageGuide": raw.get("usageGuide") or "",
    }


def normalize_quality(raw) -> dict:
    raw = raw if isinstance(raw, dict) else {}
    quality = {key: raw.get(key) or 0 for key in ("score", "coverage", "clarity", "completeness", "consistency")}
    quality["improvements"] = [
        {
            "title": i.get("componentId") or "Improvement",
            "description": i.get("suggestion") or "Suggested improvement",
            "priority": i.get("priority") or "medium",
        }
        for i in _as_list(raw.get("improvements"))
        if isinstance(i, dict)
    ]
    return quality


def normalize_missing_docs(raw) -> list:
    return [
        {
            "componentName": m.get("componentName") or "unknown",
            "componentType": m.get("componentType") or "unknown",
            "filePath": m.get("filePath") or "unknown",
            "severity": m.get("severity") or "medium",
            "suggestedDocumentation": m.get("suggestedDocumentation") or "Documentation needed",
        }
        for m in _as_list(raw)
        if isinstance(m, dict)
    ]


def normalize_diagrams(raw) -> list:
    return [
        {
            "type": d.get("type") or "diagram",
            "title": d.get("title") or "Untitled",
            "description": d.get("description") or "",
            "content": d.get("content") or "",
        }
        for d in _as_list(raw)
        if isinstance(d, dict)
    ]


def documentation_contribution(state: dict) -> dict:
    """The part of the cumulative job result produced by this chunk."""
    documentation = state.get("documentation") or {}
    contribution = {
        "components": documentation.get("components", []),
        "missingDocs": state.get("missing_docs", []),
        "diagrams": state.get("diagrams", []),
        "files": [
            {
                "path": c["filePath"],
                "language": c.get("language"),
                "lines": c.get("lines", 0),
                "symbols": [s["name"] for s in c.get("symbols", [])],
            }
            for c in state.get("parsed_components", [])
        ],
        "metadata": {
            "filesProcessed": state["files_processed"],
            "totalFiles": state["total_files"],
            "chunksCompleted": state["chunk_index"] + 1,
            "totalChunks": state["total_chunks"],
        },
    }
    if documentation:
        contribution["overview"] = documentation.get("overview", "")
        contribution["architecture"] = documentation.get("architecture", "")
        contribution["usageGuide"] = documentation.get("usageGuide", "")
    if state.get("quality_assessment"):
        contribution["qualityAssessment"] = state["quality_assessment"]
    return contribution


def build_documentation_workflow(
    llm: CompletionClient,
    source: SourceFetcher,
    parser: StructureParser,
    store: JobStore,
) -> Workflow:
    def fetch_code(state):
        return source.fetch_files(state["repository"], state["file_paths"])

    def parse(state):
        return parser.parse(state["code_content"])

    def analyze(state):
        raw = llm.complete("doc_analyze", {
            "repository": state["repository"].full_name,
            "components": json.dumps(state["parsed_components"]),
            "code": code_blob(state["code_content"]),
        })
        return normalize_analysis(raw)

    def generate(state):
        raw = llm.complete("doc_generate", {
            "repository": state["repository"].full_name,
            "analysis": json.dumps(state["code_analysis"]),
        })
        return normalize_documentation(raw)

    def assess_quality(state):
        raw = llm.complete("doc_quality", {
            "documentation": json.dumps(state["documentation"]),
            "analysis": json.dumps(state["code_analysis"]),
        })
        return normalize_quality(raw)

    def detect_gaps(state):
        raw = llm.complete("doc_gaps", {
            "documentation": json.dumps(state["documentation"]),
            "analysis": json.dumps(state["code_analysis"]),
        })
        return normalize_missing_docs(raw)

    def diagram(state):
        raw = llm.complete("doc_diagram", {"analysis": json.dumps(state["code_analysis"])})
        return normalize_diagrams(raw)

    stages = [
        Stage("fetch_code", fetch_code, "code_content", requires=("repository", "file_paths")),
        Stage("parse", parse, "parsed_components", requires=("code_content",)),
        Stage("analyze", analyze, "code_analysis", requires=("code_content", "parsed_components")),
        Stage("generate", generate, "documentation", requires=("code_analysis",)),
        Stage("assess_quality", assess_quality, "quality_assessment", requires=("documentation", "code_analysis")),
        Stage("detect_gaps", detect_gaps, "missing_docs", requires=("documentation", "code_analysis")),
        Stage("diagram", diagram, "diagrams", requires=("code_analysis",)),
    ]
    persist = PersistStage(store, documentation_contribution, DOCUMENTATION_MERGE_RULES)
    return Workflow("documentation", DocumentationState, stages, persist)
