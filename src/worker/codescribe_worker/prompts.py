"""
Minimal prompt templates, one per delegated LLM task.

Every template asks for a bare JSON document so the completion client can
parse the reply without a schema library.
"""

_JSON_ONLY = "Return ONLY valid JSON (no markdown, no code blocks, no explanations)."

PROMPTS: dict[str, str] = {
    "doc_analyze": """Analyze the structure of the following code files.

Repository: {repository}
Parsed components: {components}

Code:
{code}

{json_only}
Structure:
{{
  "components": [{{"componentId": "...", "type": "function|class|module", "filePath": "...", "purpose": "...", "dependencies": ["..."]}}],
  "architecture": {{"layers": ["..."], "modules": ["..."], "description": "..."}}
}}""",
    "doc_generate": """Write reference documentation for the analyzed components.

Repository: {repository}
Analysis: {analysis}

{json_only}
Structure:
{{
  "overview": "...",
  "components": [{{"componentId": "...", "filePath": "...", "description": "...", "usage": "...", "examples": ["..."]}}],
  "architecture": "...",
  "usageGuide": "..."
}}""",
    "doc_quality": """Assess the quality of this documentation against the code analysis.

Documentation: {documentation}
Analysis: {analysis}

{json_only}
Structure:
{{"score": 0-100, "coverage": 0-100, "clarity": 0-100, "completeness": 0-100, "consistency": 0-100,
  "improvements": [{{"componentId": "...", "suggestion": "...", "priority": "high|medium|low"}}]}}""",
    "doc_gaps": """List code components that lack documentation.

Documentation: {documentation}
Analysis: {analysis}

{json_only}
Structure:
[{{"componentName": "...", "componentType": "...", "filePath": "...", "severity": "critical|high|medium|low", "suggestedDocumentation": "..."}}]""",
    "doc_diagram": """Describe architecture diagrams for this code analysis as Mermaid source.

Analysis: {analysis}

{json_only}
Structure:
[{{"type": "flowchart|sequence|class", "title": "...", "description": "...", "content": "mermaid source"}}]""",
    "review_analyze": """Review the following pull request changes for bugs, security issues and code smells.

Pull request #{pr_number}: {pr_title}
Description: {pr_description}

Changes:
{code_diff}

{json_only}
Structure:
{{"issues": [{{"file": "...", "line": 0, "category": "bug|security|performance|style", "severity": "high|medium|low", "description": "..."}}]}}""",
    "review_suggest": """Suggest concrete improvements for these changes.

Analysis: {code_analysis}

Changes:
{code_diff}

{json_only}
Structure:
{{"suggestions": [{{"file": "...", "title": "...", "description": "...", "suggestedCode": "..."}}]}}""",
    "review_explain": """Explain in plain English what each changed file does in this pull request.

Changes:
{code_diff}

{json_only}
Structure:
{{"explanations": [{{"file": "...", "explanation": "..."}}]}}""",
    "review_summarize": """Summarize the review of pull request #{pr_number}: {pr_title}.

Files changed: {files_changed}
Issues found in earlier batches: {previous_issues}
Analysis: {code_analysis}
Suggestions: {improvement_suggestions}

{json_only}
Structure:
{{"overview": "...", "keyPoints": ["..."], "riskLevel": "high|medium|low"}}""",
}


def render(task: str, variables: dict) -> str:
    try:
        template = PROMPTS[task]
    except KeyError:
        raise ValueError(f"Unknown completion task: {task}")
    return template.format(json_only=_JSON_ONLY, **variables)
