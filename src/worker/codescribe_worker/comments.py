import logging
from typing import Protocol

from .models import Job, RepositoryRef

logger = logging.getLogger(__name__)

TOP_ISSUES = 3
SEVERITY_RANK = {"high": 1, "medium": 2, "low": 3}


class CommentPoster(Protocol):
    def post_issue_comment(self, repository: RepositoryRef, number: int, body: str) -> str:
        ...


def render_review_comment(result: dict, review_url: str | None = None) -> str:
    """Markdown summary of a completed review for the originating pull request."""
    body = "## AI Code Review\n\n"

    summary = result.get("summary") or {}
    if summary:
        body += f"### Summary\n\n{summary.get('overview', '')}\n\n"
        if summary.get("keyPoints"):
            body += "**Key Points:**\n"
            body += "".join(f"- {point}\n" for point in summary["keyPoints"])
            body += "\n"

    issues = sorted(
        result.get("issues", []),
        key=lambda issue: SEVERITY_RANK.get(issue.get("severity"), 3),
    )[:TOP_ISSUES]
    if issues:
        body += "### Key Issues\n\n"
        for issue in issues:
            body += f"**{issue.get('category', 'issue').title()}: {issue.get('description', '')}**\n"
            if issue.get("file"):
                location = issue["file"] + (f":{issue['line']}" if issue.get("line") else "")
                body += f"Location: `{location}`\n"
            body += "\n"

    if review_url:
        body += f"[View Full Review]({review_url})\n"
    return body


def post_review_comment(poster: CommentPoster, job: Job, review_url: str | None = None) -> bool:
    """Attach the rendered review to the pull request. Failures are logged only."""
    if job.kind != "review" or job.status != "completed" or job.repository.pull_number is None:
        return False
    try:
        url = poster.post_issue_comment(
            job.repository,
            job.repository.pull_number,
            render_review_comment(job.result, review_url),
        )
    except Exception as e:
        logger.error(f"[COMMENT] Failed to post review for job {job.id} on {job.repository}: {str(e)}")
        return False
    logger.info(f"[COMMENT] Posted review for job {job.id}: {url}")
    return True
