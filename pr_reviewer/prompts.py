"""
LLM prompts for PR review.

Prompts are versioned and tracked in Git for rollback capability.
The response shape embedded here must stay in sync with
models.ReviewResponse, which is what provider output is validated against.
"""

from typing import Dict, List, Sequence

from pr_reviewer.models import ChangedFile, Issue

SYSTEM_PROMPT = """You are an expert code reviewer specializing in web development, accessibility, performance, and security. Your task is to review pull request changes and provide constructive feedback.

Guidelines:
- Be helpful and educational
- Provide specific, actionable suggestions
- Focus on the most important issues
- Use a friendly but professional tone
- Format your response in markdown
- Include code examples when helpful
- Prioritize issues by severity (high > medium > low)

Response format: You MUST respond with valid JSON matching this schema:
{
  "comment": "Full markdown comment to post on PR",
  "confidence": 0.0-1.0,
  "categories": ["accessibility", "performance", "security"]
}

- comment: non-empty markdown string
- confidence: number between 0.0 and 1.0
- categories: only values from "accessibility", "performance", "security"

Return ONLY the JSON object, no markdown formatting around it."""

REVIEW_INSTRUCTIONS = """Based on these findings, please provide a comprehensive review comment that:
1. Summarizes the overall code quality
2. Highlights the most critical issues
3. Provides specific recommendations for improvement
4. Acknowledges any good practices observed

Focus on being educational and helpful. If there are no significant issues, provide encouragement and any minor suggestions for improvement."""


def format_issue(issue: Issue) -> str:
    """Render one issue as a markdown list item, with its suggestion indented below."""
    line = f"- {issue.type} ({issue.severity}): {issue.message}"
    if issue.line is not None:
        line += f" (line {issue.line})"
    if issue.suggestion:
        line += f"\n  💡 {issue.suggestion}"
    return line


def group_issues_by_file(issues: Sequence[Issue]) -> Dict[str, List[Issue]]:
    """Group issues by file, keeping first-seen file order and emission order."""
    grouped: Dict[str, List[Issue]] = {}
    for issue in issues:
        grouped.setdefault(issue.file, []).append(issue)
    return grouped


def build_review_prompt(issues: Sequence[Issue], changed_files: Sequence[ChangedFile]) -> str:
    """Build the full review prompt from static-analysis findings."""
    files_summary = "\n".join(f"- `{file.filename}` ({file.status})" for file in changed_files)

    sections = []
    for filename, file_issues in group_issues_by_file(issues).items():
        body = "\n".join(format_issue(issue) for issue in file_issues)
        sections.append(f"### `{filename}`\n{body}")
    issues_summary = "\n\n".join(sections) or "No issues detected by static analysis."

    user_prompt = f"""Please review this pull request:

## Changed Files
{files_summary or "- (none)"}

## Issues Found by Static Analysis
{issues_summary}

{REVIEW_INSTRUCTIONS}"""

    return f"{SYSTEM_PROMPT}\n\n{user_prompt}"


# Prompt version for tracking/rollback
PROMPT_VERSION = "v2.0"
