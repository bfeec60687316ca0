"""
Core reviewer module.

Orchestrates the rule-based analyzers over changed files, then hands the
findings to an LLM provider for a narrative review.
Analyzer failures are logged and skipped so one bad file never blocks the
batch. Provider failures propagate: the review is all-or-nothing.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from pr_reviewer.models import ChangedFile, Issue, ReviewOutput, ReviewSummary
from pr_reviewer.prompts import PROMPT_VERSION, build_review_prompt
from pr_reviewer.providers import DEFAULT_PROVIDER, ReviewProvider, get_provider
from pr_reviewer.rules import ANALYZER_REGISTRY, Analyzer

logger = logging.getLogger(__name__)


def analyze_file(file: ChangedFile, analyzers: Sequence[Analyzer] = ANALYZER_REGISTRY) -> List[Issue]:
    """Run every analyzer over one file, in registry order."""
    issues = []
    for analyzer in analyzers:
        try:
            issues.extend(analyzer.analyze(file))
        except Exception:
            logger.exception("%s analyzer failed on %s - skipping", analyzer.name, file.filename)
    return issues


def run_analyzers(
    files: Sequence[ChangedFile],
    analyzers: Sequence[Analyzer] = ANALYZER_REGISTRY,
    max_workers: int = 1,
) -> List[Issue]:
    """
    Run all analyzers over all files and aggregate the issues.

    Files without contents are skipped. With max_workers > 1 files are
    analyzed on a thread pool; output order is still input-file order,
    then analyzer order, then rule order.
    """
    analyzable = [file for file in files if file.contents]

    if max_workers > 1 and len(analyzable) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            per_file = list(pool.map(lambda file: analyze_file(file, analyzers), analyzable))
    else:
        per_file = [analyze_file(file, analyzers) for file in analyzable]

    issues = [issue for file_issues in per_file for issue in file_issues]
    logger.info("Analyzed %d file(s), found %d potential issue(s)", len(analyzable), len(issues))
    return issues


def summarize(
    files: Sequence[ChangedFile],
    issues: Sequence[Issue],
    elapsed: float,
    provider: Optional[ReviewProvider] = None,
) -> ReviewSummary:
    severity_counts = {"low": 0, "medium": 0, "high": 0}
    for issue in issues:
        severity_counts[issue.severity] += 1

    return ReviewSummary(
        files_analyzed=sum(1 for file in files if file.contents),
        total_issues=len(issues),
        high_severity=severity_counts["high"],
        medium_severity=severity_counts["medium"],
        low_severity=severity_counts["low"],
        review_time_seconds=round(elapsed, 2),
        llm_used=provider is not None,
        provider=provider.name if provider is not None else None,
        model_name=getattr(provider, "model", None),
    )


def review_pr(
    files: Sequence[ChangedFile],
    provider: Optional[ReviewProvider] = None,
    use_llm: bool = True,
    max_workers: int = 1,
) -> ReviewOutput:
    """
    Review the changed files of a pull request.

    Workflow:
    1. Run rule-based analyzers (always)
    2. If anything was found, build the prompt and ask the provider for a review
    3. Return issues, summary and the validated review

    ReviewerError raised by the provider is not caught here.
    """
    start_time = time.time()

    issues = run_analyzers(files, max_workers=max_workers)

    review = None
    used_provider = None
    if not use_llm:
        logger.info("LLM disabled - returning rule-based findings only")
    elif not issues:
        logger.info("No issues found, skipping AI review")
    else:
        used_provider = provider or get_provider(DEFAULT_PROVIDER)
        prompt = build_review_prompt(issues, files)
        review = used_provider.generate_review(prompt)
        logger.info("Generated AI review (confidence %.2f)", review.confidence)

    return ReviewOutput(
        issues=issues,
        summary=summarize(files, issues, time.time() - start_time, used_provider),
        review=review,
        metadata={
            "prompt_version": PROMPT_VERSION,
            "llm_provider": used_provider.name if used_provider is not None else None,
        },
    )
