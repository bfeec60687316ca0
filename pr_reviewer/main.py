"""
Main entry point for the PR reviewer.

Usage:
    pr-reviewer --files src/App.tsx src/index.html --no-llm
    pr-reviewer --repo owner/name --pr 42 --provider openai --post
    pr-reviewer --event-path "$GITHUB_EVENT_PATH" --provider ollama --base-url http://localhost:11434
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from pr_reviewer.config import ReviewerConfig
from pr_reviewer.errors import ReviewerError
from pr_reviewer.github import GitHubClient
from pr_reviewer.models import ChangedFile, ReviewOutput
from pr_reviewer.providers import get_provider
from pr_reviewer.reviewer import review_pr

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Configure the process-wide logging sink. Call once at startup."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s: %(message)s",
    )


def load_local_files(paths: Sequence[str]) -> List[ChangedFile]:
    """Read local files as modified ChangedFiles."""
    files = []
    for path in paths:
        contents = Path(path).read_text(encoding="utf-8")
        files.append(ChangedFile(filename=path, status="modified", contents=contents))
    return files


def load_event(event_path: str) -> Optional[Tuple[str, int, str]]:
    """Extract (repo, pr_number, head_sha) from a GitHub Actions event payload."""
    with open(event_path, "r") as f:
        event = json.load(f)

    pull_request = event.get("pull_request")
    if not pull_request:
        return None
    return (
        event["repository"]["full_name"],
        pull_request["number"],
        pull_request["head"]["sha"],
    )


def save_output(output: ReviewOutput, filepath: str):
    """Save review output to JSON file."""
    output_dir = Path(filepath).parent
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w") as f:
        json.dump(output.model_dump(mode="json"), f, indent=2)

    print(f"\n✓ Review output saved to: {filepath}")


def print_summary(output: ReviewOutput):
    """Print human-readable summary to console."""
    print("\n" + "=" * 60)
    print("PR REVIEW SUMMARY")
    print("=" * 60)

    summary = output.summary
    print(f"\nFiles Analyzed: {summary.files_analyzed}")
    print(f"Total Issues: {summary.total_issues}")
    print(f"  High Severity: {summary.high_severity}")
    print(f"  Medium Severity: {summary.medium_severity}")
    print(f"  Low Severity: {summary.low_severity}")
    print(f"\nReview Time: {summary.review_time_seconds}s")
    print(f"LLM Used: {'Yes' if summary.llm_used else 'No (rule-based only)'}")
    if summary.provider:
        print(f"Provider: {summary.provider}" + (f" ({summary.model_name})" if summary.model_name else ""))

    if output.issues:
        print("\n" + "-" * 60)
        print("ISSUES FOUND:")
        print("-" * 60)

        for i, issue in enumerate(output.issues, 1):
            print(f"\n{i}. [{issue.severity.upper()}] {issue.type}")
            print(f"   {issue.message}")
            print(f"   File: {issue.file}" + (f":{issue.line}" if issue.line else ""))
            if issue.suggestion:
                print(f"   Suggestion: {issue.suggestion}")
    else:
        print("\n✓ No issues found!")

    if output.review:
        print("\n" + "-" * 60)
        print(f"AI REVIEW (confidence {output.review.confidence:.2f}):")
        print("-" * 60)
        print(output.review.comment)

    print("\n" + "=" * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AI PR Reviewer - accessibility, performance and security review of changed files"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--files", nargs="+", help="Local files to review")
    source.add_argument("--repo", help="GitHub repository (owner/name); requires --pr")
    source.add_argument("--event-path", help="GitHub Actions event payload (default: $GITHUB_EVENT_PATH)")
    parser.add_argument("--pr", type=int, help="Pull request number (with --repo)")
    parser.add_argument("--provider", help="LLM provider: mock, openai, ollama, anthropic (default: $AI_PROVIDER or mock)")
    parser.add_argument("--api-key", help="LLM API key (default: $AI_API_KEY)")
    parser.add_argument("--base-url", help="Provider base URL, e.g. Ollama host (default: $AI_BASE_URL)")
    parser.add_argument("--model", help="Model name (default: provider's default)")
    parser.add_argument("--no-llm", action="store_true", help="Skip LLM review, report rule-based findings only")
    parser.add_argument("--post", action="store_true", help="Post the review comment to the pull request")
    parser.add_argument("--output", help="Write review output JSON to this path")
    parser.add_argument("--workers", type=int, help="Analyzer threads (default: $REVIEW_MAX_WORKERS or 1)")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()  # Load environment variables from .env file

    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = ReviewerConfig.from_env(provider=args.provider)
    except ValueError as e:
        configure_logging()
        logger.error("Invalid configuration: %s", e)
        return 1
    configure_logging(config.log_level)

    if args.repo and not args.pr:
        parser.error("--repo requires --pr")

    github = None
    repo = pr_number = None

    try:
        if args.files:
            files = load_local_files(args.files)
        else:
            event_path = args.event_path or config.github_event_path
            if args.repo:
                repo, pr_number, head_sha = args.repo, args.pr, None
            elif event_path:
                target = load_event(event_path)
                if target is None:
                    logger.warning("Event payload has no pull_request - nothing to review")
                    return 0
                repo, pr_number, head_sha = target
            else:
                parser.error("one of --files, --repo or --event-path (or $GITHUB_EVENT_PATH) is required")

            if not config.github_token:
                logger.error("GITHUB_TOKEN is required to read pull requests")
                return 1
            github = GitHubClient(config.github_token)
            head_sha = head_sha or github.get_head_sha(repo, pr_number)
            files = github.list_changed_files(repo, pr_number, head_sha)

        logger.info("Found %d changed file(s)", len(files))

        provider = None
        if not args.no_llm:
            provider = get_provider(
                config.provider,
                api_key=args.api_key or config.api_key,
                base_url=args.base_url or config.base_url,
                model=args.model or config.model,
            )
            logger.info("Starting AI PR review with provider: %s", provider.name)

        output = review_pr(
            files,
            provider=provider,
            use_llm=not args.no_llm,
            max_workers=args.workers or config.max_workers,
        )

        print_summary(output)

        if args.output:
            save_output(output, args.output)

        if args.post:
            if github is None:
                logger.warning("--post needs a GitHub pull request; nothing posted")
            elif output.review is None:
                logger.info("No review generated; nothing posted")
            else:
                url = github.post_comment(repo, pr_number, output.review.comment)
                logger.info("Posted review comment successfully %s", url)

        return 0

    except FileNotFoundError as e:
        logger.error("File not found: %s", e.filename)
        return 1

    except (OSError, UnicodeDecodeError) as e:
        logger.error("Cannot read input: %s", e)
        return 1

    except ReviewerError as e:
        logger.error("Review failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
