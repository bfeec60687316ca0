"""
Rule-based analyzers for changed files.

These are deterministic, fast, and don't cost API credits. Detection is
lexical: every rule is a row in a table (pattern, severity, message
template, suggestion) and all matches of one rule in a file collapse into
a single Issue.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from pr_reviewer.models import ChangedFile, Issue, IssueType, Severity


def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


@dataclass(frozen=True)
class PatternRule:
    """
    A regex rule evaluated over the whole file text.

    The message template may reference {count} (number of matches),
    {matches} (every match, comma separated) and {sample} (first three).
    """

    name: str
    pattern: re.Pattern
    severity: Severity
    message: str
    suggestion: Optional[str] = None
    min_count: int = 1
    extensions: Tuple[str, ...] = ()
    unless: Optional[re.Pattern] = None
    accept: Optional[Callable[[List[str]], bool]] = None

    def applies_to(self, filename: str) -> bool:
        return not self.extensions or filename.endswith(self.extensions)

    def evaluate(self, issue_type: IssueType, file: ChangedFile) -> Optional[Issue]:
        if not self.applies_to(file.filename):
            return None

        matches = [match.group(0) for match in self.pattern.finditer(file.contents)]
        if len(matches) < self.min_count:
            return None
        if self.unless is not None and self.unless.search(file.contents):
            return None
        if self.accept is not None and not self.accept(matches):
            return None

        return Issue(
            type=issue_type,
            severity=self.severity,
            file=file.filename,
            message=self.message.format(
                count=len(matches),
                matches=", ".join(matches),
                sample=", ".join(matches[:3]),
            ),
            suggestion=self.suggestion,
        )


@dataclass(frozen=True)
class FirstMatchRule:
    """Ordered alternatives reported as one rule: the first that fires wins."""

    name: str
    rules: Tuple[PatternRule, ...]

    def evaluate(self, issue_type: IssueType, file: ChangedFile) -> Optional[Issue]:
        for rule in self.rules:
            issue = rule.evaluate(issue_type, file)
            if issue is not None:
                return issue
        return None


HEADING_TAG = _compile(r"<h([1-6])[^>]*>")


@dataclass(frozen=True)
class HeadingHierarchyRule:
    """Flags the first heading that jumps more than one level past its predecessor."""

    name: str
    severity: Severity
    message: str
    suggestion: Optional[str] = None

    def evaluate(self, issue_type: IssueType, file: ChangedFile) -> Optional[Issue]:
        previous = None
        for match in HEADING_TAG.finditer(file.contents):
            level = int(match.group(1))
            if previous is not None and level - previous > 1:
                return Issue(
                    type=issue_type,
                    severity=self.severity,
                    file=file.filename,
                    line=file.contents.count("\n", 0, match.start()) + 1,
                    message=self.message,
                    suggestion=self.suggestion,
                )
            previous = level
        return None


Rule = Union[PatternRule, FirstMatchRule, HeadingHierarchyRule]


@dataclass(frozen=True)
class Analyzer:
    """Runs one category's rule table over a file, in table order."""

    name: IssueType
    rules: Sequence[Rule]

    def analyze(self, file: ChangedFile) -> List[Issue]:
        if not file.contents:
            return []

        issues = []
        for rule in self.rules:
            issue = rule.evaluate(self.name, file)
            if issue is not None:
                issues.append(issue)
        return issues


# ── Accessibility ───────────────────────────────────────────────────────────

ACCESSIBILITY_RULES: Tuple[Rule, ...] = (
    PatternRule(
        name="img-missing-alt",
        pattern=_compile(r"<img(?![^>]*alt=)[^>]*>"),
        severity="medium",
        message="Found {count} img tag(s) without alt attribute",
        suggestion="Add descriptive alt text to all images for screen readers",
    ),
    PatternRule(
        name="input-missing-label",
        pattern=_compile(r"<input(?![^>]*aria-label)(?![^>]*aria-labelledby)[^>]*>"),
        severity="medium",
        message="Found {count} input(s) without proper labeling",
        suggestion="Ensure all form inputs have associated labels or aria-label attributes",
    ),
    HeadingHierarchyRule(
        name="heading-skips-level",
        severity="low",
        message="Heading hierarchy skips levels",
        suggestion="Use sequential heading levels (h1, h2, h3) for proper document structure",
    ),
    PatternRule(
        name="unsafe-inner-html",
        pattern=_compile(r"\.innerHTML\s*=|dangerouslySetInnerHTML"),
        severity="medium",
        message="Potentially unsafe innerHTML usage detected",
        suggestion="Consider using textContent or proper sanitization to prevent XSS",
    ),
)


# ── Performance ─────────────────────────────────────────────────────────────

PERFORMANCE_RULES: Tuple[Rule, ...] = (
    PatternRule(
        name="heavy-library-import",
        pattern=_compile(r"import.*(?:lodash|moment|jquery)(?![/\w])"),
        severity="medium",
        message="Importing heavy libraries: {matches}",
        suggestion="Consider using lighter alternatives or importing only needed functions",
    ),
    PatternRule(
        name="blocking-operation",
        pattern=_compile(
            r"localStorage\.getItem|sessionStorage\.getItem|document\.write"
            r"|alert\(|confirm\(|prompt\("
        ),
        severity="low",
        message="Found potentially blocking synchronous operations: {sample}",
        suggestion="Consider using asynchronous alternatives where possible",
    ),
    PatternRule(
        name="repeated-dom-query",
        pattern=_compile(
            r"document\.getElementById|document\.getElementsBy|document\.querySelector(?!All)"
        ),
        severity="low",
        message="Multiple DOM queries detected ({count})",
        suggestion="Cache DOM references and consider using more efficient selectors",
        min_count=6,
    ),
    PatternRule(
        name="img-missing-lazy-loading",
        pattern=_compile(r"<img[^>]*src=[^>]*>"),
        severity="low",
        message="Images without lazy loading detected",
        suggestion='Add loading="lazy" to images below the fold for better performance',
        extensions=(".tsx", ".jsx"),
        unless=_compile(r"loading=[\"']lazy[\"']"),
    ),
)


# ── Security ────────────────────────────────────────────────────────────────

def _has_plain_http(urls: List[str]) -> bool:
    return any(url.lower().startswith(("\"http:", "'http:")) for url in urls)


_CREDENTIAL_SUGGESTION = "Move sensitive data to environment variables or secure configuration"

SECURITY_RULES: Tuple[Rule, ...] = (
    PatternRule(
        name="eval-usage",
        pattern=_compile(r"\beval\s*\("),
        severity="high",
        message="Usage of eval() detected",
        suggestion="Avoid eval() as it can execute arbitrary code and poses security risks",
    ),
    PatternRule(
        name="dangerously-set-inner-html",
        pattern=_compile(r"dangerouslySetInnerHTML"),
        severity="medium",
        message="dangerouslySetInnerHTML usage detected",
        suggestion="Ensure content is properly sanitized before using dangerouslySetInnerHTML",
    ),
    PatternRule(
        name="target-blank-without-noopener",
        pattern=_compile(
            r"<a\b(?=[^>]*target=[\"']_blank[\"'])(?![^>]*rel=[\"'][^\"']*noopener)[^>]*>"
        ),
        severity="medium",
        message='Found {count} link(s) with target="_blank" without rel="noopener"',
        suggestion='Add rel="noopener noreferrer" to prevent potential security vulnerabilities',
    ),
    FirstMatchRule(
        name="hardcoded-credentials",
        rules=tuple(
            PatternRule(
                name=name,
                pattern=_compile(pattern + r"\s*[:=]\s*[\"'][^\"']+[\"']"),
                severity="high",
                message="Potential hardcoded credentials detected",
                suggestion=_CREDENTIAL_SUGGESTION,
            )
            for name, pattern in (
                ("secret-assignment", r"(?:password|pwd|secret|key|token)"),
                ("api-key-assignment", r"api[_-]?key"),
                ("access-token-assignment", r"access[_-]?token"),
            )
        ),
    ),
    PatternRule(
        name="insecure-http-url",
        pattern=_compile(r"[\"']https?://(?!localhost|127\.0\.0\.1)[^\"']*[\"']"),
        severity="medium",
        message="Insecure HTTP URLs detected",
        suggestion="Use HTTPS URLs to ensure secure communication",
        accept=_has_plain_http,
    ),
)


ACCESSIBILITY = Analyzer("accessibility", ACCESSIBILITY_RULES)
PERFORMANCE = Analyzer("performance", PERFORMANCE_RULES)
SECURITY = Analyzer("security", SECURITY_RULES)

# Fixed order: results within a file are analyzer-then-rule ordered
ANALYZER_REGISTRY: Tuple[Analyzer, ...] = (ACCESSIBILITY, PERFORMANCE, SECURITY)


def analyze_accessibility(file: ChangedFile) -> List[Issue]:
    """Images without alt, unlabeled inputs, heading skips, raw HTML sinks."""
    return ACCESSIBILITY.analyze(file)


def analyze_performance(file: ChangedFile) -> List[Issue]:
    """Heavy imports, blocking browser APIs, repeated DOM queries, eager images."""
    return PERFORMANCE.analyze(file)


def analyze_security(file: ChangedFile) -> List[Issue]:
    """eval, raw HTML injection, unsafe target=_blank, credentials, plain HTTP."""
    return SECURITY.analyze(file)


def run_all_rules(file: ChangedFile) -> List[Issue]:
    """Run every registered analyzer over one file."""
    issues = []
    for analyzer in ANALYZER_REGISTRY:
        issues.extend(analyzer.analyze(file))
    return issues
