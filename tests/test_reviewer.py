"""
Tests for the reviewer pipeline: orchestration, prompt building and review.

Run with: pytest tests/
"""

import logging

import pytest
from pr_reviewer.errors import LLMRetriesExhaustedError, LLMTransportError, MissingCredentialError
from pr_reviewer.models import ChangedFile, ReviewResponse
from pr_reviewer.prompts import PROMPT_VERSION, SYSTEM_PROMPT, build_review_prompt, format_issue
from pr_reviewer.providers import MockProvider, OpenAIProvider, ReviewProvider
from pr_reviewer.reviewer import analyze_file, review_pr, run_analyzers
from pr_reviewer.rules import ACCESSIBILITY, SECURITY

GALLERY_TSX = """import React from 'react';

export function Gallery() {
  const result = eval(window.location.hash);
  return (
    <div>
      <img loading="lazy" src="/cat.png" />
      <a href="/docs" target="_blank">Docs</a>
    </div>
  );
}
"""


def gallery():
    return ChangedFile(filename="src/Gallery.tsx", status="added", contents=GALLERY_TSX)


class RecordingProvider(ReviewProvider):
    name = "recording"

    def __init__(self, response=None, error=None):
        self.prompts = []
        self.response = response
        self.error = error
        self.model = "test-model"

    def generate_review(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class ExplodingAnalyzer:
    name = "performance"

    def analyze(self, file):
        raise RuntimeError("regex engine on fire")


# ── Orchestrator ────────────────────────────────────────────────────────────

def test_end_to_end_three_issues():
    """img without alt, target=_blank without noopener, eval: three issues."""
    issues = run_analyzers([gallery()])

    assert [(issue.type, issue.severity) for issue in issues] == [
        ("accessibility", "medium"),
        ("security", "high"),
        ("security", "medium"),
    ]
    assert all(issue.file == "src/Gallery.tsx" for issue in issues)

    prompt = build_review_prompt(issues, [gallery()])
    for issue in issues:
        assert issue.message in prompt

    review = MockProvider().generate_review(prompt)
    assert review.comment.strip()
    assert 0.0 <= review.confidence <= 1.0


def test_run_analyzers_skips_files_without_contents():
    """Removed files are never analyzed."""
    removed = ChangedFile(filename="src/Old.tsx", status="removed")
    assert run_analyzers([removed]) == []
    assert len(run_analyzers([removed, gallery()])) == 3


def test_run_analyzers_keeps_file_order():
    """Issues are grouped by input file order, then analyzer order."""
    html = ChangedFile(filename="a.html", status="modified", contents="<img src='x'>\neval(x)")
    js = ChangedFile(filename="b.js", status="modified", contents="alert('hi')")
    issues = run_analyzers([html, js])
    assert [(issue.file, issue.type) for issue in issues] == [
        ("a.html", "accessibility"),
        ("a.html", "security"),
        ("b.js", "performance"),
    ]


def test_run_analyzers_thread_pool_matches_sequential():
    """Concurrent execution gives the same issues in the same order."""
    files = [
        ChangedFile(filename=f"src/File{n}.tsx", status="modified", contents=GALLERY_TSX if n % 2 else "<h1>a</h1><h3>b</h3>")
        for n in range(12)
    ]
    assert run_analyzers(files, max_workers=4) == run_analyzers(files, max_workers=1)


def test_analyzer_failure_is_not_fatal(caplog):
    """One crashing analyzer is logged; the others still run."""
    with caplog.at_level(logging.ERROR, logger="pr_reviewer.reviewer"):
        issues = analyze_file(gallery(), analyzers=[ACCESSIBILITY, ExplodingAnalyzer(), SECURITY])

    assert [issue.type for issue in issues] == ["accessibility", "security", "security"]
    assert "performance analyzer failed on src/Gallery.tsx" in caplog.text


# ── Prompt builder ──────────────────────────────────────────────────────────

def test_prompt_contains_contract_files_and_issues():
    """Preamble, response shape, file listing and grouped issues are present."""
    files = [gallery(), ChangedFile(filename="src/Old.tsx", status="removed")]
    issues = run_analyzers(files)
    prompt = build_review_prompt(issues, files)

    assert prompt.startswith(SYSTEM_PROMPT)
    for key in ('"comment"', '"confidence"', '"categories"'):
        assert key in prompt
    assert "- `src/Gallery.tsx` (added)" in prompt
    assert "- `src/Old.tsx` (removed)" in prompt
    assert "### `src/Gallery.tsx`" in prompt
    assert "security (high): Usage of eval() detected" in prompt
    assert "\n  💡 Avoid eval()" in prompt


def test_prompt_is_deterministic():
    """Same inputs, same text."""
    issues = run_analyzers([gallery()])
    assert build_review_prompt(issues, [gallery()]) == build_review_prompt(issues, [gallery()])


def test_prompt_groups_issues_by_file():
    """Each file gets one section even when its issues are not adjacent."""
    a = ChangedFile(filename="a.js", status="modified", contents="eval(x)")
    b = ChangedFile(filename="b.js", status="modified", contents="alert(1)")
    issues = run_analyzers([a, b])
    interleaved = [issues[0], issues[1], issues[0]]
    prompt = build_review_prompt(interleaved, [a, b])
    assert prompt.count("### `a.js`") == 1
    assert prompt.index("### `a.js`") < prompt.index("### `b.js`")


def test_format_issue_without_suggestion():
    """No suggestion means no indented line; line numbers are shown."""
    issue = run_analyzers([ChangedFile(filename="p.html", status="added", contents="<h1>a</h1>\n<h3>b</h3>")])[0]
    issue = issue.model_copy(update={"suggestion": None})
    assert format_issue(issue) == "- accessibility (low): Heading hierarchy skips levels (line 2)"


def test_prompt_with_no_issues():
    """An empty issue list still renders a valid prompt."""
    prompt = build_review_prompt([], [gallery()])
    assert "No issues detected by static analysis." in prompt


# ── review_pr ───────────────────────────────────────────────────────────────

def test_review_pr_with_provider():
    """Issues, summary and review are returned together."""
    response = ReviewResponse(comment="Nice work", confidence=0.9, categories=["security"])
    provider = RecordingProvider(response=response)

    output = review_pr([gallery()], provider=provider)

    assert output.review == response
    assert len(provider.prompts) == 1
    assert "Usage of eval() detected" in provider.prompts[0]
    assert output.summary.total_issues == 3
    assert output.summary.high_severity == 1
    assert output.summary.medium_severity == 2
    assert output.summary.low_severity == 0
    assert output.summary.llm_used
    assert output.summary.provider == "recording"
    assert output.summary.model_name == "test-model"
    assert output.metadata["prompt_version"] == PROMPT_VERSION


def test_review_pr_defaults_to_mock_provider():
    """No provider given: the mock provider writes the review."""
    output = review_pr([gallery()])
    assert output.summary.provider == "mock"
    assert output.review is not None


def test_review_pr_skips_llm_without_issues():
    """Nothing found means no provider call and no review."""
    provider = RecordingProvider()
    clean = ChangedFile(filename="a.js", status="modified", contents="const x = 1;")

    output = review_pr([clean], provider=provider)

    assert provider.prompts == []
    assert output.review is None
    assert output.summary.files_analyzed == 1
    assert not output.summary.llm_used


def test_review_pr_no_llm():
    """use_llm=False returns rule-based findings only."""
    provider = RecordingProvider()
    output = review_pr([gallery()], provider=provider, use_llm=False)
    assert provider.prompts == []
    assert output.review is None
    assert output.summary.total_issues == 3


@pytest.mark.parametrize(
    "error",
    [
        LLMRetriesExhaustedError(LLMTransportError("503"), attempts=3),
        MissingCredentialError("no key"),
    ],
)
def test_review_pr_propagates_provider_errors(error):
    """Provider failures abort the review: no partial output."""
    with pytest.raises(type(error)):
        review_pr([gallery()], provider=RecordingProvider(error=error))


def test_review_pr_missing_openai_key():
    """A real provider without a key fails before any network call."""
    with pytest.raises(MissingCredentialError):
        review_pr([gallery()], provider=OpenAIProvider(api_key=None))
