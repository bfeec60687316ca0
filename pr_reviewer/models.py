"""
Data models for the PR reviewer.
Using Pydantic for validation and type safety.
"""

from typing import FrozenSet, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


IssueType = Literal["accessibility", "performance", "security"]
Severity = Literal["low", "medium", "high"]
FileStatus = Literal["added", "modified", "removed"]

CATEGORIES = ("accessibility", "performance", "security")


class ChangedFile(BaseModel):
    """A file touched by the pull request."""

    filename: str
    status: FileStatus
    patch: Optional[str] = Field(None, description="Unified diff, informational only")
    contents: Optional[str] = Field(None, description="Full file text; absent for removed files")


class Issue(BaseModel):
    """Single finding produced by an analyzer."""

    model_config = ConfigDict(frozen=True)

    type: IssueType = Field(..., description="Issue category")
    severity: Severity = Field(..., description="Issue severity")
    file: str = Field(..., description="File the issue was found in")
    line: Optional[int] = Field(None, description="Line number if applicable")
    message: str = Field(..., description="Human-readable explanation")
    suggestion: Optional[str] = Field(None, description="Suggested remediation")


class ReviewResponse(BaseModel):
    """Structured review returned by an LLM provider."""

    model_config = ConfigDict(frozen=True)

    comment: str = Field(..., description="Full markdown comment to post on the PR")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score 0-1")
    categories: FrozenSet[IssueType] = Field(..., description="Categories of issues found")

    @field_validator("comment")
    @classmethod
    def comment_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("comment must not be empty")
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_is_numeric(cls, value):
        # Pydantic would otherwise coerce "0.8" and True into floats
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("confidence must be a number")
        return value

    @field_serializer("categories")
    def serialize_categories(self, categories: FrozenSet[str]) -> List[str]:
        return sorted(categories)


class ReviewSummary(BaseModel):
    """Summary of review results."""

    files_analyzed: int
    total_issues: int
    high_severity: int
    medium_severity: int
    low_severity: int
    review_time_seconds: float
    llm_used: bool
    provider: Optional[str] = None
    model_name: Optional[str] = None


class ReviewOutput(BaseModel):
    """Complete review output."""

    issues: List[Issue]
    summary: ReviewSummary
    review: Optional[ReviewResponse] = None
    metadata: dict = Field(default_factory=dict)
