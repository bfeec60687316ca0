# api.py
"""
FastAPI wrapper for the PR reviewer.
Exposes the rule-based analyzers and the full review pipeline as a REST API.

Run with: uvicorn api:app --host 0.0.0.0 --port $PORT
"""

from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from pr_reviewer.config import ReviewerConfig
from pr_reviewer.errors import ReviewerError
from pr_reviewer.models import ChangedFile, Issue, ReviewOutput
from pr_reviewer.providers import get_provider
from pr_reviewer.reviewer import review_pr, run_analyzers

load_dotenv()

VERSION = "2.0.0"

app = FastAPI(
    title="AI PR Reviewer",
    description="Accessibility, performance and security review of changed files",
    version=VERSION,
)

# ── Request / Response models ───────────────────────────────────────────────

class AnalyzeRequest(BaseModel):
    files: List[ChangedFile]


class AnalyzeResponse(BaseModel):
    issues: List[Issue]
    total_issues: int


class ReviewRequest(BaseModel):
    files: List[ChangedFile]
    provider: Optional[str] = None
    model: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str
    provider: str

# ── Endpoints ───────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
def health():
    return {"status": "ok", "version": VERSION, "provider": ReviewerConfig.from_env().provider}


@app.post("/analyze", response_model=AnalyzeResponse)
def analyze(request: AnalyzeRequest):
    if not request.files:
        raise HTTPException(status_code=400, detail="files is required")

    issues = run_analyzers(request.files)
    return {"issues": issues, "total_issues": len(issues)}


@app.post("/review", response_model=ReviewOutput)
def review(request: ReviewRequest):
    if not request.files:
        raise HTTPException(status_code=400, detail="files is required")

    config = ReviewerConfig.from_env(provider=request.provider)
    provider = get_provider(
        config.provider,
        api_key=config.api_key,
        base_url=config.base_url,
        model=request.model or config.model,
    )

    try:
        return review_pr(request.files, provider=provider, max_workers=config.max_workers)
    except ReviewerError as e:
        raise HTTPException(status_code=502, detail=str(e))
