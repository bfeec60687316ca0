"""
Runtime configuration read from the environment.

load_dotenv() is called by the entry points, so values may also come
from a .env file.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

# Provider-specific key variables consulted when AI_API_KEY is unset
PROVIDER_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


@dataclass
class ReviewerConfig:
    provider: str = "mock"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: Optional[str] = None
    github_token: Optional[str] = None
    github_repository: Optional[str] = None
    github_event_path: Optional[str] = None
    log_level: str = "INFO"
    max_workers: int = 1

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        provider: Optional[str] = None,
    ) -> "ReviewerConfig":
        """Build config from environ (default os.environ); provider overrides AI_PROVIDER."""
        env = os.environ if environ is None else environ

        provider = provider or env.get("AI_PROVIDER") or "mock"
        api_key = env.get("AI_API_KEY")
        if not api_key and provider.lower() in PROVIDER_KEY_VARS:
            api_key = env.get(PROVIDER_KEY_VARS[provider.lower()])

        raw_workers = env.get("REVIEW_MAX_WORKERS") or "1"
        try:
            max_workers = int(raw_workers)
        except ValueError:
            raise ValueError(f"REVIEW_MAX_WORKERS must be an integer, got {raw_workers!r}") from None

        return cls(
            provider=provider,
            api_key=api_key or None,
            base_url=env.get("AI_BASE_URL") or None,
            model=env.get("AI_MODEL") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
            github_repository=env.get("GITHUB_REPOSITORY") or None,
            github_event_path=env.get("GITHUB_EVENT_PATH") or None,
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
            max_workers=max(1, max_workers),
        )
