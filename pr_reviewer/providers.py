"""
LLM providers for review generation.

Every provider turns one prompt into a validated ReviewResponse. Remote
providers share a retry state machine: transport failures and timeouts
are retried with linear backoff, schema violations are not.

Failure modes:
- No API key for a provider that needs one -> MissingCredentialError
- Every attempt failed -> LLMRetriesExhaustedError
- Payload violates the response schema -> LLMInvalidOutputError
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

import openai
import requests
from pydantic import ValidationError
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from pr_reviewer.errors import (
    LLMInvalidOutputError,
    LLMRetriesExhaustedError,
    LLMTimeoutError,
    LLMTransportError,
    MissingCredentialError,
)
from pr_reviewer.models import CATEGORIES, ReviewResponse

logger = logging.getLogger(__name__)

Sleep = Callable[[float], None]


# ── Retry state machine ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class RetryPolicy:
    """Attempt bound, linear backoff step and per-attempt timeout (seconds)."""

    max_attempts: int = 3
    base_delay: float = 1.0
    timeout: float = 30.0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt


class RequestState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RetryingRequest:
    """
    State machine for a single generate call.

    IDLE -> REQUESTING -> SUCCEEDED | RETRYING | FAILED, with RETRYING
    looping back to REQUESTING until the policy's attempt bound. Only
    LLMTransportError (timeouts included) is retried; any other exception
    moves straight to FAILED and propagates unchanged.
    """

    def __init__(self, policy: RetryPolicy, sleep: Sleep = time.sleep, label: str = "LLM"):
        self.policy = policy
        self.sleep = sleep
        self.label = label
        self.state = RequestState.IDLE
        self.attempt = 0
        self.last_error: Optional[LLMTransportError] = None

    def _before_attempt(self, retry_state: RetryCallState) -> None:
        self.attempt = retry_state.attempt_number
        self.state = RequestState.REQUESTING

    def _after_failure(self, retry_state: RetryCallState) -> None:
        self.last_error = retry_state.outcome.exception()
        self.state = RequestState.RETRYING
        logger.warning("%s request attempt %d failed: %s", self.label, self.attempt, self.last_error)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=lambda retry_state: self.policy.delay_for(retry_state.attempt_number),
            retry=retry_if_exception_type(LLMTransportError),
            sleep=self.sleep,
            before=self._before_attempt,
            after=self._after_failure,
            reraise=True,
        )

    def run(self, send: Callable[[float], Any]) -> Any:
        """Call send(timeout) until it succeeds or the policy gives up."""
        if self.state is not RequestState.IDLE:
            raise RuntimeError(f"request already {self.state.value}")

        try:
            result = self._retrying()(send, self.policy.timeout)
        except LLMTransportError as e:
            self.state = RequestState.FAILED
            raise LLMRetriesExhaustedError(e, self.attempt) from e
        except Exception:
            self.state = RequestState.FAILED
            raise

        self.state = RequestState.SUCCEEDED
        return result


# ── Response parsing ────────────────────────────────────────────────────────

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def strip_code_fence(content: str) -> str:
    """Strip a markdown code fence (```json ... ```) wrapped around JSON."""
    content = content.strip()
    match = _CODE_FENCE.fullmatch(content)
    if match:
        return match.group(1)
    return content


def parse_json_payload(content: Any, source: str) -> Any:
    """Decode a JSON document returned by a provider."""
    if not isinstance(content, str):
        raise LLMInvalidOutputError(f"{source} returned no text content")
    try:
        return json.loads(strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise LLMInvalidOutputError(f"{source} output is not valid JSON: {e}") from e


def validate_review_payload(payload: Any, source: str = "LLM") -> ReviewResponse:
    """Validate raw JSON against the ReviewResponse schema."""
    try:
        return ReviewResponse.model_validate(payload)
    except ValidationError as e:
        logger.error("Failed to validate %s response: %s", source, e)
        raise LLMInvalidOutputError(f"Invalid response format from {source}: {e}") from e


# ── Providers ───────────────────────────────────────────────────────────────

class ReviewProvider(ABC):
    """Turns a prompt into a structured review."""

    name = "base"

    @classmethod
    def create(cls, api_key: Optional[str] = None, base_url: Optional[str] = None,
               model: Optional[str] = None) -> "ReviewProvider":
        return cls()

    @abstractmethod
    def generate_review(self, prompt: str) -> ReviewResponse:
        ...


MOCK_COMMENT = """## 🤖 AI PR Review (Mock Mode)

I've analyzed your pull request and found some areas for improvement:

### 🔍 Summary
This is a mock review generated for testing purposes. In production, this would contain AI-generated insights about your code changes.

### 💡 Suggestions
- Consider reviewing the accessibility of your UI components
- Check for any performance optimizations
- Ensure security best practices are followed

*This review was generated using the mock AI provider. Configure a real AI provider to get actual insights.*"""


class MockProvider(ReviewProvider):
    """Local provider that never touches the network."""

    name = "mock"

    def __init__(self, delay: float = 0.0, sleep: Sleep = time.sleep):
        self.delay = delay
        self.sleep = sleep
        self.model = None

    def generate_review(self, prompt: str) -> ReviewResponse:
        logger.info("Using mock provider - generating synthetic review")
        if self.delay:
            self.sleep(self.delay)
        return ReviewResponse(comment=MOCK_COMMENT, confidence=0.8, categories=CATEGORIES)


class RemoteProvider(ReviewProvider):
    """Shared credential check, retry loop and validation for networked providers."""

    requires_credential = False
    default_model = ""
    default_policy = RetryPolicy()

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 retry_policy: Optional[RetryPolicy] = None, sleep: Sleep = time.sleep):
        self.api_key = api_key
        self.model = model or self.default_model
        self.retry_policy = retry_policy or self.default_policy
        self.sleep = sleep

    @classmethod
    def create(cls, api_key=None, base_url=None, model=None):
        return cls(api_key=api_key, model=model)

    def generate_review(self, prompt: str) -> ReviewResponse:
        if self.requires_credential and not self.api_key:
            raise MissingCredentialError(f"{self.name} API key is required but not provided")

        logger.info("Calling %s (%s) for review generation", self.name, self.model)
        request = RetryingRequest(self.retry_policy, sleep=self.sleep, label=self.name)
        payload = request.run(lambda timeout: self._send(prompt, timeout))
        return validate_review_payload(payload, source=self.name)

    @abstractmethod
    def _send(self, prompt: str, timeout: float) -> Any:
        """Issue one request and return the decoded inner JSON payload."""
        ...


class OpenAIProvider(RemoteProvider):
    """OpenAI chat completions in JSON-object mode."""

    name = "openai"
    requires_credential = True
    default_model = "gpt-4o-mini"
    default_policy = RetryPolicy(max_attempts=3, base_delay=1.0, timeout=30.0)
    max_tokens = 2000

    def __init__(self, api_key=None, model=None, retry_policy=None, sleep=time.sleep, client=None):
        super().__init__(api_key=api_key, model=model, retry_policy=retry_policy, sleep=sleep)
        self._client = client

    def _get_client(self):
        if self._client is None:
            # Retries are ours, not the SDK's
            self._client = openai.OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def _send(self, prompt: str, timeout: float) -> Any:
        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
        except openai.APITimeoutError as e:
            raise LLMTimeoutError(f"OpenAI API timeout after {timeout}s") from e
        except openai.APIStatusError as e:
            reason = e.response.reason_phrase if e.response is not None else None
            raise LLMTransportError(
                f"OpenAI API error: {e.status_code} {reason}", status_code=e.status_code, reason=reason
            ) from e
        except openai.APIConnectionError as e:
            raise LLMTransportError(f"OpenAI connection error: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise LLMInvalidOutputError("OpenAI response has no message content") from e
        return parse_json_payload(content, source="OpenAI")


class OllamaProvider(RemoteProvider):
    """Local Ollama server via its /api/generate endpoint."""

    name = "ollama"
    default_model = "llama3.1"
    default_policy = RetryPolicy(max_attempts=3, base_delay=2.0, timeout=60.0)
    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(self, base_url=None, model=None, retry_policy=None, sleep=time.sleep, session=None):
        super().__init__(model=model, retry_policy=retry_policy, sleep=sleep)
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.session = session or requests.Session()

    @classmethod
    def create(cls, api_key=None, base_url=None, model=None):
        return cls(base_url=base_url, model=model)

    def _send(self, prompt: str, timeout: float) -> Any:
        try:
            with self.session.post(
                f"{self.base_url}/api/generate",
                json={"model": self.model, "prompt": prompt, "stream": False, "format": "json"},
                timeout=timeout,
            ) as response:
                if not response.ok:
                    raise LLMTransportError(
                        f"Ollama API error: {response.status_code} {response.reason}",
                        status_code=response.status_code,
                        reason=response.reason,
                    )
                body = response.text
        except requests.Timeout as e:
            raise LLMTimeoutError(f"Ollama timeout after {timeout}s") from e
        except requests.RequestException as e:
            raise LLMTransportError(f"Ollama request failed: {e}") from e

        envelope = parse_json_payload(body, source="Ollama")
        if not isinstance(envelope, dict) or "response" not in envelope:
            raise LLMInvalidOutputError("Ollama response has no 'response' field")
        return parse_json_payload(envelope["response"], source="Ollama")


class AnthropicProvider(RemoteProvider):
    """Anthropic Claude via LangChain's ChatAnthropic."""

    name = "anthropic"
    requires_credential = True
    default_model = "claude-3-5-sonnet-latest"
    default_policy = RetryPolicy(max_attempts=3, base_delay=1.0, timeout=30.0)
    max_tokens = 2000

    def __init__(self, api_key=None, model=None, retry_policy=None, sleep=time.sleep, llm=None):
        super().__init__(api_key=api_key, model=model, retry_policy=retry_policy, sleep=sleep)
        self._llm = llm

    def _get_llm(self, timeout: float):
        if self._llm is None:
            from langchain_anthropic import ChatAnthropic

            self._llm = ChatAnthropic(
                model=self.model,
                api_key=self.api_key,
                temperature=0.1,
                max_tokens=self.max_tokens,
                timeout=timeout,
                max_retries=0,
            )
        return self._llm

    def _send(self, prompt: str, timeout: float) -> Any:
        import anthropic
        from langchain_core.messages import HumanMessage

        try:
            message = self._get_llm(timeout).invoke([HumanMessage(content=prompt)])
        except anthropic.APITimeoutError as e:
            raise LLMTimeoutError(f"Anthropic API timeout after {timeout}s") from e
        except anthropic.APIStatusError as e:
            reason = e.response.reason_phrase if e.response is not None else None
            raise LLMTransportError(
                f"Anthropic API error: {e.status_code} {reason}", status_code=e.status_code, reason=reason
            ) from e
        except anthropic.APIConnectionError as e:
            raise LLMTransportError(f"Anthropic connection error: {e}") from e

        content = message.content
        if isinstance(content, list):
            # Content blocks: keep the text parts only
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block) for block in content
            )
        return parse_json_payload(content, source="Anthropic")


PROVIDER_REGISTRY: Dict[str, Type[ReviewProvider]] = {
    "mock": MockProvider,
    "openai": OpenAIProvider,
    "ollama": OllamaProvider,
    "anthropic": AnthropicProvider,
}

DEFAULT_PROVIDER = "mock"


def get_provider(
    name: Optional[str],
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    model: Optional[str] = None,
) -> ReviewProvider:
    """
    Build a provider by case-insensitive name.

    Unknown names log a warning and fall back to the mock provider.
    """
    provider_cls = PROVIDER_REGISTRY.get((name or "").strip().lower())
    if provider_cls is None:
        logger.warning("Unknown provider '%s', falling back to %s", name, DEFAULT_PROVIDER)
        provider_cls = PROVIDER_REGISTRY[DEFAULT_PROVIDER]
    return provider_cls.create(api_key=api_key, base_url=base_url, model=model)
