# chat/llm.py

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import OpenAI

from taskmanager.config import Settings, get_settings

logger = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """The completion API call failed."""


class CompletionAuthError(CompletionError):
    """Missing or rejected API key."""


class CompletionQuotaError(CompletionError):
    """Quota exhausted or rate-limited by the provider."""


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    # some OpenAI-compatible providers answer a bad key with 400 "API key not valid"
    return isinstance(exc, openai.APIStatusError) and "api key" in str(exc).lower()


def _is_quota_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return "quota" in str(exc).lower()


class CompletionClient:
    """
    Thin wrapper over an OpenAI-compatible chat completion endpoint.

    The default base URL is Gemini's OpenAI-compatible API, so the same
    client works against OpenAI, OpenRouter or a local server by changing
    TASKMANAGER_LLM_BASE_URL / TASKMANAGER_LLM_MODEL.
    """

    def __init__(
        self,
        *,
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
        client: Any = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionClient":
        """
        No secrets are required at import time; a missing key surfaces here,
        on the first chat turn, as CompletionAuthError.
        """
        api_key = settings.llm_api_key
        if not api_key or not api_key.strip():
            raise CompletionAuthError("Completion API key is not set. Set TASKMANAGER_LLM_API_KEY in your .env.")

        timeout = httpx.Timeout(settings.llm_timeout_seconds, connect=5.0)
        client = OpenAI(
            api_key=api_key.strip(),
            base_url=settings.llm_base_url,
            timeout=timeout,
            max_retries=1,
        )
        return cls(
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            client=client,
        )

    def complete(self, messages: List[Dict[str, str]]) -> str:
        """Send one conversation and return the assistant's text."""
        t0 = time.monotonic()
        try:
            resp = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            if _is_auth_error(e):
                raise CompletionAuthError("Completion API authentication failed.") from e
            if _is_quota_error(e):
                raise CompletionQuotaError("Completion API quota exceeded.") from e
            raise CompletionError(f"Completion API call failed ({e.__class__.__name__}).") from e

        logger.info("LLM: model=%s answered in %.2fs", self.model, time.monotonic() - t0)

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise CompletionError("Completion API returned no choices.") from e
        if not content:
            raise CompletionError(f"Model returned no content: {self.model}")
        return content


_client: Optional[CompletionClient] = None


def get_client() -> CompletionClient:
    """Lazily create and cache the completion client."""
    global _client
    if _client is None:
        _client = CompletionClient.from_settings(get_settings())
    return _client
