# src/taskhive/llm/client.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import openai
from openai import OpenAI

from ..core.errors import (
    ProviderCallError,
    ProviderErrorKind,
    ProviderNotConfiguredError,
    TransientProviderError,
)
from ..core.ports import Sleeper

logger = logging.getLogger(__name__)

T = TypeVar("T")

_OVERLOADED_STATUS = {500, 502, 503, 504, 529}


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 2.0

    def delay_before(self, attempt: int) -> float:
        """Delay before attempt n (n >= 2): base * 2^(n-2) -> 2s, 4s, 8s for a 2s base."""
        if attempt < 2:
            return 0.0
        return self.base_delay_seconds * (2 ** (attempt - 2))


def _status_code(exc: Exception) -> int | None:
    code = getattr(exc, "status_code", None)
    if isinstance(code, int):
        return code
    # Gemini puts the code in the error envelope: {"error": {"code": 503, ...}}
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        err = body.get("error", body)
        if isinstance(err, dict) and isinstance(err.get("code"), int):
            return int(err["code"])
    return None


def classify_provider_error(exc: Exception) -> ProviderErrorKind:
    """Map an SDK / transport exception onto the engine's provider error classes."""
    if isinstance(exc, ProviderCallError):
        return exc.kind

    if isinstance(exc, (openai.APITimeoutError, httpx.TimeoutException, TimeoutError)):
        return ProviderErrorKind.TIMEOUT

    if isinstance(exc, openai.RateLimitError):
        return ProviderErrorKind.RATE_LIMITED

    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderErrorKind.AUTH

    code = _status_code(exc)
    if code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if code in _OVERLOADED_STATUS:
        return ProviderErrorKind.OVERLOADED
    if code in (401, 403):
        return ProviderErrorKind.AUTH

    if "overloaded" in str(exc).lower():
        return ProviderErrorKind.OVERLOADED

    return ProviderErrorKind.OTHER


def call_with_retry(
        fn: Callable[[], T],
        *,
        policy: RetryPolicy,
        sleep: Sleeper = time.sleep,
        label: str = "ai",
) -> T:
    """
    Run fn() with bounded exponential backoff.

    Only overloaded / rate-limited / timeout failures are retried. Anything else,
    or the last transient failure, is raised as a ProviderCallError carrying its
    classification and the number of attempts made.
    """
    attempts = max(1, int(policy.max_attempts))

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except ProviderNotConfiguredError:
            raise
        except Exception as e:
            kind = classify_provider_error(e)

            if not kind.is_transient:
                logger.info("%s: non-retryable provider error (%s) on attempt %d", label, kind.value, attempt)
                raise ProviderCallError(str(e) or kind.value, kind=kind, attempts=attempt) from e

            if attempt >= attempts:
                logger.warning("%s: giving up after %d attempts (%s)", label, attempt, kind.value)
                raise TransientProviderError(
                    f"AI provider {kind.value} after {attempt} attempts", kind=kind, attempts=attempt
                ) from e

            delay = policy.delay_before(attempt + 1)
            logger.info(
                "%s: retry %d/%d in %.1fs (reason: %s)",
                label,
                attempt + 1,
                attempts,
                delay,
                kind.value,
            )
            sleep(delay)

    raise AssertionError("unreachable")


def _make_timeout_obj(read_s: float, connect_s: float = 5.0) -> httpx.Timeout:
    return httpx.Timeout(connect=min(connect_s, read_s), read=read_s, write=10.0, pool=connect_s)


class OpenAICompatibleProvider:
    """
    AIProvider over an OpenAI-compatible chat completions endpoint
    (Gemini's OpenAI endpoint by default).

    IMPORTANT:
    - No secrets required at import time; the constructor raises
      ProviderNotConfiguredError so the composition root can fall back to offline mode.
    - SDK retries are disabled: call_with_retry owns the retry policy.
    """

    def __init__(self, settings: Any, *, sleep: Sleeper = time.sleep, client: OpenAI | None = None) -> None:
        api_key = getattr(settings, "ai_api_key", None)
        base_url = str(getattr(settings, "ai_base_url", "") or "")

        if client is None:
            if not api_key or not str(api_key).strip():
                raise ProviderNotConfiguredError("AI API key is not set. Set TASKHIVE_AI_API_KEY in your .env.")
            if not base_url.strip():
                raise ProviderNotConfiguredError("AI base URL is not set. Set TASKHIVE_AI_BASE_URL in your .env.")
            client = OpenAI(base_url=base_url, api_key=str(api_key), max_retries=0)

        self._client = client
        self._model = str(getattr(settings, "ai_model", "") or "gemini-2.5-flash")
        self._policy = RetryPolicy(
            max_attempts=int(getattr(settings, "ai_max_attempts", 3)),
            base_delay_seconds=float(getattr(settings, "ai_base_delay_seconds", 2.0)),
        )
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _complete_once(self, prompt: str, *, timeout: float, json_output: bool) -> str:
        kwargs: dict[str, Any] = {}
        if json_output:
            kwargs["response_format"] = {"type": "json_object"}
            kwargs["max_tokens"] = 4096

        t0 = time.monotonic()
        resp = self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.7,
            timeout=_make_timeout_obj(read_s=timeout),
            **kwargs,
        )
        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError):
            content = None

        logger.debug("AI: model=%s replied in %.2fs", self._model, time.monotonic() - t0)
        return (content or "").strip()

    def complete(self, prompt: str, *, timeout: float, json_output: bool = False) -> str:
        return call_with_retry(
            lambda: self._complete_once(prompt, timeout=timeout, json_output=json_output),
            policy=self._policy,
            sleep=self._sleep,
            label=f"AI[{self._model}]",
        )
