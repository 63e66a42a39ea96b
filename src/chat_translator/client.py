"""
Async client for the remote chat-completion API.

``CompletionClient`` performs one logical operation per call (translate,
combined detect-and-translate, or detect-only) and hides the retry policy
shared by all three.  It must be used as an async context manager so the
underlying httpx connection pool is opened and closed exactly once:

    async with CompletionClient(api_key, endpoint_url, model) as client:
        text = await client.translate("こんにちは", "ja", "zh")

Retry policy
------------
Up to ``MAX_RETRIES`` additional attempts (four calls in total).  Errors of
kind ``auth``, ``invalid-input``, ``api-error`` and
``unsupported-language`` are raised immediately.  Before each retry the
client sleeps:

- the server's ``Retry-After`` seconds, for a rate-limit response that
  carries one;
- ``VALIDATION_RETRY_DELAY`` after an output-validation failure.  For
  ``translate`` this also switches to the escalated prompt for every
  remaining attempt of the call;
- otherwise ``BASE_DELAY_MS * 2**attempt`` plus up to ``MAX_JITTER_MS`` of
  random jitter.

When the budget is exhausted the last error is raised unchanged.  The loop
itself is a ``tenacity.AsyncRetrying`` whose wait strategy picks among the
three delays above.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar, cast

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from chat_translator.classifier import contains_cjk
from chat_translator.classifier import detect_language as classify_text
from chat_translator.errors import (
    ErrorKind,
    TranslationError,
    UnsupportedLanguageError,
    kind_for_status,
)
from chat_translator.languages import LanguageCode, OutputFormat
from chat_translator.prompts import (
    AUTO_DETECT_SYSTEM_PROMPT,
    DETECT_SYSTEM_PROMPT,
    build_auto_detect_message,
    build_detect_prompt,
    build_prompt,
    is_unsupported_reply,
    normalize_detection,
    parse_direction_tag,
    strip_filler_prefixes,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ENDPOINT_URL = "https://api.poe.com/v1/chat/completions"
DEFAULT_MODEL = "Claude-3.5-Sonnet"
DEFAULT_TIMEOUT_SECONDS = 30.0

MAX_RETRIES = 3
BASE_DELAY_MS = 1000
MAX_JITTER_MS = 1000
VALIDATION_RETRY_DELAY = 0.5

_BACKOFF = wait_exponential(multiplier=BASE_DELAY_MS / 1000, exp_base=2)

# Script checks applied to translated output.
_JAPANESE_OUTPUT_RE = re.compile(r"[\u3040-\u309f\u30a0-\u30ff\u4e00-\u9faf]")
_CHINESE_OUTPUT_RE = re.compile(r"[\u4e00-\u9faf，。！？]")

# Error bodies are kept for diagnostics but never in full.
_MAX_DETAIL_CHARS = 500


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, TranslationError) and error.kind.retryable


def _retry_error(retry_state: RetryCallState) -> TranslationError:
    # Only retryable TranslationErrors reach the wait and before_sleep hooks.
    assert retry_state.outcome is not None
    return cast(TranslationError, retry_state.outcome.exception())


@dataclass(frozen=True)
class AutoDetectResult:
    """Outcome of a combined detect-and-translate call."""

    source_lang: LanguageCode
    target_lang: LanguageCode
    translated_text: str


# =============================================================================
# COMPLETION CLIENT
# =============================================================================


@dataclass
class CompletionClient:
    """
    Async HTTP client for an OpenAI-style chat-completion endpoint.

    Attributes:
        api_key:         Bearer token sent with every request.
        endpoint_url:    Full URL of the chat-completions endpoint.
        model:           Model name placed in the request body.
        timeout_seconds: Per-request timeout.
        sleep:           Coroutine used for backoff waits (injectable for tests).
        jitter:          ``(low, high) -> float`` random source for backoff jitter.

    Example:
        async with CompletionClient(api_key="sk-...") as client:
            lang = await client.detect_language("你好")
    """

    api_key: str
    endpoint_url: str = DEFAULT_ENDPOINT_URL
    model: str = DEFAULT_MODEL
    timeout_seconds: float = field(default=DEFAULT_TIMEOUT_SECONDS, kw_only=True)
    sleep: Callable[[float], Awaitable[Any]] = field(
        default=asyncio.sleep, kw_only=True, repr=False
    )
    jitter: Callable[[float, float], float] = field(
        default=random.uniform, kw_only=True, repr=False
    )

    _http_client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> CompletionClient:
        self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """
        Get the HTTP client, ensuring it's been initialized.

        Raises:
            RuntimeError: If accessed outside of async context manager.
        """
        if self._http_client is None:
            raise RuntimeError(
                "CompletionClient must be used as an async context manager. "
                "Use 'async with CompletionClient(api_key) as client:'"
            )
        return self._http_client

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        dictionary_hint: str | None = None,
        *,
        output_format: OutputFormat = "text",
    ) -> str:
        """
        Translate ``text`` from ``source_lang`` into ``target_lang``.

        Args:
            text:            Message text.
            source_lang:     Source language code.
            target_lang:     Target language code.
            dictionary_hint: Glossary hint block embedded in the prompt.
            output_format:   ``"markdown"`` asks the model to keep formatting.

        Returns:
            The validated translation, stripped of surrounding whitespace.

        Raises:
            TranslationError: When the call fails after the retry budget, or
                immediately for non-retryable kinds.
        """

        async def attempt(escalated: bool) -> str:
            if escalated:
                logger.info(
                    "Using escalated prompt for %s->%s after a validation failure",
                    source_lang,
                    target_lang,
                )
            prompt = build_prompt(
                text,
                source_lang,
                target_lang,
                dictionary_hint,
                escalated=escalated,
                output_format=output_format,
            )
            content = await self._post(
                {"model": self.model, "messages": [{"role": "user", "content": prompt}]},
                "translation",
            )
            return _validate_translation(content, text, source_lang, target_lang)

        return await self._with_retries("translate", attempt, escalate_on_validation=True)

    async def translate_with_auto_detect(
        self, text: str, dictionary_hint: str | None = None
    ) -> AutoDetectResult:
        """
        Detect the language of ``text`` and translate it in one call.

        Japanese is translated into Chinese and Chinese into Japanese.

        Raises:
            UnsupportedLanguageError: The model reported a language outside
                ja / zh.  Never retried.
            TranslationError: Any other failure after the retry budget.
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": AUTO_DETECT_SYSTEM_PROMPT},
                {"role": "user", "content": build_auto_detect_message(text, dictionary_hint)},
            ],
            "temperature": 0,
        }

        async def attempt(_escalated: bool) -> AutoDetectResult:
            raw = await self._post(payload, "auto-detect translation")
            return _parse_auto_detect(raw, text)

        return await self._with_retries("translate_with_auto_detect", attempt)

    async def detect_language(self, text: str) -> str:
        """
        Ask the model which language ``text`` is written in.

        Returns:
            ``"ja"``, ``"zh"`` or ``"unsupported"``.
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": DETECT_SYSTEM_PROMPT},
                {"role": "user", "content": build_detect_prompt(text)},
            ],
            "temperature": 0,
            "max_tokens": 10,
        }

        async def attempt(_escalated: bool) -> str:
            raw = await self._post(payload, "language detection")
            detected = normalize_detection(raw)
            logger.debug("Language detection: raw=%r detected=%s", raw, detected)
            return detected

        return await self._with_retries("detect_language", attempt)

    # -------------------------------------------------------------------------
    # Retry loop
    # -------------------------------------------------------------------------

    async def _with_retries(
        self,
        operation: str,
        attempt: Callable[[bool], Awaitable[T]],
        *,
        escalate_on_validation: bool = False,
    ) -> T:
        escalation = {"active": False}

        def before_sleep(retry_state: RetryCallState) -> None:
            exc = _retry_error(retry_state)
            if exc.kind is ErrorKind.VALIDATION and escalate_on_validation:
                escalation["active"] = True
            logger.warning(
                "%s failed (%s), retrying in %.2fs (attempt %d/%d)",
                operation,
                exc.kind.value,
                retry_state.next_action.sleep,
                retry_state.attempt_number,
                MAX_RETRIES,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(MAX_RETRIES + 1),
            wait=self._retry_wait,
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep,
            sleep=self.sleep,
            reraise=True,
        )
        try:
            return await retrying(lambda: attempt(escalation["active"]))
        except TranslationError as exc:
            if exc.kind.retryable:
                logger.error("%s failed after %d attempts: %s", operation, MAX_RETRIES + 1, exc)
            raise

    def _retry_wait(self, retry_state: RetryCallState) -> float:
        """Seconds to wait before the next attempt."""
        error = _retry_error(retry_state)
        if error.kind is ErrorKind.RATE_LIMIT and error.retry_after:
            return float(error.retry_after)
        if error.kind is ErrorKind.VALIDATION:
            return VALIDATION_RETRY_DELAY
        return _BACKOFF(retry_state) + self.jitter(0, MAX_JITTER_MS) / 1000.0

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    async def _post(self, payload: dict[str, Any], purpose: str) -> str:
        """Send one completion request and return the stripped message content."""
        try:
            response = await self.http_client.post(
                self.endpoint_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise TranslationError(
                message=f"Network error during {purpose}",
                kind=ErrorKind.NETWORK,
                detail=str(e),
            ) from e

        if not response.is_success:
            status = response.status_code
            raise TranslationError(
                message=f"Completion API error: {status} {response.reason_phrase}",
                kind=kind_for_status(status),
                status_code=status,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                detail=response.text[:_MAX_DETAIL_CHARS],
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TranslationError(
                message="Invalid API response format",
                kind=ErrorKind.API_ERROR,
                status_code=response.status_code,
                detail="response body is not JSON",
            ) from e

        return _extract_content(data)


# =============================================================================
# RESPONSE HANDLING
# =============================================================================


def _parse_retry_after(value: str | None) -> int | None:
    """Parse a ``Retry-After`` header given in whole seconds."""
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        # HTTP-date form or garbage: fall back to exponential backoff.
        return None
    return seconds if seconds >= 0 else None


def _extract_content(data: Any) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise TranslationError(
            message="Invalid API response format",
            kind=ErrorKind.API_ERROR,
            detail="missing choices[0].message.content",
        ) from e
    if not isinstance(content, str) or not content.strip():
        raise TranslationError(
            message="Invalid API response format",
            kind=ErrorKind.API_ERROR,
            detail="empty message content",
        )
    return content.strip()


def _validate_translation(result: str, original: str, source_lang: str, target_lang: str) -> str:
    if result == original:
        logger.warning(
            "Translation rejected: output is identical to input (%s->%s)",
            source_lang,
            target_lang,
        )
        raise TranslationError(
            message="Translation failed: output is identical to input",
            kind=ErrorKind.VALIDATION,
        )

    if target_lang == LanguageCode.JA and not _JAPANESE_OUTPUT_RE.search(result):
        logger.warning(
            "Translation rejected: output does not contain Japanese characters (%s->%s)",
            source_lang,
            target_lang,
        )
        raise TranslationError(
            message="Translation failed: output does not contain Japanese characters",
            kind=ErrorKind.VALIDATION,
        )

    if target_lang == LanguageCode.ZH and not _CHINESE_OUTPUT_RE.search(result):
        logger.warning(
            "Translation rejected: output does not contain Chinese characters (%s->%s)",
            source_lang,
            target_lang,
        )
        raise TranslationError(
            message="Translation failed: output does not contain Chinese characters",
            kind=ErrorKind.VALIDATION,
        )

    return result


def _parse_auto_detect(raw: str, original: str) -> AutoDetectResult:
    """Turn a combined-call reply into an :class:`AutoDetectResult`.

    Steps: strip filler, check the unsupported sentinel, split off the
    direction tag, strip filler again, then validate the body.  Without a
    tag the direction comes from the rule-based classifier on the input.
    """
    cleaned = strip_filler_prefixes(raw)
    if is_unsupported_reply(cleaned):
        raise UnsupportedLanguageError()

    tag, body = parse_direction_tag(cleaned)
    body = strip_filler_prefixes(body)
    if is_unsupported_reply(body):
        raise UnsupportedLanguageError()

    if tag is not None:
        source, target = tag.source_lang, tag.target_lang
    else:
        detected = classify_text(original)
        if detected == LanguageCode.JA:
            source, target = LanguageCode.JA, LanguageCode.ZH
        elif detected == LanguageCode.ZH:
            source, target = LanguageCode.ZH, LanguageCode.JA
        else:
            logger.warning("Auto-detect reply has no direction tag and input has no CJK signal")
            raise TranslationError(
                message="Auto-detect failed: translation direction could not be determined",
                kind=ErrorKind.VALIDATION,
            )

    if not body:
        logger.warning("Auto-detect rejected: empty translation")
        raise TranslationError(
            message="Auto-detect failed: empty translation",
            kind=ErrorKind.VALIDATION,
        )
    if not contains_cjk(body):
        logger.warning("Auto-detect rejected: output has no CJK characters")
        raise TranslationError(
            message="Auto-detect failed: output does not contain CJK characters",
            kind=ErrorKind.VALIDATION,
        )
    if body == original.strip():
        logger.warning("Auto-detect rejected: output is identical to input")
        raise TranslationError(
            message="Auto-detect failed: output is identical to input",
            kind=ErrorKind.VALIDATION,
        )

    return AutoDetectResult(source_lang=source, target_lang=target, translated_text=body)
