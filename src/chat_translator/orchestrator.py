"""
Multi-target translation orchestrator.

``TranslationOrchestrator`` turns one chat message into one outcome per
target language.  It owns no state between calls; the only shared mutable
resource is the :class:`~chat_translator.gate.ConcurrencyGate` it is given.

Per-call pipeline
-----------------
1. **Detect the source language** according to :class:`DetectionMode`:

   - ``rules``: the rule-based classifier, no API call.
   - ``ai``: one combined detect-and-translate call.  Its translation is
     kept and reused for the matching target.  An unsupported-language
     reply ends the batch with one ``invalid-input`` failure per target;
     any other error falls back to the classifier.
   - ``ai_detect_only``: one cheap detection-only call.  ``unsupported``
     is treated as ``unknown``; any error falls back to the classifier.

   Detection-phase API calls go through the gate like any other call.
2. **Unknown source**: one ``invalid-input`` failure per target, stop.
3. **Resolve targets**: caller-supplied, else ``zh -> [ja, en]`` and
   anything else ``-> [zh, en]``.
4. **Fan out**: every target runs concurrently.  Each one acquires a gate
   permit, looks up glossary terms for its direction, calls the client and
   releases the permit on every path.  Errors become
   :class:`~chat_translator.outcomes.TranslationFailure` outcomes; one
   failing target never cancels its siblings.
5. **Merge** in request order.

Example::

    orchestrator = TranslationOrchestrator(client, gate, glossary=matcher)
    outcomes = await orchestrator.translate_all("こんにちは")
    verdict = resolve_batch(outcomes)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from enum import StrEnum

from chat_translator.classifier import LanguageClassifier
from chat_translator.client import AutoDetectResult, CompletionClient
from chat_translator.errors import ErrorKind, TranslationError, UnsupportedLanguageError
from chat_translator.gate import ConcurrencyGate
from chat_translator.glossary import DictionaryMatch, GlossaryMatcher, generate_prompt_hint
from chat_translator.languages import (
    UNKNOWN,
    UNSUPPORTED,
    LanguageCode,
    TranslationTarget,
    default_single_target,
    derive_targets,
)
from chat_translator.outcomes import Outcome, TranslationFailure, TranslationSuccess

logger = logging.getLogger(__name__)

UNDETECTED_MESSAGE = "Language could not be detected"
UNSUPPORTED_MESSAGE = "Unsupported source language"

TargetSpec = TranslationTarget | LanguageCode | str


class DetectionMode(StrEnum):
    """How the orchestrator determines the source language."""

    RULES = "rules"
    AI = "ai"
    AI_DETECT_ONLY = "ai_detect_only"


class TranslationOrchestrator:
    """Coordinates detection, glossary lookup and per-target translation.

    Attributes:
        _client:         Completion client (already entered as a context manager).
        _gate:           Concurrency gate shared by every API call.
        _classifier:     Rule-based fallback detector.
        _glossary:       Optional glossary matcher.
        _detection_mode: Source-language strategy.
    """

    def __init__(
        self,
        client: CompletionClient,
        gate: ConcurrencyGate,
        *,
        classifier: LanguageClassifier | None = None,
        glossary: GlossaryMatcher | None = None,
        detection_mode: DetectionMode | str = DetectionMode.RULES,
    ) -> None:
        self._client = client
        self._gate = gate
        self._classifier = classifier or LanguageClassifier()
        self._glossary = glossary
        self._detection_mode = DetectionMode(detection_mode)

    @property
    def detection_mode(self) -> DetectionMode:
        return self._detection_mode

    # ── Public API ────────────────────────────────────────────────────────────

    async def translate_all(
        self, text: str, targets: Sequence[TargetSpec] | None = None
    ) -> list[Outcome]:
        """Translate ``text`` into every target and return one outcome each.

        Args:
            text:    Message body.
            targets: Requested targets in output order.  When omitted the
                     set is derived from the detected source language.  An
                     empty sequence requests nothing and returns ``[]``
                     without a detection call.

        Returns:
            One outcome per target, in request order.  Never raises for a
            per-target failure.
        """
        requested = (
            [TranslationTarget.coerce(t) for t in targets] if targets is not None else None
        )
        if requested == []:
            return []
        prefetched: AutoDetectResult | None = None

        # ── Step 1: Detect source language ───────────────────────────────────
        if self._detection_mode is DetectionMode.AI:
            try:
                prefetched = await self._auto_detect(text)
            except UnsupportedLanguageError:
                logger.info("Source language unsupported; skipping translation.")
                return self._fail_all(
                    requested or derive_targets(UNSUPPORTED),
                    UNSUPPORTED,
                    UNSUPPORTED_MESSAGE,
                )
            except Exception as exc:
                logger.warning(
                    "AI detection failed (%s); falling back to rule-based detection", exc
                )
                source = self._classifier.detect(text)
            else:
                source = prefetched.source_lang.value
        elif self._detection_mode is DetectionMode.AI_DETECT_ONLY:
            source = await self._detect_only(text)
        else:
            source = self._classifier.detect(text)

        # ── Step 2: Unknown source ───────────────────────────────────────────
        if source == UNKNOWN:
            logger.debug("No language detected; skipping translation.")
            return self._fail_all(requested or derive_targets(UNKNOWN), UNKNOWN, UNDETECTED_MESSAGE)

        # ── Step 3: Resolve targets ──────────────────────────────────────────
        resolved = requested or derive_targets(source)
        logger.debug(
            "Translating from %s into %s", source, ", ".join(t.lang.value for t in resolved)
        )

        # ── Step 4/5: Fan out and merge in request order ─────────────────────
        return list(
            await asyncio.gather(
                *(self._translate_target(text, source, target, prefetched) for target in resolved)
            )
        )

    # Name used by the chat layer.
    multi_translate = translate_all

    async def translate(
        self,
        text: str,
        *,
        source: str | None = None,
        target: str | None = None,
    ) -> TranslationSuccess:
        """Translate ``text`` into a single language.

        The source defaults to the rule-based classifier's verdict and the
        target to its counterpart (``ja -> zh``, ``zh -> ja``, otherwise
        ``ja``).  The whole call runs under one gate permit.

        Raises:
            TranslationError: On failure.  Unclassified exceptions are
                wrapped as ``api-error``.
        """
        async with self._gate:
            source_lang = source or self._classifier.detect(text)
            target_lang = target or default_single_target(source_lang).value
            try:
                translated = await self._client.translate(text, source_lang, target_lang)
            except TranslationError:
                raise
            except Exception as exc:
                raise TranslationError(
                    message="Translation failed",
                    kind=ErrorKind.API_ERROR,
                    detail=str(exc),
                ) from exc
        return TranslationSuccess(
            source_lang=source_lang,
            target_lang=target_lang,
            translated_text=translated,
        )

    # ── Detection ─────────────────────────────────────────────────────────────

    async def _auto_detect(self, text: str) -> AutoDetectResult:
        # The combined call picks its own direction, so offer both.
        matches = self._find_matches(text, LanguageCode.JA, LanguageCode.ZH)
        matches += self._find_matches(text, LanguageCode.ZH, LanguageCode.JA)
        hint = generate_prompt_hint(matches)
        async with self._gate:
            result = await self._client.translate_with_auto_detect(text, hint or None)
        logger.debug(
            "AI detection: %s->%s", result.source_lang.value, result.target_lang.value
        )
        return result

    async def _detect_only(self, text: str) -> str:
        try:
            async with self._gate:
                detected = await self._client.detect_language(text)
        except Exception as exc:
            logger.warning(
                "AI language detection failed (%s); falling back to rule-based detection", exc
            )
            return self._classifier.detect(text)
        if detected == UNSUPPORTED:
            return UNKNOWN
        return detected

    # ── Per-target translation ────────────────────────────────────────────────

    async def _translate_target(
        self,
        text: str,
        source: str,
        target: TranslationTarget,
        prefetched: AutoDetectResult | None,
    ) -> Outcome:
        if (
            prefetched is not None
            and prefetched.source_lang == source
            and prefetched.target_lang == target.lang
            and target.output_format == "text"
        ):
            matches = self._find_matches(text, source, target.lang)
            return TranslationSuccess(
                source_lang=source,
                target_lang=target.lang.value,
                translated_text=prefetched.translated_text,
                glossary_hints=tuple(matches),
            )

        try:
            async with self._gate:
                matches = self._find_matches(text, source, target.lang)
                hint = generate_prompt_hint(matches)
                translated = await self._client.translate(
                    text,
                    source,
                    target.lang.value,
                    hint or None,
                    output_format=target.output_format,
                )
        except Exception as exc:
            logger.warning("Translation %s->%s failed: %s", source, target.lang.value, exc)
            return TranslationFailure.from_error(exc, source, target.lang.value)

        return TranslationSuccess(
            source_lang=source,
            target_lang=target.lang.value,
            translated_text=translated,
            glossary_hints=tuple(matches),
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _find_matches(
        self, text: str, source: str, target: LanguageCode
    ) -> list[DictionaryMatch]:
        if self._glossary is None or not self._glossary.is_loaded:
            return []
        return self._glossary.find_matches(text, source, target)

    @staticmethod
    def _fail_all(
        targets: Sequence[TranslationTarget], source: str, message: str
    ) -> list[Outcome]:
        return [
            TranslationFailure(
                source_lang=source,
                target_lang=target.lang.value,
                error_kind=ErrorKind.INVALID_INPUT,
                error_message=message,
            )
            for target in targets
        ]
