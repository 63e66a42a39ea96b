"""Language codes and translation targets.

Only three languages can be translation *targets*: Japanese, Chinese and
English.  Detection can additionally report ``"unknown"`` (the rule-based
classifier found no CJK signal) or ``"unsupported"`` (the completion API
recognised a language outside the supported set).  Those two sentinels are
plain strings, never :class:`LanguageCode` members, so that they cannot be
passed where a target is expected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal


class LanguageCode(StrEnum):
    """Closed set of languages the pipeline can translate into."""

    JA = "ja"
    ZH = "zh"
    EN = "en"


#: Rule-based classifier outcome when no CJK signal is present.
UNKNOWN = "unknown"

#: Completion-API outcome for a language outside ja/zh.
UNSUPPORTED = "unsupported"

#: English names used inside prompts.
LANGUAGE_NAMES: dict[str, str] = {
    LanguageCode.JA: "Japanese",
    LanguageCode.ZH: "Chinese",
    LanguageCode.EN: "English",
}

OutputFormat = Literal["text", "markdown"]


@dataclass(frozen=True)
class TranslationTarget:
    """One output language requested for a translation batch.

    Attributes:
        lang:          Target language.
        output_format: ``"text"`` (default) or ``"markdown"``; markdown
                       asks the model to keep the original formatting.
    """

    lang: LanguageCode
    output_format: OutputFormat = "text"

    @classmethod
    def coerce(cls, value: TranslationTarget | LanguageCode | str) -> TranslationTarget:
        """Build a target from a ``TranslationTarget``, enum member or code string.

        Raises:
            ValueError: If ``value`` is a string that is not a known code.
        """
        if isinstance(value, TranslationTarget):
            return value
        return cls(lang=LanguageCode(str(value).strip().lower()))


def language_name(code: str) -> str:
    """Return the English name for ``code``, or the code itself if unmapped."""
    return LANGUAGE_NAMES.get(code, code)


def derive_targets(source_lang: str) -> list[TranslationTarget]:
    """Return the default target set for a detected source language.

    ``zh`` fans out to Japanese and English; every other source, including
    ``ja`` and the detection sentinels, fans out to Chinese and English.
    """
    if source_lang == LanguageCode.ZH:
        return [TranslationTarget(LanguageCode.JA), TranslationTarget(LanguageCode.EN)]
    return [TranslationTarget(LanguageCode.ZH), TranslationTarget(LanguageCode.EN)]


def default_single_target(source_lang: str) -> LanguageCode:
    """Return the counterpart language used by single-target translation.

    ``ja -> zh`` and ``zh -> ja``; anything else is translated into Japanese.
    """
    if source_lang == LanguageCode.JA:
        return LanguageCode.ZH
    return LanguageCode.JA
