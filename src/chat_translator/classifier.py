"""Rule-based Japanese / Chinese language classifier.

``detect_language`` is a pure function over script and punctuation
features.  It is tuned for short chat messages, which frequently carry no
punctuation at all, and returns ``"ja"``, ``"zh"`` or ``"unknown"``.

Decision order (first rule that fires wins)
-------------------------------------------
1. **Kana** (hiragana or katakana) → ``ja``.
2. **Simplified-only hanzi** (这, 们, 过, 说, ...) → ``zh``, even when
   Japanese punctuation is also present.
3. **Japanese-only punctuation** 『』「」、・ → ``ja``.  The ideographic full
   stop 。 is shared by both languages and is not in this set.
4. **Chinese / full-width punctuation** ，。？！：；“”‘’【】（） → ``zh``.
5. **Bare ideographs** with none of the above: Chinese grammar patterns
   (在+verb, 会+verb, 或者, sentence-final 吗/呢/啊/吧, ...) win over
   Japanese word clusters (日本, 会社, 時間, ...).  When neither fires the
   text is classified as ``zh``.
6. **No CJK at all** → ``unknown``.
"""

from __future__ import annotations

import re

from chat_translator.languages import UNKNOWN, LanguageCode

_KANA_RE = re.compile(r"[\u3040-\u30ff]")

_IDEOGRAPH_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff]")

# Simplified forms that do not occur in Japanese orthography.  Characters
# shared with Japanese (国, 会, 時, 動, 電, 開 ...) must not be listed here.
_SIMPLIFIED_ONLY_RE = re.compile(r"[坏弄彻过这为们务产实际关现发经说话么还对门问题习啊哦吗呢]")

_JA_PUNCTUATION_RE = re.compile(r"[『』「」、・]")

_ZH_PUNCTUATION_RE = re.compile(r"[，。？！：；“”‘’【】（）]")

_ZH_VERBS = "看做说写玩吃打去来想找听学用买走跑睡等有是变被给让"

_ZH_GRAMMAR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"在[{_ZH_VERBS}]"),
    re.compile(rf"会[{_ZH_VERBS}]"),
    re.compile(r"或者"),
    re.compile(r"[吗呢啊吧]"),
    re.compile(r"[要用再了]"),
)

_JA_WORD_CLUSTERS: tuple[str, ...] = (
    "日本",
    "東京",
    "大阪",
    "京都",
    "北海道",
    "沖縄",
    "関西",
    "会社",
    "時間",
    "人間",
    "今日",
    "明日",
    "昨日",
    "今年",
    "来年",
    "午後",
    "先生",
    "写真",
    "勉強",
    "大丈夫",
    "東西南北",
)


def detect_language(text: str) -> str:
    """Classify ``text`` as ``"ja"``, ``"zh"`` or ``"unknown"``."""
    if not text or not text.strip():
        return UNKNOWN

    if _KANA_RE.search(text):
        return LanguageCode.JA.value
    if _SIMPLIFIED_ONLY_RE.search(text):
        return LanguageCode.ZH.value
    if _JA_PUNCTUATION_RE.search(text):
        return LanguageCode.JA.value
    if _ZH_PUNCTUATION_RE.search(text):
        return LanguageCode.ZH.value

    if _IDEOGRAPH_RE.search(text):
        if any(pattern.search(text) for pattern in _ZH_GRAMMAR_PATTERNS):
            return LanguageCode.ZH.value
        if any(cluster in text for cluster in _JA_WORD_CLUSTERS):
            return LanguageCode.JA.value
        return LanguageCode.ZH.value

    return UNKNOWN


def contains_cjk(text: str) -> bool:
    """True when ``text`` has at least one kana or CJK ideograph."""
    return bool(_KANA_RE.search(text) or _IDEOGRAPH_RE.search(text))


class LanguageClassifier:
    """Object wrapper around :func:`detect_language` for dependency injection."""

    def detect(self, text: str) -> str:
        return detect_language(text)
