"""Prompt templates and model-output post-processing.

Every instruction string sent to the completion API is defined here as a
named template so the escalation contract can be audited and tested in
isolation from the HTTP layer.

Templates use ``{{placeholder}}`` markers filled by plain string
replacement.  The message text is always substituted last so that user
text containing ``{{...}}`` cannot collide with a template key.

Translation prompts
-------------------
``NORMAL_TEMPLATE`` is used for the first attempt of a call.  After an
output-validation failure the client switches to ``ESCALATED_TEMPLATE``
for every remaining attempt of that call.  Both forbid answering
questions: chat messages are frequently questions, and a model that
answers instead of translating is the most common failure mode.

Combined detect-and-translate
-----------------------------
``AUTO_DETECT_SYSTEM_PROMPT`` asks the model to pick the direction itself
and to announce it on a first-line tag (``ja->zh`` / ``zh->ja``), or to
reply with the bare ``UNSUPPORTED`` sentinel for any other language.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from chat_translator.languages import UNSUPPORTED, LanguageCode, OutputFormat, language_name

# ── Translation templates ─────────────────────────────────────────────────────

NORMAL_TEMPLATE = """\
You are a professional translator. Translate the following text from \
{{source_language}} to {{target_language}}.

IMPORTANT RULES:
- You MUST translate the text, do NOT return the original text as-is
- Output ONLY the translated text in {{target_language}}
- Do NOT add explanations, notes, or any additional text
- Do NOT echo the source text
- The output must be in {{target_language}}, not {{source_language}}

CRITICAL - You are a TRANSLATOR, not an assistant:
- NEVER answer questions, even if the input is a question
- NEVER provide explanations, analysis, or background information
- Just translate the text literally, preserving the original meaning and tone
- If the input is a question, the output must also be a question

Examples of correct translation:
- Input: 这是真的吗？ → Output: これは本当ですか？
- Input: なぜそうなるの？ → Output: 为什么会这样？{{extra}}

Text to translate:
{{text}}"""

ESCALATED_TEMPLATE = """\
You are a professional translator. This is CRITICAL.

STRICT REQUIREMENTS (FAILURE TO COMPLY WILL RESULT IN ERROR):
1. You MUST translate from {{source_language}} to {{target_language}}
2. NEVER return the original text unchanged
3. Output MUST be in {{target_language}} ONLY
4. Do NOT include any explanations or notes
5. Do NOT echo the source text
6. The translation MUST contain {{target_language}} characters

CRITICAL - You are a TRANSLATOR, not an assistant:
7. NEVER answer questions, even if the input is a question
8. NEVER provide explanations, analysis, or background information about the content
9. Just translate the text literally, preserving the original meaning and tone
10. If the input is a question, the output must also be a question

Examples of correct translation:
- Input: 这是真的吗？ → Output: これは本当ですか？
- Input: なぜそうなるの？ → Output: 为什么会这样？{{extra}}

Now translate this {{source_language}} text to {{target_language}}:
{{text}}"""

MARKDOWN_INSTRUCTION = (
    "Preserve all Markdown formatting (emphasis, lists, links, code spans) "
    "exactly as it appears in the input; translate only the prose."
)

# ── Detection prompts ─────────────────────────────────────────────────────────

DETECT_SYSTEM_PROMPT = """\
You are an assistant that identifies the language of the input text.
You decide between Japanese, Chinese and any other language."""

DETECT_USER_TEMPLATE = '''\
Identify the language of the following text.

Rules:
- Reply "ja" if it is Japanese
- Reply "zh" if it is Chinese (simplified or traditional)
- Reply "unsupported" for any other language

IMPORTANT: output a single word only. No explanations or quotes.

Text:
"""
{{text}}
"""'''

#: Literal reply the combined prompt uses for languages other than ja / zh.
UNSUPPORTED_SENTINEL = "UNSUPPORTED"

AUTO_DETECT_SYSTEM_PROMPT = f"""\
You are a translator between Japanese and Chinese.

Decide the language of the user's text:
- If it is Japanese, translate it into Chinese.
- If it is Chinese (simplified or traditional), translate it into Japanese.
- If it is any other language, reply with exactly {UNSUPPORTED_SENTINEL} and nothing else.

Output format:
- First line: the direction tag, either ja->zh or zh->ja
- Following lines: the translation only

CRITICAL - You are a TRANSLATOR, not an assistant:
- NEVER answer questions, even if the input is a question
- NEVER add explanations, notes, greetings or any text besides the tag and the translation
- Just translate the text literally, preserving the original meaning and tone"""


# ── Builders ──────────────────────────────────────────────────────────────────


def build_prompt(
    text: str,
    source_lang: str,
    target_lang: str,
    hint: str | None = None,
    escalated: bool = False,
    output_format: OutputFormat = "text",
) -> str:
    """Render the translation prompt for one attempt.

    Args:
        text:          Message text to translate.
        source_lang:   Source language code.
        target_lang:   Target language code.
        hint:          Glossary hint block, embedded verbatim when non-blank.
        escalated:     Use the stricter template (after a validation failure).
        output_format: ``"markdown"`` adds an instruction to keep formatting.

    Returns:
        The fully-rendered prompt.
    """
    extra_blocks: list[str] = []
    if output_format == "markdown":
        extra_blocks.append(MARKDOWN_INSTRUCTION)
    if hint and hint.strip():
        extra_blocks.append(hint)
    extra = "".join(f"\n\n{block}" for block in extra_blocks)

    template = ESCALATED_TEMPLATE if escalated else NORMAL_TEMPLATE
    return _render(
        template,
        {
            "source_language": language_name(source_lang),
            "target_language": language_name(target_lang),
            "extra": extra,
        },
        text,
    )


def build_detect_prompt(text: str) -> str:
    """Render the user message for a detection-only call."""
    return _render(DETECT_USER_TEMPLATE, {}, text)


def build_auto_detect_message(text: str, hint: str | None = None) -> str:
    """Render the user message for a combined detect-and-translate call."""
    if hint and hint.strip():
        return f"{hint}\n\nText to translate:\n{text}"
    return f"Text to translate:\n{text}"


def _render(template: str, values: dict[str, str], text: str) -> str:
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace(f"{{{{{key}}}}}", value)
    return rendered.replace("{{text}}", text)


# ── Output post-processing ────────────────────────────────────────────────────

# English lead-ins some models put before the translation.  They can chain
# ("Sure! Here is the translation: ..."), so stripping runs to a fixpoint.
_FILLER_PREFIX_RE = re.compile(
    r"""^\s*(?:
        sure\b[,.!]?
      | certainly\b[,.!]?
      | of\ course\b[,.!]?
      | okay\b[,.!]?
      | here(?:'s|’s|\ is)\ (?:the\ |your\ )?translation\b
            (?:\ from\ \w+\ (?:to|into)\ \w+)?\s*[:：.]?
      | (?:the\ )?translation\s*[:：]
      | translated\ text\s*[:：]
      | output\s*[:：]
    )\s*""",
    re.IGNORECASE | re.VERBOSE,
)

_DIRECTION_TAG_RE = re.compile(
    r"^\s*[\[(]?\s*(ja|zh)\s*(?:->|→|=>|to)\s*(ja|zh)\s*[\])]?\s*[:：]?\s*",
    re.IGNORECASE,
)

_DETECTION_NOISE_RE = re.compile(r"[`\"'.\s]")


@dataclass(frozen=True)
class DirectionTag:
    """Translation direction announced by the model."""

    source_lang: LanguageCode
    target_lang: LanguageCode


def strip_filler_prefixes(text: str) -> str:
    """Remove leading English filler phrases, repeatedly, then trim."""
    current = text.strip()
    while True:
        stripped = _FILLER_PREFIX_RE.sub("", current, count=1).strip()
        if stripped == current:
            return current
        current = stripped


def parse_direction_tag(text: str) -> tuple[DirectionTag | None, str]:
    """Split a leading ``ja->zh`` / ``zh->ja`` tag off the model output.

    Arrow variants (``→``, ``=>``, ``to``) and surrounding brackets are
    accepted.  A tag whose source equals its target is not a direction and
    is left in place.

    Returns:
        ``(tag, remainder)``.  ``tag`` is ``None`` when no valid tag leads
        the text, in which case ``remainder`` is the stripped input.
    """
    stripped = text.strip()
    match = _DIRECTION_TAG_RE.match(stripped)
    if match is None:
        return None, stripped
    source, target = match.group(1).lower(), match.group(2).lower()
    if source == target:
        return None, stripped
    tag = DirectionTag(LanguageCode(source), LanguageCode(target))
    return tag, stripped[match.end():].strip()


def is_unsupported_reply(text: str) -> bool:
    """True when the combined call answered with the unsupported sentinel."""
    cleaned = _DETECTION_NOISE_RE.sub("", text).upper()
    return cleaned == UNSUPPORTED_SENTINEL


def normalize_detection(raw: str) -> str:
    """Map a detection-only reply to ``"ja"``, ``"zh"`` or ``"unsupported"``.

    The reply is lower-cased and stripped of backticks, quotes, periods and
    whitespace before prefix matching, so ``"`ja`."`` and ``"Japanese"``
    both resolve to ``"ja"``.
    """
    cleaned = _DETECTION_NOISE_RE.sub("", raw.strip().lower())
    if cleaned.startswith("ja"):
        return LanguageCode.JA.value
    if cleaned.startswith("zh") or cleaned.startswith("chinese"):
        return LanguageCode.ZH.value
    return UNSUPPORTED
