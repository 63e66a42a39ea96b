"""Glossary loader and term matcher.

A glossary is a YAML document of fixed term translations (game titles,
character names, jargon) used to bias the model toward canonical
renderings.  It is loaded once at startup and is immutable afterwards, so
a single :class:`Glossary` can be shared by any number of concurrent
translations without locking.

Document shape::

    name: Strinova glossary
    version: "1.0.0"
    description: optional
    entries:
      - id: strinova_game
        category: game_name            # optional
        note: optional free text
        aliases:
          zh: [卡拉彼丘, 卡拉]
          ja: [ストリノヴァ]
        targets:
          ja: ストリノヴァ
          zh: 卡拉彼丘
          en: Strinova

Design notes:
- All dataclasses are frozen.
- :func:`load_glossary` raises :exc:`FileNotFoundError` if the file is
  absent and :exc:`GlossaryValidationError` on any schema violation; one
  malformed entry fails the whole load.  YAML syntax errors propagate as
  :exc:`yaml.YAMLError`.
- Matching is plain substring search.  Longer aliases outrank shorter ones
  of the same entry (``卡拉彼丘`` beats ``卡拉``), and each entry appears at
  most once in the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chat_translator.errors import GlossaryValidationError
from chat_translator.languages import LanguageCode

logger = logging.getLogger(__name__)

#: Categories accepted on an entry.  Validated at load time.
VALID_CATEGORIES: frozenset[str] = frozenset(
    {"game_name", "character", "game_term", "location", "item", "other"}
)

#: Instruction sentence placed before the term list in a prompt hint.
HINT_HEADER = "Use these translations for specific terms:"

# ---------------------------------------------------------------------------
# Typed dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DictionaryEntry:
    """One glossary term.

    Attributes:
        id:       Unique identifier within the glossary.
        aliases:  Per-language spellings that trigger a match.  Every alias
                  is a non-empty string.
        targets:  Per-language canonical rendering of the term.
        category: Optional classification (see :data:`VALID_CATEGORIES`).
        note:     Optional free text for glossary maintainers.
    """

    id: str
    aliases: dict[LanguageCode, tuple[str, ...]]
    targets: dict[LanguageCode, str]
    category: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class DictionaryMatch:
    """A glossary entry found in a text for one translation direction."""

    entry: DictionaryEntry
    matched_language: LanguageCode
    matched_term: str
    target_term: str
    target_language: LanguageCode


@dataclass(frozen=True)
class Glossary:
    """Top-level container for a loaded glossary.

    Attributes:
        name:        Glossary name from the document.
        version:     Glossary version string.
        entries:     Validated entries in document order.
        description: Optional description.
    """

    name: str
    version: str
    entries: tuple[DictionaryEntry, ...] = field(default_factory=tuple)
    description: str | None = None

    def find_matches(
        self,
        text: str,
        source_lang: LanguageCode | str,
        target_lang: LanguageCode | str,
    ) -> list[DictionaryMatch]:
        """Find glossary terms in ``text`` for one translation direction.

        Only entries that have at least one alias in ``source_lang`` *and* a
        rendering in ``target_lang`` are considered.  Results are ordered
        longest matched alias first, one per entry id.

        Args:
            text:        Message text to scan.
            source_lang: Language the aliases must belong to.
            target_lang: Language the rendering must exist in.

        Returns:
            Matches, longest first.  Empty when nothing matched or either
            language is not a :class:`LanguageCode`.
        """
        try:
            source = LanguageCode(source_lang)
            target = LanguageCode(target_lang)
        except ValueError:
            return []

        hits: list[DictionaryMatch] = []
        for entry in self.entries:
            aliases = entry.aliases.get(source)
            if not aliases:
                continue
            target_term = entry.targets.get(target)
            if not target_term:
                continue
            for alias in aliases:
                if alias in text:
                    hits.append(
                        DictionaryMatch(
                            entry=entry,
                            matched_language=source,
                            matched_term=alias,
                            target_term=target_term,
                            target_language=target,
                        )
                    )

        # sorted() is stable, so equal-length hits keep document order.
        hits = sorted(hits, key=lambda m: len(m.matched_term), reverse=True)

        unique: list[DictionaryMatch] = []
        seen_ids: set[str] = set()
        for match in hits:
            if match.entry.id in seen_ids:
                continue
            seen_ids.add(match.entry.id)
            unique.append(match)
        return unique


def generate_prompt_hint(matches: list[DictionaryMatch]) -> str:
    """Render matches as a prompt hint block.

    Each line lists *all* aliases of the matched language, so the model sees
    every spelling it may encounter::

        Use these translations for specific terms:
        - 卡拉彼丘/卡拉 → ストリノヴァ

    Returns:
        The hint block, or ``""`` when ``matches`` is empty.
    """
    if not matches:
        return ""
    lines = []
    for match in matches:
        aliases = match.entry.aliases.get(match.matched_language, ())
        lines.append(f"- {'/'.join(aliases)} → {match.target_term}")
    return HINT_HEADER + "\n" + "\n".join(lines)


class GlossaryMatcher:
    """Holds an optional loaded glossary and answers match queries.

    A matcher without a glossary is valid: every query returns no matches,
    so the orchestrator never has to special-case a missing glossary file.
    """

    def __init__(self, glossary: Glossary | None = None) -> None:
        self._glossary = glossary

    @classmethod
    def from_path(cls, path: str | Path) -> GlossaryMatcher:
        """Load ``path`` and wrap it.  Propagates loader errors."""
        return cls(load_glossary(path))

    @property
    def glossary(self) -> Glossary | None:
        return self._glossary

    @property
    def is_loaded(self) -> bool:
        return self._glossary is not None

    def find_matches(
        self,
        text: str,
        source_lang: LanguageCode | str,
        target_lang: LanguageCode | str,
    ) -> list[DictionaryMatch]:
        if self._glossary is None:
            logger.warning("GlossaryMatcher: no glossary loaded; returning no matches.")
            return []
        return self._glossary.find_matches(text, source_lang, target_lang)

    def hint_for(
        self,
        text: str,
        source_lang: LanguageCode | str,
        target_lang: LanguageCode | str,
    ) -> tuple[str, list[DictionaryMatch]]:
        """Return ``(prompt_hint, matches)`` for one translation direction."""
        matches = self.find_matches(text, source_lang, target_lang)
        return generate_prompt_hint(matches), matches


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_glossary(path: str | Path) -> Glossary:
    """Load and validate a glossary YAML document.

    Args:
        path: Location of the YAML file.

    Returns:
        A fully-constructed, immutable :class:`Glossary`.

    Raises:
        FileNotFoundError:       If ``path`` does not exist.
        GlossaryValidationError: On any schema violation.  The message names
                                 the offending field and entry.
        yaml.YAMLError:          On YAML syntax errors.
    """
    glossary_path = Path(path)
    if not glossary_path.exists():
        raise FileNotFoundError(f"Glossary not found: {glossary_path}")

    try:
        with glossary_path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
        glossary = parse_glossary(raw)
    except (GlossaryValidationError, yaml.YAMLError):
        logger.error("Failed to load glossary from %s", glossary_path, exc_info=True)
        raise

    logger.info(
        "Glossary loaded: name=%r version=%s entries=%d",
        glossary.name,
        glossary.version,
        len(glossary.entries),
    )
    return glossary


def parse_glossary(raw: Any) -> Glossary:
    """Validate an already-parsed document and build a :class:`Glossary`.

    Raises:
        GlossaryValidationError: On any schema violation.
    """
    if not isinstance(raw, dict):
        raise GlossaryValidationError(
            "Glossary validation failed: document must be a mapping at the top level."
        )

    name = raw.get("name")
    if not name:
        raise GlossaryValidationError('Glossary validation failed: "name" is required.')
    version = raw.get("version")
    if not version:
        raise GlossaryValidationError('Glossary validation failed: "version" is required.')

    entries_raw = raw.get("entries")
    if not isinstance(entries_raw, list):
        raise GlossaryValidationError('Glossary validation failed: "entries" must be an array.')

    entries: list[DictionaryEntry] = []
    seen_ids: set[str] = set()
    for index, entry_raw in enumerate(entries_raw):
        entry = _parse_entry(entry_raw, index)
        if entry.id in seen_ids:
            raise GlossaryValidationError(
                f'Glossary validation failed: duplicate id "{entry.id}".'
            )
        seen_ids.add(entry.id)
        entries.append(entry)

    description = raw.get("description")
    return Glossary(
        name=str(name),
        version=str(version),
        entries=tuple(entries),
        description=str(description) if description is not None else None,
    )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _parse_entry(raw: Any, index: int) -> DictionaryEntry:
    """Parse one item of ``entries`` into a :class:`DictionaryEntry`.

    Raises:
        GlossaryValidationError: On missing or invalid fields.
    """
    if not isinstance(raw, dict):
        raise GlossaryValidationError(
            f"Glossary validation failed: entries[{index}] must be a mapping."
        )

    entry_id = raw.get("id")
    if not entry_id:
        raise GlossaryValidationError(
            f'Glossary validation failed: entries[{index}] must have an "id".'
        )
    entry_id = str(entry_id)

    aliases_raw = raw.get("aliases")
    if not isinstance(aliases_raw, dict):
        raise GlossaryValidationError(
            f'Glossary validation failed: entry "{entry_id}" must have "aliases" (a mapping).'
        )
    targets_raw = raw.get("targets")
    if not isinstance(targets_raw, dict):
        raise GlossaryValidationError(
            f'Glossary validation failed: entry "{entry_id}" must have "targets" (a mapping).'
        )

    # ── Aliases ──────────────────────────────────────────────────────────────
    aliases: dict[LanguageCode, tuple[str, ...]] = {}
    for lang in LanguageCode:
        value = aliases_raw.get(lang.value)
        if value is None:
            continue
        if not isinstance(value, list):
            raise GlossaryValidationError(
                f'Glossary validation failed: entry "{entry_id}" aliases.{lang.value} '
                "must be an array."
            )
        for alias in value:
            if not isinstance(alias, str) or not alias.strip():
                raise GlossaryValidationError(
                    f'Glossary validation failed: entry "{entry_id}" has empty or invalid '
                    f"alias in aliases.{lang.value}."
                )
        aliases[lang] = tuple(value)

    # ── Targets ──────────────────────────────────────────────────────────────
    targets: dict[LanguageCode, str] = {}
    for lang in LanguageCode:
        value = targets_raw.get(lang.value)
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise GlossaryValidationError(
                f'Glossary validation failed: entry "{entry_id}" has empty or invalid '
                f"target in targets.{lang.value}."
            )
        targets[lang] = value

    # ── Optional metadata ────────────────────────────────────────────────────
    category = raw.get("category")
    if category is not None and category not in VALID_CATEGORIES:
        raise GlossaryValidationError(
            f'Glossary validation failed: entry "{entry_id}" category must be one of '
            f"{sorted(VALID_CATEGORIES)}, got {category!r}."
        )
    note = raw.get("note")

    return DictionaryEntry(
        id=entry_id,
        aliases=aliases,
        targets=targets,
        category=category,
        note=str(note) if note is not None else None,
    )
