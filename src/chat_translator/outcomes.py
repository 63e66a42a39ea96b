"""Per-target translation outcomes and the batch verdict.

A batch returns exactly one :data:`Outcome` per requested target, in
request order.  Each outcome is either a :class:`TranslationSuccess` or a
:class:`TranslationFailure`; both carry a literal ``status`` tag so callers
can branch with ``match`` or a plain comparison.

:func:`resolve_batch` folds a batch into the single decision the chat
layer needs:

- ``deliver``: at least one target succeeded; show the successes.
- ``skip``:    nothing succeeded and the first failure is
  ``invalid-input`` (no detectable or unsupported language); stay silent.
- ``error``:   nothing succeeded for any other reason; surface the first
  failure to the user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from chat_translator.errors import ErrorKind, TranslationError
from chat_translator.glossary import DictionaryMatch


@dataclass(frozen=True)
class TranslationSuccess:
    source_lang: str
    target_lang: str
    translated_text: str
    glossary_hints: tuple[DictionaryMatch, ...] = ()
    status: Literal["success"] = field(default="success", init=False)


@dataclass(frozen=True)
class TranslationFailure:
    source_lang: str
    target_lang: str
    error_kind: ErrorKind
    error_message: str
    status: Literal["error"] = field(default="error", init=False)

    @classmethod
    def from_error(
        cls, error: BaseException, source_lang: str, target_lang: str
    ) -> TranslationFailure:
        """Build a failure from any exception.

        A :class:`TranslationError` keeps its kind; anything else is
        reported as ``api-error``.
        """
        kind = error.kind if isinstance(error, TranslationError) else ErrorKind.API_ERROR
        return cls(
            source_lang=source_lang,
            target_lang=target_lang,
            error_kind=kind,
            error_message=str(error) or type(error).__name__,
        )


Outcome = TranslationSuccess | TranslationFailure


class BatchAction(StrEnum):
    DELIVER = "deliver"
    SKIP = "skip"
    ERROR = "error"


@dataclass(frozen=True)
class BatchVerdict:
    """What the caller should do with a finished batch.

    Attributes:
        action:    One of :class:`BatchAction`.
        successes: Successful outcomes, in request order.
        failure:   First failure of the batch when nothing succeeded.
    """

    action: BatchAction
    successes: tuple[TranslationSuccess, ...] = ()
    failure: TranslationFailure | None = None

    def to_error(self) -> TranslationError:
        """Rebuild the user-visible error for an ``error`` verdict.

        Raises:
            ValueError: If the verdict is not ``error``.
        """
        if self.action is not BatchAction.ERROR or self.failure is None:
            raise ValueError(f"Verdict {self.action.value!r} carries no error")
        return TranslationError(message=self.failure.error_message, kind=self.failure.error_kind)


def resolve_batch(outcomes: list[Outcome]) -> BatchVerdict:
    """Decide whether a batch is delivered, silently skipped, or an error."""
    successes = tuple(o for o in outcomes if isinstance(o, TranslationSuccess))
    if successes:
        return BatchVerdict(action=BatchAction.DELIVER, successes=successes)

    failures = [o for o in outcomes if isinstance(o, TranslationFailure)]
    if not failures:
        # An empty batch has nothing to show and nothing to report.
        return BatchVerdict(action=BatchAction.SKIP)

    first = failures[0]
    if first.error_kind is ErrorKind.INVALID_INPUT:
        return BatchVerdict(action=BatchAction.SKIP, failure=first)
    return BatchVerdict(action=BatchAction.ERROR, failure=first)
