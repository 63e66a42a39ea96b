"""Error kinds and exceptions shared by the translation pipeline.

Every failure that crosses a component boundary is a
:class:`TranslationError` carrying an :class:`ErrorKind`.  The kind decides
two things: whether the client retries the call, and how the caller
presents a batch that produced no successful translation.

    ============================  =========  ===================================
    Kind                          Retried    Typical cause
    ============================  =========  ===================================
    ``auth``                      no         401 / 403 from the completion API
    ``invalid-input``             no         400, or no detectable language
    ``rate-limit``                yes        429 (``Retry-After`` honoured)
    ``network``                   yes        transport failure or 5xx
    ``api-error``                 no         malformed or unexpected response
    ``validation-error``          yes        model echoed input / wrong script
    ``unsupported-language``      no         source outside ja / zh
    ============================  =========  ===================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure classification used for retry and presentation decisions."""

    AUTH = "auth"
    INVALID_INPUT = "invalid-input"
    RATE_LIMIT = "rate-limit"
    NETWORK = "network"
    API_ERROR = "api-error"
    VALIDATION = "validation-error"
    UNSUPPORTED_LANGUAGE = "unsupported-language"

    @property
    def retryable(self) -> bool:
        """True when the client may repeat the call after this failure."""
        return self in _RETRYABLE


_RETRYABLE: frozenset[ErrorKind] = frozenset(
    {ErrorKind.RATE_LIMIT, ErrorKind.NETWORK, ErrorKind.VALIDATION}
)


@dataclass(eq=False)
class TranslationError(Exception):
    """Raised when a translation or detection call fails.

    Attributes:
        message:     Human-readable error message.
        kind:        Failure classification.
        status_code: HTTP status of the failed response, ``0`` when no
                     response was received.
        retry_after: Server-requested delay in seconds (429 responses only).
        detail:      Response body or extra context, if available.

    Example:
        try:
            await client.translate("こんにちは", "ja", "zh")
        except TranslationError as e:
            if e.kind is ErrorKind.AUTH:
                print("check the API key")
    """

    message: str
    kind: ErrorKind = ErrorKind.API_ERROR
    status_code: int = 0
    retry_after: int | None = None
    detail: str = ""

    def __str__(self) -> str:
        """Return a formatted error message."""
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class UnsupportedLanguageError(TranslationError):
    """The completion API reported a source language outside ja / zh.

    Not a failure from the batch's point of view: the orchestrator turns it
    into one benign ``invalid-input`` outcome per target.
    """

    def __init__(self, message: str = "Unsupported source language") -> None:
        super().__init__(message=message, kind=ErrorKind.UNSUPPORTED_LANGUAGE)


class GlossaryValidationError(ValueError):
    """A glossary document is malformed.  The message names the offending field."""


def kind_for_status(status_code: int) -> ErrorKind:
    """Map a non-2xx HTTP status to an :class:`ErrorKind`."""
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 400:
        return ErrorKind.INVALID_INPUT
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code >= 500:
        return ErrorKind.NETWORK
    return ErrorKind.API_ERROR
