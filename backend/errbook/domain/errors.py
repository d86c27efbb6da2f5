"""AI failure taxonomy.

Upstream SDKs and HTTP endpoints fail with heterogeneous messages. They are
mapped onto four kinds by substring matching against ``ERROR_PATTERNS``;
only ``AI_CONNECTION_FAILED`` is worth retrying.
"""

from __future__ import annotations

from enum import Enum


class AIErrorKind(str, Enum):
    CONNECTION_FAILED = "AI_CONNECTION_FAILED"
    AUTH_ERROR = "AI_AUTH_ERROR"
    RESPONSE_ERROR = "AI_RESPONSE_ERROR"
    UNKNOWN_ERROR = "AI_UNKNOWN_ERROR"

    @property
    def retryable(self) -> bool:
        return self is AIErrorKind.CONNECTION_FAILED


# Checked in order; the first kind with a matching substring wins.
ERROR_PATTERNS: tuple[tuple[AIErrorKind, tuple[str, ...]], ...] = (
    (AIErrorKind.CONNECTION_FAILED, ("fetch failed", "network", "connect")),
    (AIErrorKind.RESPONSE_ERROR, ("invalid json", "parse")),
    (AIErrorKind.AUTH_ERROR, ("api key", "unauthorized", "401")),
)


class AIServiceError(Exception):
    def __init__(self, kind: AIErrorKind, detail: str | None = None):
        self.kind = kind
        self.detail = detail
        message = kind.value if not detail else f"{kind.value}: {detail}"
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


def classify_message(message: str) -> AIErrorKind:
    lowered = (message or "").lower()
    for kind, needles in ERROR_PATTERNS:
        if any(needle in lowered for needle in needles):
            return kind
    return AIErrorKind.UNKNOWN_ERROR


def classify_error(exc: BaseException) -> AIErrorKind:
    if isinstance(exc, AIServiceError):
        return exc.kind
    return classify_message(str(exc))
