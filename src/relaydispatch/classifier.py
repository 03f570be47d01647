"""Maps relay failures to dispatch actions."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from relaydispatch.errors import ErrorKind, error_kind

logger = py_logging.getLogger(__name__)

DEFAULT_RETRYABLE_PREFIXES = (
    "search",
    "get",
    "register",
    "update",
    "disable",
    "assign",
    "set",
    "dispose",
)
DEFAULT_SERVICE_UNAVAILABLE_CODE = "Server.ServiceUnavailable"
DEFAULT_THROTTLED_MESSAGE = "Throttled"

RetryablePredicate = Callable[[str], bool]


class Classification(str, Enum):
    RETRY_WITH_BACKOFF = "retry_with_backoff"
    RETRY_IMMEDIATE = "retry_immediate"
    IGNORE = "ignore"
    FAIL = "fail"
    UNKNOWN = "unknown"


class Classifier(Protocol):
    def classify(self, error: BaseException, operation: str) -> Classification: ...


@dataclass(frozen=True)
class _PrefixPredicate:
    prefixes: tuple[str, ...]

    def __call__(self, operation: str) -> bool:
        lowered = operation.lower()
        return any(lowered.startswith(prefix) for prefix in self.prefixes)


@dataclass(frozen=True)
class _ExplicitPredicate:
    names: frozenset[str]

    def __call__(self, operation: str) -> bool:
        return operation in self.names


def prefix_predicate(prefixes: Iterable[str] = DEFAULT_RETRYABLE_PREFIXES) -> RetryablePredicate:
    """Treat operations whose name starts with one of ``prefixes`` (any case) as retryable."""
    return _PrefixPredicate(tuple(prefix.lower() for prefix in prefixes if prefix))


def explicit_predicate(names: Iterable[str]) -> RetryablePredicate:
    """Treat exactly the listed operation names as retryable."""
    return _ExplicitPredicate(frozenset(names))


@dataclass(frozen=True)
class ErrorClassifier:
    """Stateless classifier; one instance can serve concurrent dispatch calls."""

    retryable: RetryablePredicate = field(default_factory=prefix_predicate)
    service_unavailable_code: str = DEFAULT_SERVICE_UNAVAILABLE_CODE
    throttled_message: str = DEFAULT_THROTTLED_MESSAGE

    def classify(self, error: BaseException, operation: str) -> Classification:
        classification = self._classify(error, operation)
        logger.debug(
            "Classified error=%r operation=%s as %s",
            error,
            operation,
            classification.value,
        )
        return classification

    def _classify(self, error: BaseException, operation: str) -> Classification:
        kind = error_kind(error)

        if kind is ErrorKind.TRANSIENT_INFRA:
            if self.retryable(operation):
                return Classification.RETRY_IMMEDIATE
            return Classification.UNKNOWN

        if kind is ErrorKind.FAULT:
            if getattr(error, "code", None) == self.service_unavailable_code:
                return Classification.RETRY_WITH_BACKOFF
            return Classification.UNKNOWN

        if kind is ErrorKind.VALIDATION:
            return Classification.FAIL

        if kind is ErrorKind.GENERIC:
            if getattr(error, "message", None) == self.throttled_message:
                return Classification.RETRY_WITH_BACKOFF
            return Classification.RETRY_IMMEDIATE

        return Classification.UNKNOWN
