"""Relay error variants and dispatcher failure shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar


class ErrorKind(str, Enum):
    TRANSIENT_INFRA = "transient_infra"
    FAULT = "fault"
    VALIDATION = "validation"
    GENERIC = "generic"
    OPAQUE = "opaque"


@dataclass
class RelayDispatchError(Exception):
    message: str
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


class ConfigurationError(RelayDispatchError):
    """Dispatcher or policy was built with invalid collaborators or values."""


class BackoffExhaustedError(RelayDispatchError):
    """A backoff delay was requested for an attempt past the retry budget."""


@dataclass
class RelayError(RelayDispatchError):
    """Base of the tagged union raised across the relay boundary."""

    kind: ClassVar[ErrorKind] = ErrorKind.OPAQUE


@dataclass
class TransientInfraError(RelayError):
    kind: ClassVar[ErrorKind] = ErrorKind.TRANSIENT_INFRA


@dataclass
class FaultError(RelayError):
    kind: ClassVar[ErrorKind] = ErrorKind.FAULT

    code: str = ""

    def __str__(self) -> str:
        text = super().__str__()
        if self.code:
            return f"[{self.code}] {text}"
        return text


@dataclass
class ValidationError(RelayError):
    kind: ClassVar[ErrorKind] = ErrorKind.VALIDATION

    response: object = field(default_factory=dict)
    reason: str = ""


@dataclass
class GenericError(RelayError):
    kind: ClassVar[ErrorKind] = ErrorKind.GENERIC


@dataclass
class OpaqueError(RelayError):
    kind: ClassVar[ErrorKind] = ErrorKind.OPAQUE

    cause: BaseException | None = None


def error_kind(error: BaseException) -> ErrorKind:
    if isinstance(error, RelayError):
        return error.kind
    return ErrorKind.OPAQUE


@dataclass
class UnknownOutcomeError(RelayDispatchError):
    """Classifier could not decide; carries the call for diagnosis.

    ``call_args`` holds the dispatched arguments. ``args`` stays the
    standard exception attribute.
    """

    error: BaseException | None = None
    operation: str = ""
    call_args: tuple[object, ...] = ()

    def __str__(self) -> str:
        detail = (
            f"{self.message} (operation={self.operation}, "
            f"args={self.call_args!r}, error={self.error!r})"
        )
        if self.hint:
            return f"{detail} Hint: {self.hint}"
        return detail


@dataclass
class InternalClassifierError(RelayDispatchError):
    classification: object = None


@dataclass(frozen=True)
class IgnoredResult:
    """Returned instead of a response when a failure is classified as ignorable."""

    error: BaseException
    operation: str = ""
    args: tuple[object, ...] = ()


def is_ignored(value: object) -> bool:
    return isinstance(value, IgnoredResult)


def describe_error(error: BaseException) -> str:
    if isinstance(error, RelayDispatchError):
        if error.hint:
            return f"Error: {error.message}. Next step: {error.hint}"
        return f"Error: {error.message}."
    return f"Error: {error}."
