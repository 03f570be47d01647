"""Relay capability and the boundary that tags native failures."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable, Mapping
from typing import Protocol

from relaydispatch.errors import (
    FaultError,
    GenericError,
    OpaqueError,
    RelayError,
    TransientInfraError,
)

logger = py_logging.getLogger(__name__)

Transport = Callable[[str, tuple[object, ...]], Mapping[str, object]]

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (TimeoutError, ConnectionError)


class Relay(Protocol):
    def invoke(self, operation: str, args: tuple[object, ...]) -> Mapping[str, object]: ...


def normalize_fault_code(code: object) -> str:
    """Strip a namespace prefix, e.g. ``aws:Server.ServiceUnavailable``."""
    text = str(getattr(code, "data", code) or "").strip()
    _, sep, local = text.rpartition(":")
    return local if sep else text


def _fault_code(error: BaseException) -> str:
    for attribute in ("faultcode", "fault_code", "code"):
        value = getattr(error, attribute, None)
        if value is not None:
            return normalize_fault_code(value)
    return ""


def translate_exception(
    error: BaseException,
    *,
    fault_types: tuple[type[BaseException], ...] = (),
) -> RelayError:
    if isinstance(error, RelayError):
        return error
    if isinstance(error, _TRANSIENT_TYPES):
        return TransientInfraError(str(error) or type(error).__name__)
    if fault_types and isinstance(error, fault_types):
        return FaultError(str(error) or type(error).__name__, code=_fault_code(error))
    if type(error) is RuntimeError:
        return GenericError(str(error))
    return OpaqueError(repr(error), cause=error)


class TransportRelay:
    """Adapts a plain ``transport(operation, args)`` callable into a :class:`Relay`."""

    def __init__(
        self,
        transport: Transport,
        *,
        fault_types: tuple[type[BaseException], ...] = (),
    ) -> None:
        self._transport = transport
        self._fault_types = fault_types

    def invoke(self, operation: str, args: tuple[object, ...]) -> Mapping[str, object]:
        try:
            return self._transport(operation, args)
        except Exception as exc:
            translated = translate_exception(exc, fault_types=self._fault_types)
            if translated is exc:
                raise
            logger.debug(
                "Relay call operation=%s raised %s; tagged as %s",
                operation,
                type(exc).__name__,
                translated.kind.value,
            )
            raise translated from exc
