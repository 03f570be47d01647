"""Checks decoded relay responses for embedded errors and a result payload."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from relaydispatch.classifier import DEFAULT_THROTTLED_MESSAGE
from relaydispatch.errors import GenericError, ValidationError

logger = py_logging.getLogger(__name__)

Response = Mapping[str, object]

DEFAULT_THROTTLE_CODE = "ServiceUnavailable"
DEFAULT_RESULT_PATTERN = "Result"
DEFAULT_RESULT_TAGS = (
    "HIT",
    "Qualification",
    "QualificationType",
    "QualificationRequest",
    "Information",
)


def _as_items(value: object) -> list[Mapping[str, object]]:
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [item for item in value if isinstance(item, Mapping)]
    return []


def _has_errors(container: object) -> bool:
    if not isinstance(container, Mapping):
        return False
    errors = container.get("Errors")
    if errors is None:
        return False
    if isinstance(errors, (Mapping, Sequence)) and not isinstance(errors, (str, bytes)):
        return len(errors) > 0
    return True


@dataclass(frozen=True)
class ResponseValidator:
    throttle_code: str = DEFAULT_THROTTLE_CODE
    throttled_message: str = DEFAULT_THROTTLED_MESSAGE
    result_pattern: str = DEFAULT_RESULT_PATTERN
    result_tags: tuple[str, ...] = DEFAULT_RESULT_TAGS

    def is_result_tag(self, tag: object) -> bool:
        name = str(tag)
        return self.result_pattern in name or name in self.result_tags

    def validate(self, response: object) -> Response:
        """Return ``response`` unchanged, or raise the error it carries.

        A throttling entry under ``Errors`` raises :class:`GenericError` with the
        throttled signal so it is retried with backoff. Every other problem raises
        :class:`ValidationError`.
        """
        if not isinstance(response, Mapping):
            raise ValidationError(
                "Relay returned a non-mapping response.",
                response=response,
                reason="response is not a mapping",
            )

        if self._is_throttled(response):
            logger.debug("Response carries throttling code=%s", self.throttle_code)
            raise GenericError(self.throttled_message)

        if _has_errors(response.get("OperationRequest")):
            raise ValidationError(
                "Relay response carries operation errors.",
                response=response,
                reason="operation request errors",
            )

        result_tag = self._result_tag(response)
        logger.debug("Using result tag <%s>", result_tag)

        for item in _as_items(response[result_tag]):
            if _has_errors(item.get("Request")):
                raise ValidationError(
                    f"Relay result <{result_tag}> carries request errors.",
                    response=response,
                    reason="result request errors",
                )
        return response

    def _is_throttled(self, response: Response) -> bool:
        errors = response.get("Errors")
        if isinstance(errors, Mapping):
            entries = _as_items(errors.get("Error"))
        else:
            entries = []
            for item in _as_items(errors):
                entries.extend(_as_items(item.get("Error")) if "Error" in item else [item])
        return any(entry.get("Code") == self.throttle_code for entry in entries)

    def _result_tag(self, response: Response) -> str:
        tags = [key for key in response if self.is_result_tag(key)]
        if not tags:
            reason = "no acceptable result tag among: " + _join(response)
            raise ValidationError(
                f"Relay response is missing a result tag; {reason}.",
                response=response,
                reason=reason,
            )
        if len(tags) > 1:
            reason = "ambiguous result tags: " + _join(tags)
            raise ValidationError(
                f"Relay response has more than one result tag; {reason}.",
                response=response,
                reason=reason,
            )
        return tags[0]


def _join(names: Iterable[object]) -> str:
    return ", ".join(str(name) for name in names)
