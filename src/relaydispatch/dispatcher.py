"""Relay dispatch with classification-driven retries."""

from __future__ import annotations

import logging as py_logging
import time
from collections.abc import Callable, Mapping

from relaydispatch.backoff import BackoffPolicy
from relaydispatch.classifier import Classification, Classifier, ErrorClassifier
from relaydispatch.errors import (
    ConfigurationError,
    IgnoredResult,
    InternalClassifierError,
    UnknownOutcomeError,
    describe_error,
)
from relaydispatch.events import ATTEMPTING, CLASSIFIED, VALIDATED, DispatchEvent, EventSink
from relaydispatch.relay import Relay
from relaydispatch.validator import ResponseValidator

logger = py_logging.getLogger(__name__)

Response = Mapping[str, object]


class Dispatcher:
    """Invokes relay operations and resolves failures to retry, ignore, or raise.

    Each :meth:`dispatch` call runs on the calling thread. The only suspension
    point is the backoff ``sleep``, which cannot be interrupted from here.
    """

    def __init__(
        self,
        relay: Relay,
        *,
        policy: BackoffPolicy | None = None,
        classifier: Classifier | None = None,
        validator: ResponseValidator | None = None,
        sink: EventSink | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if relay is None:
            raise ConfigurationError(
                "Missing parameters: relay",
                hint="Pass an object exposing invoke(operation, args).",
            )
        if not callable(getattr(relay, "invoke", None)):
            raise ConfigurationError(
                f"Relay {type(relay).__name__} has no callable invoke().",
                hint="Wrap plain callables with relaydispatch.relay.TransportRelay.",
            )
        self.relay = relay
        self.policy = policy or BackoffPolicy()
        self.classifier = classifier or ErrorClassifier()
        self.validator = validator or ResponseValidator()
        self.sink = sink
        self._sleep = sleep

    def dispatch(self, operation: str, *args: object) -> Response | IgnoredResult:
        attempt = 1
        while True:
            self._emit(ATTEMPTING, operation, attempt)
            logger.debug("Dispatching call to %s (try %s)", operation, attempt)
            try:
                response = self.relay.invoke(operation, args)
                self._validate(response, operation, attempt)
                return response
            except Exception as error:
                classification = self.classifier.classify(error, operation)
                label = getattr(classification, "value", classification)
                self._emit(CLASSIFIED, operation, attempt, f"{error!r} -> {label}")

                if classification is Classification.RETRY_WITH_BACKOFF:
                    if self.policy.can_retry(attempt):
                        delay = self.policy.delay(attempt)
                        logger.debug("Backing off %.3fs before retrying %s", delay, operation)
                        self._sleep(delay)
                        attempt += 1
                        continue
                    logger.warning(
                        "Retries exhausted for %s after %s attempts: %s",
                        operation,
                        attempt,
                        describe_error(error),
                    )
                    raise
                if classification is Classification.RETRY_IMMEDIATE:
                    if self.policy.can_retry(attempt):
                        attempt += 1
                        continue
                    logger.warning(
                        "Retries exhausted for %s after %s attempts: %s",
                        operation,
                        attempt,
                        describe_error(error),
                    )
                    raise
                if classification is Classification.IGNORE:
                    logger.debug("Ignoring error from %s: %r", operation, error)
                    return IgnoredResult(error=error, operation=operation, args=args)
                if classification is Classification.UNKNOWN:
                    logger.error(
                        "Unrecognized outcome from %s: %s", operation, describe_error(error)
                    )
                    raise UnknownOutcomeError(
                        f"Unrecognized outcome from {operation}",
                        hint="Inspect the wrapped error and the call arguments.",
                        error=error,
                        operation=operation,
                        call_args=args,
                    ) from error
                if classification is Classification.FAIL:
                    raise
                raise InternalClassifierError(
                    f"Unknown error handling method: {classification!r}",
                    hint="Classifiers must return a Classification member.",
                    classification=classification,
                ) from error

    def _validate(self, response: Response, operation: str, attempt: int) -> None:
        try:
            self.validator.validate(response)
        except Exception as error:
            self._emit(VALIDATED, operation, attempt, f"error: {error!r}", payload=response)
            raise
        self._emit(VALIDATED, operation, attempt, "ok", payload=response)

    def _emit(
        self,
        name: str,
        operation: str,
        attempt: int,
        detail: str = "",
        *,
        payload: object = None,
    ) -> None:
        if self.sink is None:
            return
        try:
            self.sink.emit(
                DispatchEvent(
                    name=name,
                    operation=operation,
                    attempt=attempt,
                    detail=detail,
                    payload=payload,
                )
            )
        except Exception:
            logger.exception("Event sink failed on %s event for %s", name, operation)
