from __future__ import annotations

import io

import pytest

from relaydispatch.backoff import BackoffPolicy
from relaydispatch.classifier import Classification
from relaydispatch.dispatcher import Dispatcher
from relaydispatch.errors import (
    ConfigurationError,
    FaultError,
    GenericError,
    IgnoredResult,
    InternalClassifierError,
    OpaqueError,
    TransientInfraError,
    UnknownOutcomeError,
    ValidationError,
    is_ignored,
)
from relaydispatch.events import ATTEMPTING, CLASSIFIED, VALIDATED, RecordingSink
from relaydispatch.logging import configure_logging

VALID = {"OperationRequest": {}, "Result": {"Value": 42}}


class FixedClassifier:
    def __init__(self, classification: object) -> None:
        self.classification = classification

    def classify(self, error: BaseException, operation: str) -> object:
        return self.classification


def test_valid_response_is_returned_on_first_attempt(scripted_relay, sleeper) -> None:
    relay = scripted_relay(VALID)

    result = Dispatcher(relay, sleep=sleeper).dispatch("getWidget", "w-1", 2)

    assert result is VALID
    assert relay.calls == [("getWidget", ("w-1", 2))]
    assert sleeper.delays == []


def test_service_unavailable_backs_off_then_succeeds(scripted_relay, sleeper) -> None:
    unavailable = FaultError("down", code="Server.ServiceUnavailable")
    relay = scripted_relay(unavailable, unavailable, VALID)
    policy = BackoffPolicy()

    result = Dispatcher(relay, policy=policy, sleep=sleeper).dispatch("createWidget")

    assert result is VALID
    assert len(relay.calls) == 3
    assert sleeper.delays == [policy.delay(1), policy.delay(2)]


def test_always_throttled_exhausts_budget_and_raises_original(scripted_relay, sleeper) -> None:
    throttled = GenericError("Throttled")
    relay = scripted_relay(throttled)

    with pytest.raises(GenericError) as excinfo:
        Dispatcher(relay, sleep=sleeper).dispatch("createWidget")

    assert excinfo.value is throttled
    assert len(relay.calls) == 7
    assert sleeper.delays == pytest.approx([0.1 * 2**attempt for attempt in range(1, 7)])


def test_validation_error_fails_without_retry(scripted_relay, sleeper) -> None:
    invalid = ValidationError("bad input", response={"Errors": {}})
    relay = scripted_relay(invalid, VALID)

    with pytest.raises(ValidationError) as excinfo:
        Dispatcher(relay, sleep=sleeper).dispatch("getWidget")

    assert excinfo.value is invalid
    assert len(relay.calls) == 1
    assert sleeper.delays == []


def test_transient_error_retries_immediately_for_retryable_operation(
    scripted_relay, sleeper
) -> None:
    relay = scripted_relay(TransientInfraError("timeout"), VALID)

    result = Dispatcher(relay, sleep=sleeper).dispatch("getWidget")

    assert result is VALID
    assert len(relay.calls) == 2
    assert sleeper.delays == []


def test_immediate_retries_are_bounded(scripted_relay, sleeper) -> None:
    oops = GenericError("Oops")
    relay = scripted_relay(oops)

    with pytest.raises(GenericError) as excinfo:
        Dispatcher(relay, policy=BackoffPolicy(max_attempts=2), sleep=sleeper).dispatch("op")

    assert excinfo.value is oops
    assert len(relay.calls) == 3
    assert sleeper.delays == []


def test_transient_error_on_unsafe_operation_is_unknown(scripted_relay, sleeper) -> None:
    timeout = TransientInfraError("timeout")
    relay = scripted_relay(timeout)

    with pytest.raises(UnknownOutcomeError) as excinfo:
        Dispatcher(relay, sleep=sleeper).dispatch("createWidget", "blue")

    error = excinfo.value
    assert error.error is timeout
    assert error.operation == "createWidget"
    assert error.call_args == ("blue",)
    assert error.__cause__ is timeout
    assert "createWidget" in str(error)
    assert len(relay.calls) == 1


def test_opaque_error_is_wrapped_as_unknown(scripted_relay, sleeper) -> None:
    relay = scripted_relay(OpaqueError("weird"))

    with pytest.raises(UnknownOutcomeError):
        Dispatcher(relay, sleep=sleeper).dispatch("getWidget")


def test_throttling_inside_response_drives_backoff(scripted_relay, sleeper) -> None:
    throttled_response = {"Errors": {"Error": {"Code": "ServiceUnavailable"}}}
    relay = scripted_relay(throttled_response, VALID)

    result = Dispatcher(relay, sleep=sleeper).dispatch("createWidget")

    assert result is VALID
    assert sleeper.delays == [pytest.approx(0.2)]


def test_invalid_response_is_not_returned(scripted_relay, sleeper) -> None:
    relay = scripted_relay({"Errors": {"Error": {"Code": "AWS.BadThing"}}})

    with pytest.raises(ValidationError) as excinfo:
        Dispatcher(relay, sleep=sleeper).dispatch("getWidget")

    assert "Errors" in excinfo.value.reason
    assert len(relay.calls) == 1


def test_ignore_classification_returns_ignored_result(scripted_relay, sleeper) -> None:
    failure = GenericError("not important")
    relay = scripted_relay(failure)
    dispatcher = Dispatcher(
        relay,
        classifier=FixedClassifier(Classification.IGNORE),  # type: ignore[arg-type]
        sleep=sleeper,
    )

    result = dispatcher.dispatch("disableWidget", 7)

    assert isinstance(result, IgnoredResult)
    assert is_ignored(result)
    assert result.error is failure
    assert result.operation == "disableWidget"
    assert result.args == (7,)


def test_unrecognized_classification_is_fatal(scripted_relay, sleeper) -> None:
    relay = scripted_relay(GenericError("Oops"))
    dispatcher = Dispatcher(
        relay,
        classifier=FixedClassifier("Unkown"),  # type: ignore[arg-type]
        sleep=sleeper,
    )

    with pytest.raises(InternalClassifierError) as excinfo:
        dispatcher.dispatch("getWidget")

    assert excinfo.value.classification == "Unkown"
    assert len(relay.calls) == 1


def test_non_relay_exceptions_from_relay_are_classified(scripted_relay, sleeper) -> None:
    relay = scripted_relay(ZeroDivisionError("boom"))

    with pytest.raises(UnknownOutcomeError) as excinfo:
        Dispatcher(relay, sleep=sleeper).dispatch("getWidget")

    assert isinstance(excinfo.value.error, ZeroDivisionError)


def test_events_are_emitted_in_order(scripted_relay, sleeper) -> None:
    sink = RecordingSink()
    relay = scripted_relay(GenericError("Oops"), VALID)

    Dispatcher(relay, sink=sink, sleep=sleeper).dispatch("getWidget")

    assert [(event.name, event.attempt) for event in sink.events] == [
        (ATTEMPTING, 1),
        (CLASSIFIED, 1),
        (ATTEMPTING, 2),
        (VALIDATED, 2),
    ]
    assert sink.named(CLASSIFIED)[0].detail.endswith("retry_immediate")
    assert sink.named(VALIDATED)[0].detail == "ok"


def test_failed_validation_is_reported_before_classification(scripted_relay, sleeper) -> None:
    sink = RecordingSink()
    relay = scripted_relay({"Nothing": {}})

    with pytest.raises(ValidationError):
        Dispatcher(relay, sink=sink, sleep=sleeper).dispatch("getWidget")

    assert [event.name for event in sink.events] == [ATTEMPTING, VALIDATED, CLASSIFIED]
    assert sink.named(VALIDATED)[0].detail.startswith("error:")


def test_failing_sink_does_not_change_outcome(scripted_relay, sleeper) -> None:
    class BrokenSink:
        def emit(self, event: object) -> None:
            raise RuntimeError("sink down")

    relay = scripted_relay(VALID)

    assert Dispatcher(relay, sink=BrokenSink(), sleep=sleeper).dispatch("getWidget") is VALID


def test_missing_relay_is_rejected() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        Dispatcher(None)  # type: ignore[arg-type]

    assert "relay" in str(excinfo.value)


def test_relay_without_invoke_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        Dispatcher(object())  # type: ignore[arg-type]


def test_list_shaped_throttle_response_drives_one_backoff(scripted_relay, sleeper) -> None:
    relay = scripted_relay({"Errors": [{"Code": "ServiceUnavailable"}]}, {"Result": {}})

    result = Dispatcher(relay, sleep=sleeper).dispatch("createWidget")

    assert result == {"Result": {}}
    assert len(relay.calls) == 2
    assert sleeper.delays == [pytest.approx(0.2)]


def test_validated_events_carry_the_response(scripted_relay, sleeper) -> None:
    sink = RecordingSink()
    rejected = {"Nothing": {}}
    relay = scripted_relay(GenericError("Oops"), rejected, VALID)

    with pytest.raises(ValidationError):
        Dispatcher(relay, sink=sink, sleep=sleeper).dispatch("getWidget")

    validated = sink.named(VALIDATED)
    assert [event.payload for event in validated] == [rejected]
    assert all(event.payload is None for event in sink.named(ATTEMPTING))


def test_successful_validation_event_carries_the_response(scripted_relay, sleeper) -> None:
    sink = RecordingSink()
    relay = scripted_relay(VALID)

    Dispatcher(relay, sink=sink, sleep=sleeper).dispatch("getWidget")

    assert sink.named(VALIDATED)[0].payload is VALID


def test_exhausted_retries_log_user_facing_error(scripted_relay, sleeper) -> None:
    stream = io.StringIO()
    configure_logging("WARN", stream)
    relay = scripted_relay(GenericError("Oops", hint="Check the widget id"))

    with pytest.raises(GenericError):
        Dispatcher(relay, policy=BackoffPolicy(max_attempts=1), sleep=sleeper).dispatch("op")

    output = stream.getvalue()
    assert "Retries exhausted for op after 2 attempts" in output
    assert "Error: Oops. Next step: Check the widget id" in output


def test_unknown_outcome_logs_user_facing_error(scripted_relay, sleeper) -> None:
    stream = io.StringIO()
    configure_logging("ERROR", stream)
    relay = scripted_relay(OpaqueError("weird"))

    with pytest.raises(UnknownOutcomeError):
        Dispatcher(relay, sleep=sleeper).dispatch("getWidget")

    assert "Unrecognized outcome from getWidget: Error: weird." in stream.getvalue()
