"""Classification-driven retry layer in front of a remote-procedure relay."""

from .backoff import BackoffPolicy
from .classifier import (
    Classification,
    ErrorClassifier,
    explicit_predicate,
    prefix_predicate,
)
from .config import DispatchSettings, build_dispatcher, load_settings
from .dispatcher import Dispatcher
from .errors import (
    BackoffExhaustedError,
    ConfigurationError,
    ErrorKind,
    FaultError,
    GenericError,
    IgnoredResult,
    InternalClassifierError,
    OpaqueError,
    RelayDispatchError,
    RelayError,
    TransientInfraError,
    UnknownOutcomeError,
    ValidationError,
    is_ignored,
)
from .events import DispatchEvent, LoggingSink, RecordingSink
from .logging import configure_logging
from .relay import Relay, TransportRelay, translate_exception
from .validator import ResponseValidator

__all__ = [
    "BackoffPolicy",
    "Classification",
    "ErrorClassifier",
    "explicit_predicate",
    "prefix_predicate",
    "DispatchSettings",
    "build_dispatcher",
    "load_settings",
    "Dispatcher",
    "BackoffExhaustedError",
    "ConfigurationError",
    "ErrorKind",
    "FaultError",
    "GenericError",
    "IgnoredResult",
    "InternalClassifierError",
    "OpaqueError",
    "RelayDispatchError",
    "RelayError",
    "TransientInfraError",
    "UnknownOutcomeError",
    "ValidationError",
    "is_ignored",
    "DispatchEvent",
    "LoggingSink",
    "RecordingSink",
    "configure_logging",
    "Relay",
    "TransportRelay",
    "translate_exception",
    "ResponseValidator",
]
