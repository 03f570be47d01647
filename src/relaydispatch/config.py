"""TOML settings for dispatch policy, with environment overrides."""

from __future__ import annotations

import logging as py_logging
import os
import sys
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from relaydispatch.backoff import (
    DEFAULT_EXPONENT,
    DEFAULT_INITIAL_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    BackoffPolicy,
)
from relaydispatch.classifier import (
    DEFAULT_RETRYABLE_PREFIXES,
    DEFAULT_SERVICE_UNAVAILABLE_CODE,
    DEFAULT_THROTTLED_MESSAGE,
    ErrorClassifier,
    prefix_predicate,
)
from relaydispatch.dispatcher import Dispatcher
from relaydispatch.events import EventSink
from relaydispatch.relay import Relay
from relaydispatch.validator import DEFAULT_RESULT_TAGS, DEFAULT_THROTTLE_CODE, ResponseValidator

logger = py_logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/relaydispatch/config.toml").expanduser()
MAX_ATTEMPTS_ENV = "RELAYDISPATCH_MAX_ATTEMPTS"
INITIAL_DELAY_ENV = "RELAYDISPATCH_INITIAL_DELAY"
BACKOFF_EXPONENT_ENV = "RELAYDISPATCH_BACKOFF_EXPONENT"


class DispatchSettings(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=0)
    initial_delay: float = Field(default=DEFAULT_INITIAL_DELAY, ge=0)
    backoff_exponent: float = Field(default=DEFAULT_EXPONENT, ge=1)
    retryable_prefixes: list[str] = Field(default_factory=lambda: list(DEFAULT_RETRYABLE_PREFIXES))
    service_unavailable_code: str = DEFAULT_SERVICE_UNAVAILABLE_CODE
    throttled_message: str = DEFAULT_THROTTLED_MESSAGE
    throttle_code: str = DEFAULT_THROTTLE_CODE
    result_tags: list[str] = Field(default_factory=lambda: list(DEFAULT_RESULT_TAGS))

    @field_validator("service_unavailable_code", "throttled_message", "throttle_code")
    @classmethod
    def _validate_signal(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Canonical codes and messages cannot be blank")
        return value

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            exponent=self.backoff_exponent,
        )

    def classifier(self) -> ErrorClassifier:
        return ErrorClassifier(
            retryable=prefix_predicate(self.retryable_prefixes),
            service_unavailable_code=self.service_unavailable_code,
            throttled_message=self.throttled_message,
        )

    def validator(self) -> ResponseValidator:
        return ResponseValidator(
            throttle_code=self.throttle_code,
            throttled_message=self.throttled_message,
            result_tags=tuple(self.result_tags),
        )


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _string_list(value: object) -> list[str] | None:
    if not isinstance(value, list):
        return None
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return list(dict.fromkeys(items))


def _number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _env_number(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return None


def _sanitize(raw: dict[str, object]) -> DispatchSettings:
    cfg = DispatchSettings()

    max_attempts = raw.get("max_attempts")
    if isinstance(max_attempts, int) and not isinstance(max_attempts, bool) and max_attempts >= 0:
        cfg.max_attempts = max_attempts

    initial_delay = _number(raw.get("initial_delay"))
    if initial_delay is not None and initial_delay >= 0:
        cfg.initial_delay = initial_delay

    backoff_exponent = _number(raw.get("backoff_exponent"))
    if backoff_exponent is not None and backoff_exponent >= 1:
        cfg.backoff_exponent = backoff_exponent

    prefixes = _string_list(raw.get("retryable_prefixes"))
    if prefixes is not None:
        cfg.retryable_prefixes = prefixes

    result_tags = _string_list(raw.get("result_tags"))
    if result_tags:
        cfg.result_tags = result_tags

    for key in ("service_unavailable_code", "throttled_message", "throttle_code"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            setattr(cfg, key, value.strip())

    return cfg


def _apply_env(cfg: DispatchSettings) -> DispatchSettings:
    env_attempts = _env_number(MAX_ATTEMPTS_ENV)
    if env_attempts is not None and env_attempts >= 0 and env_attempts.is_integer():
        cfg.max_attempts = int(env_attempts)

    env_delay = _env_number(INITIAL_DELAY_ENV)
    if env_delay is not None and env_delay >= 0:
        cfg.initial_delay = env_delay

    env_exponent = _env_number(BACKOFF_EXPONENT_ENV)
    if env_exponent is not None and env_exponent >= 1:
        cfg.backoff_exponent = env_exponent

    return cfg


def load_settings(path: str | Path | None = None) -> DispatchSettings:
    resolved = get_config_path(path)
    if not resolved.exists():
        return _apply_env(DispatchSettings())
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        logger.warning("Could not read dispatch settings from %s; using defaults", resolved)
        return _apply_env(DispatchSettings())
    table = raw.get("dispatch", raw)
    if not isinstance(table, dict):
        return _apply_env(DispatchSettings())
    return _apply_env(_sanitize(table))


def build_dispatcher(
    relay: Relay,
    settings: DispatchSettings | None = None,
    *,
    sink: EventSink | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dispatcher:
    cfg = settings or load_settings()
    return Dispatcher(
        relay,
        policy=cfg.backoff_policy(),
        classifier=cfg.classifier(),
        validator=cfg.validator(),
        sink=sink,
        sleep=sleep,
    )
