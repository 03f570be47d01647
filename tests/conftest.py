from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

import pytest


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        if "property" in path.parts:
            item.add_marker(pytest.mark.property)


class ScriptedRelay:
    """Relay double that replays raised errors or returned responses in order."""

    def __init__(self, outcomes: Iterable[object]) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, tuple[object, ...]]] = []

    def invoke(self, operation: str, args: tuple[object, ...]) -> Mapping[str, object]:
        self.calls.append((operation, args))
        index = min(len(self.calls), len(self._outcomes)) - 1
        outcome = self._outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome  # type: ignore[return-value]


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def scripted_relay() -> Callable[..., ScriptedRelay]:
    def build(*outcomes: object) -> ScriptedRelay:
        return ScriptedRelay(outcomes)

    return build
