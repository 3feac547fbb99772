"""
Shared fixtures for the SASM test suite.

- ScriptedInput: an input provider fed from a list of lines
- CapturedOutput: an output sink that records everything written
- RecordingSleeper: a sleeper that records requested durations
- make_interpreter(): builds an Interpreter wired to the three above
"""

from typing import Callable, Iterable, List, Optional

import numpy as np
import pytest

from interpreter import ExecutionState, Executor, Interpreter, seed_internal_variables
from parser import parse_line


class ScriptedInput:
    def __init__(self, lines: Iterable[str] = ()) -> None:
        self.lines: List[str] = list(lines)

    def __call__(self) -> str:
        if not self.lines:
            raise EOFError
        return self.lines.pop(0)


class CapturedOutput:
    def __init__(self) -> None:
        self.chunks: List[str] = []

    def __call__(self, text: str) -> None:
        self.chunks.append(text)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


class RecordingSleeper:
    def __init__(self) -> None:
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def output() -> CapturedOutput:
    return CapturedOutput()


@pytest.fixture
def scripted_input() -> ScriptedInput:
    return ScriptedInput()


@pytest.fixture
def sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def executor(output, scripted_input, sleeper) -> Executor:
    return Executor(
        input_provider=scripted_input,
        output_sink=output,
        rng=np.random.default_rng(1234),
        sleeper=sleeper,
    )


@pytest.fixture
def state() -> ExecutionState:
    fresh = ExecutionState()
    seed_internal_variables(fresh.storage, "testos")
    return fresh


@pytest.fixture
def run_lines(executor, state) -> Callable[..., ExecutionState]:
    """Execute source lines one by one against the shared state."""

    def _run(*lines: str) -> ExecutionState:
        for line in lines:
            executor.execute(parse_line(line), state)
        return state

    return _run


@pytest.fixture
def make_interpreter(output, scripted_input, sleeper) -> Callable[..., Interpreter]:
    def _make(source: str, *, inputs: Optional[Iterable[str]] = None, **kwargs) -> Interpreter:
        if inputs is not None:
            scripted_input.lines = list(inputs)
        kwargs.setdefault("rng", np.random.default_rng(1234))
        kwargs.setdefault("platform_name", "testos")
        return Interpreter(
            source=source,
            input_provider=scripted_input,
            output_sink=output,
            sleeper=sleeper,
            **kwargs,
        )

    return _make
