from __future__ import annotations
import json
import os
import platform
import re
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

import numpy as np

from hooks import HookRegistry, StepContext
from lexer import SASMError, IllegalIdentifier
from parser import (
    INT64_MAX,
    INT64_MIN,
    TYPE_NUMBER,
    TYPE_TEXT,
    Add,
    Clear,
    Compare,
    CreateVariable,
    Decrement,
    Delete,
    Die,
    Divide,
    Dump,
    Expression,
    Format,
    GenerateRandomNumber,
    Identifier,
    Increment,
    Instruction,
    Jump,
    JumpEqual,
    JumpNotEqual,
    Length,
    Literal,
    Move,
    Multiply,
    Parser,
    Pop,
    Power,
    Print,
    Program,
    Push,
    ReadNumericValue,
    ReadStringValue,
    Ref,
    Sleep,
    SourceLocation,
    Subtract,
    Value,
)


SASM_VERSION = "0.4.0"

# Most recent state entries kept for tracebacks.
DEFAULT_HISTORY = 1024

_UINT64_RANGE = 2 ** 64
_PLACEHOLDER_RE = re.compile(r"\{([a-zA-Z]\w*)\}", re.ASCII)
_INPUT_NUMBER_RE = re.compile(r"[+-]?[0-9]+")


class SASMRuntimeError(SASMError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        rewrite_rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rewrite_rule = rewrite_rule
        # 1-based instruction line and rendered instruction, filled in by the driver.
        self.position: Optional[int] = None
        self.instruction: Optional[str] = None
        self.step_index: Optional[int] = None


class IllegalGoto(SASMRuntimeError):
    def __init__(self, line: int) -> None:
        super().__init__(f"Illegal jump to line {line}")
        self.line = line


class UndefinedVariable(SASMRuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Undefined variable '{name}'")
        self.name = name


class DuplicateVariableDefinition(SASMRuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Variable '{name}' has already been defined")
        self.name = name


class NullDereference(SASMRuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Variable '{name}' does not have a value")
        self.name = name


class IllegalMathOperand(SASMRuntimeError):
    def __init__(self, got: str) -> None:
        super().__init__(f"This operation requires a variable of type '{TYPE_NUMBER}', got '{got}'")
        self.got = got


class MismatchedTypes(SASMRuntimeError):
    def __init__(self, *, got: str, expected: str) -> None:
        super().__init__(f"Expected expression of type '{expected}', got '{got}'")
        self.got = got
        self.expected = expected


class DivisionByZero(SASMRuntimeError):
    def __init__(self) -> None:
        super().__init__("Division by zero")


class IllegalWriteToInternal(SASMRuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Internal variable '{name}' is read-only")
        self.name = name


class IllegalCreateOfInternal(SASMRuntimeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Cannot create variable '{name}': names starting with '_' are reserved")
        self.name = name


class UnsizedObject(SASMRuntimeError):
    def __init__(self, type_name: str) -> None:
        super().__init__(f"Object of type '{type_name}' has no length")
        self.type_name = type_name


class NumericConversionFailure(SASMRuntimeError):
    pass


class SASMIOError(SASMRuntimeError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"I/O error: {detail}")


class IllegalNumber(SASMRuntimeError):
    def __init__(self, text: str) -> None:
        super().__init__(f"Invalid number value: `{text}`")
        self.text = text


class StepLimitExceeded(SASMRuntimeError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Step limit of {limit} instructions exceeded")
        self.limit = limit


class ExitSignal(Exception):
    def __init__(self, code: int = 0) -> None:
        super().__init__(code)
        self.code = code


class JumpSignal(Exception):
    def __init__(self, offset: int) -> None:
        super().__init__(offset)
        self.offset = offset


@dataclass
class VariableStorage:
    values: Dict[Identifier, Optional[Value]] = field(default_factory=dict)

    def create(self, ident: Identifier) -> None:
        if ident in self.values:
            raise DuplicateVariableDefinition(ident.name)
        self.values[ident] = None

    def get(self, ident: Identifier) -> Optional[Value]:
        try:
            return self.values[ident]
        except KeyError:
            raise UndefinedVariable(ident.name)

    def get_nonnull(self, ident: Identifier) -> Value:
        value = self.get(ident)
        if value is None:
            raise NullDereference(ident.name)
        return value

    def set(self, ident: Identifier, value: Value) -> None:
        if ident.is_internal():
            raise IllegalWriteToInternal(ident.name)
        current = self.values.get(ident)
        if current is not None and current.type != value.type:
            raise MismatchedTypes(got=value.type, expected=current.type)
        self.values[ident] = value

    def delete(self, ident: Identifier) -> None:
        if ident.is_internal():
            raise IllegalWriteToInternal(ident.name)
        if ident not in self.values:
            raise UndefinedVariable(ident.name)
        del self.values[ident]

    def set_internal(self, name: str, value: Value) -> None:
        self.values[Identifier(f"_{name}")] = value

    def has(self, ident: Identifier) -> bool:
        return ident in self.values

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Optional[Value]) -> str:
            if val is None:
                return "null"
            rendered = val.to_text()
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered}"

        return {k.name: _render(v) for k, v in self.values.items()}


@dataclass
class ExecutionState:
    storage: VariableStorage = field(default_factory=VariableStorage)
    comparison: bool = False


def _wrap_i64(value: int) -> int:
    return int(np.array(value % _UINT64_RANGE, dtype=np.uint64).astype(np.int64))


def _wrapping(op: np.ufunc, a: int, b: int) -> int:
    with np.errstate(over="ignore"):
        return int(op(np.int64(a), np.int64(b)))


def _truncating_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        quotient = -quotient
    # INT64_MIN / -1 wraps back to INT64_MIN.
    return _wrap_i64(quotient)


def _stdout_sink(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


InstructionHandler = Callable[[Any, ExecutionState], None]


class Executor:
    """Applies one instruction to an execution state.

    Returns normally when execution should continue with the next
    instruction; raises ``JumpSignal`` for a relative jump and
    ``ExitSignal`` for ``DIE``.
    """

    def __init__(
        self,
        *,
        input_provider: Callable[[], str],
        output_sink: Callable[[str], None],
        rng: np.random.Generator,
        sleeper: Callable[[float], None],
    ) -> None:
        self.input_provider = input_provider
        self.output_sink = output_sink
        self.rng = rng
        self.sleeper = sleeper
        self.handlers: Dict[type, InstructionHandler] = {
            CreateVariable: self._create_variable,
            Move: self._move,
            Increment: self._increment,
            Decrement: self._decrement,
            Dump: self._dump,
            Add: self._arithmetic,
            Subtract: self._arithmetic,
            Multiply: self._arithmetic,
            Divide: self._divide,
            Power: self._power,
            Compare: self._compare,
            JumpEqual: self._jump_equal,
            JumpNotEqual: self._jump_not_equal,
            Jump: self._jump,
            ReadNumericValue: self._read_numeric_value,
            ReadStringValue: self._read_string_value,
            GenerateRandomNumber: self._generate_random_number,
            Push: self._push,
            Pop: self._pop,
            Format: self._format,
            Print: self._print,
            Length: self._length,
            Clear: self._clear,
            Sleep: self._sleep,
            Delete: self._delete,
            Die: self._die,
        }
        self._ufuncs: Dict[type, np.ufunc] = {
            Add: np.add,
            Subtract: np.subtract,
            Multiply: np.multiply,
        }

    def execute(self, instruction: Instruction, state: ExecutionState) -> None:
        handler = self.handlers.get(type(instruction))
        assert handler is not None, f"no handler for {type(instruction).__name__}"
        handler(instruction, state)

    # Helpers
    def _resolve(self, expression: Expression, storage: VariableStorage) -> Value:
        if isinstance(expression, Ref):
            return storage.get_nonnull(expression.ident)
        assert isinstance(expression, Literal)
        return expression.value

    def _resolve_nullable(self, expression: Expression, storage: VariableStorage) -> Optional[Value]:
        if isinstance(expression, Ref):
            return storage.get(expression.ident)
        assert isinstance(expression, Literal)
        return expression.value

    def _expect(self, value: Value, type_name: str) -> Any:
        if value.type != type_name:
            raise MismatchedTypes(got=value.type, expected=type_name)
        return value.value

    def _math_step(self, ident: Identifier, storage: VariableStorage, step: Callable[[int], int]) -> None:
        current = storage.get_nonnull(ident)
        if current.type != TYPE_NUMBER:
            raise IllegalMathOperand(current.type)
        storage.set(ident, Value.number(step(current.value)))

    def _read_line(self) -> str:
        try:
            line = self.input_provider()
        except EOFError:
            raise SASMIOError("unexpected end of input")
        except OSError as exc:
            raise SASMIOError(str(exc))
        return line.strip()

    def _write(self, text: str) -> None:
        try:
            self.output_sink(text)
        except OSError as exc:
            raise SASMIOError(str(exc))

    # Variables
    def _create_variable(self, instruction: CreateVariable, state: ExecutionState) -> None:
        if instruction.ident.is_internal():
            raise IllegalCreateOfInternal(instruction.ident.name)
        state.storage.create(instruction.ident)

    def _move(self, instruction: Move, state: ExecutionState) -> None:
        value = self._resolve(instruction.source, state.storage)
        state.storage.set(instruction.target, value)

    def _delete(self, instruction: Delete, state: ExecutionState) -> None:
        state.storage.delete(instruction.ident)

    def _clear(self, instruction: Clear, state: ExecutionState) -> None:
        current = state.storage.get_nonnull(instruction.ident)
        state.storage.set(instruction.ident, current.zero())

    # Arithmetic
    def _increment(self, instruction: Increment, state: ExecutionState) -> None:
        self._math_step(instruction.ident, state.storage, lambda current: _wrapping(np.add, current, 1))

    def _decrement(self, instruction: Decrement, state: ExecutionState) -> None:
        self._math_step(instruction.ident, state.storage, lambda current: _wrapping(np.subtract, current, 1))

    def _arithmetic(self, instruction: Any, state: ExecutionState) -> None:
        amount = self._expect(self._resolve(instruction.operand, state.storage), TYPE_NUMBER)
        op = self._ufuncs[type(instruction)]
        self._math_step(instruction.target, state.storage, lambda current: _wrapping(op, current, amount))

    def _divide(self, instruction: Divide, state: ExecutionState) -> None:
        amount = self._expect(self._resolve(instruction.operand, state.storage), TYPE_NUMBER)
        if amount == 0:
            raise DivisionByZero()
        self._math_step(instruction.target, state.storage, lambda current: _truncating_div(current, amount))

    def _power(self, instruction: Power, state: ExecutionState) -> None:
        exponent = self._expect(self._resolve(instruction.operand, state.storage), TYPE_NUMBER)
        if exponent < 0:
            raise NumericConversionFailure(f"Exponent must be non-negative, got {exponent}")
        self._math_step(instruction.target, state.storage, lambda current: _wrapping(np.power, current, exponent))

    # Control flow
    def _compare(self, instruction: Compare, state: ExecutionState) -> None:
        first = state.storage.get_nonnull(instruction.ident)
        second = self._resolve(instruction.expression, state.storage)
        state.comparison = bool(first == second)

    def _jump_equal(self, instruction: JumpEqual, state: ExecutionState) -> None:
        if state.comparison:
            raise JumpSignal(instruction.offset)

    def _jump_not_equal(self, instruction: JumpNotEqual, state: ExecutionState) -> None:
        if not state.comparison:
            raise JumpSignal(instruction.offset)

    def _jump(self, instruction: Jump, state: ExecutionState) -> None:
        raise JumpSignal(instruction.offset)

    def _die(self, instruction: Die, state: ExecutionState) -> None:
        raise ExitSignal(instruction.code)

    # I/O
    def _read_numeric_value(self, instruction: ReadNumericValue, state: ExecutionState) -> None:
        line = self._read_line()
        if not _INPUT_NUMBER_RE.fullmatch(line):
            raise IllegalNumber(line)
        number = int(line)
        if not INT64_MIN <= number <= INT64_MAX:
            raise IllegalNumber(line)
        state.storage.set(instruction.ident, Value.number(number))

    def _read_string_value(self, instruction: ReadStringValue, state: ExecutionState) -> None:
        state.storage.set(instruction.ident, Value.text(self._read_line()))

    def _print(self, instruction: Print, state: ExecutionState) -> None:
        value = self._resolve(instruction.expression, state.storage)
        self._write(value.to_text())

    def _dump(self, instruction: Dump, state: ExecutionState) -> None:
        value = self._resolve_nullable(instruction.expression, state.storage)
        self._write(("null" if value is None else value.to_text()) + "\n")

    def _sleep(self, instruction: Sleep, state: ExecutionState) -> None:
        millis = self._expect(self._resolve(instruction.duration, state.storage), TYPE_NUMBER)
        if millis < 0:
            raise NumericConversionFailure(f"Sleep duration must be non-negative, got {millis}")
        self.sleeper(millis / 1000.0)

    def _generate_random_number(self, instruction: GenerateRandomNumber, state: ExecutionState) -> None:
        low, high = INT64_MIN, INT64_MAX
        if instruction.minimum is not None and instruction.maximum is not None:
            low = self._expect(self._resolve(instruction.minimum, state.storage), TYPE_NUMBER)
            high = self._expect(self._resolve(instruction.maximum, state.storage), TYPE_NUMBER)
        if low > high:
            raise NumericConversionFailure(f"Empty random range [{low}, {high}]")
        drawn = self.rng.integers(low, high, endpoint=True, dtype=np.int64)
        state.storage.set(instruction.ident, Value.number(int(drawn)))

    # Strings
    def _push(self, instruction: Push, state: ExecutionState) -> None:
        source = self._resolve(instruction.source, state.storage)
        current = self._expect(state.storage.get_nonnull(instruction.ident), TYPE_TEXT)
        state.storage.set(instruction.ident, Value.text(current + source.to_text()))

    def _pop(self, instruction: Pop, state: ExecutionState) -> None:
        current = self._expect(state.storage.get_nonnull(instruction.ident), TYPE_TEXT)
        if not current:
            return
        if instruction.target is not None:
            state.storage.set(instruction.target, Value.text(current[-1]))
        state.storage.set(instruction.ident, Value.text(current[:-1]))

    def _format(self, instruction: Format, state: ExecutionState) -> None:
        storage = state.storage

        def _substitute(match: "re.Match[str]") -> str:
            name = match.group(1)
            try:
                ident = Identifier.parse(name)
            except IllegalIdentifier:
                # Names with digits can never be declared.
                raise UndefinedVariable(name)
            return storage.get_nonnull(ident).to_text()

        storage.set(instruction.target, Value.text(_PLACEHOLDER_RE.sub(_substitute, instruction.template)))

    def _length(self, instruction: Length, state: ExecutionState) -> None:
        value = self._resolve(instruction.expression, state.storage)
        if value.type != TYPE_TEXT:
            raise UnsizedObject(value.type)
        state.storage.set(instruction.target, Value.number(len(value.value)))


def host_platform() -> str:
    plat = sys.platform.lower()
    if plat.startswith("win") or plat.startswith("cygwin"):
        return "win"
    if plat.startswith("linux"):
        return "linux"
    if plat.startswith("darwin"):
        return "macos"
    if plat.startswith("aix") or plat.startswith("freebsd") or plat.startswith("openbsd"):
        return "unix"
    return platform.system().lower() or "unspecified"


def seed_internal_variables(storage: VariableStorage, platform_name: str) -> None:
    storage.set_internal("PLATFORM", Value.text(platform_name))
    storage.set_internal("SASMVER", Value.text(SASM_VERSION))
    storage.set_internal("PI", Value.floating(np.pi))
    storage.set_internal("E", Value.floating(np.e))


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, str]]
    rewrite_record: Optional[Dict[str, Any]]


class StateLogger:
    def __init__(self, verbose: bool, history: int = DEFAULT_HISTORY) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.next_state_index = 0
        self.last_state_id = "seed"

    def record(
        self,
        *,
        location: Optional[SourceLocation],
        statement: Optional[str],
        rewrite_record: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        rewrite = {} if rewrite_record is None else rewrite_record
        if "from_state_id" not in rewrite:
            rewrite["from_state_id"] = self.last_state_id
        step_index = self.next_state_index
        state_id = f"s_{step_index:06d}"
        rewrite["to_state_id"] = state_id
        entry = StateEntry(
            step_index=step_index,
            state_id=state_id,
            source_location=location,
            statement=statement,
            env_snapshot=env_snapshot,
            rewrite_record=rewrite,
        )
        self.entries.append(entry)
        self.last_state_id = state_id
        self.next_state_index += 1
        return entry

    @property
    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


class Interpreter:
    def __init__(
        self,
        *,
        source: str = "",
        filename: str = "<string>",
        verbose: bool = False,
        input_provider: Optional[Callable[[], str]] = None,
        output_sink: Optional[Callable[[str], None]] = None,
        rng: Optional[np.random.Generator] = None,
        sleeper: Optional[Callable[[float], None]] = None,
        hooks: Optional[HookRegistry] = None,
        max_steps: Optional[int] = None,
        platform_name: Optional[str] = None,
        history: int = DEFAULT_HISTORY,
    ) -> None:
        self.source = source
        self.filename = filename if filename.startswith("<") else os.path.abspath(filename)
        self.verbose = verbose
        self.input_provider = input_provider or input
        self.output_sink = output_sink or _stdout_sink
        self.rng = rng if rng is not None else np.random.default_rng()
        self.sleeper = sleeper or time.sleep
        self.hook_registry = hooks if hooks is not None else HookRegistry()
        self.max_steps = max_steps
        self.platform_name = platform_name or host_platform()
        self.executor = Executor(
            input_provider=self.input_provider,
            output_sink=self.output_sink,
            rng=self.rng,
            sleeper=self.sleeper,
        )
        self.logger = StateLogger(verbose=verbose, history=history)
        self.logger.record(location=None, statement="<seed>", rewrite_record={"rule": "SEED"})
        self.state = self.new_state()
        self.steps = 0

    def new_state(self) -> ExecutionState:
        state = ExecutionState()
        seed_internal_variables(state.storage, self.platform_name)
        return state

    def parse(self) -> Program:
        return Parser(self.source, self.filename).parse()

    def run(self) -> None:
        self.execute_program(self.parse())

    def execute_program(self, program: Program) -> None:
        self.state = self.new_state()
        self.steps = 0
        self._emit_event("program_start", self, program, self.state)
        try:
            self._execute(program)
        except SASMRuntimeError as error:
            self._emit_event("on_error", self, error)
            raise
        self._emit_event("program_end", self, 0)

    def _execute(self, program: Program) -> None:
        instructions = program.instructions
        locations = program.locations
        count = len(instructions)
        position = 0
        while position < count:
            instruction = instructions[position]
            location = locations[position]
            try:
                self.execute_instruction(instruction, location, position)
            except JumpSignal as js:
                target = position + js.offset
                # Landing exactly one past the end is a normal halt.
                if target < 0 or target > count:
                    raise self._annotate(IllegalGoto(target + 1), instruction, location, position)
                position = target
                continue
            position += 1

    def execute_instruction(
        self,
        instruction: Instruction,
        location: Optional[SourceLocation] = None,
        position: Optional[int] = None,
    ) -> None:
        """Run one instruction against the current state.

        Runtime errors come back annotated with the instruction, its
        location and its 1-based position when one is given.
        """
        if self.max_steps is not None and self.steps >= self.max_steps:
            raise self._annotate(StepLimitExceeded(self.max_steps), instruction, location, position)
        self.steps += 1
        try:
            self._log_step(rule=instruction.MNEMONIC, location=location, position=position)
            self._emit_event("before_instruction", self, instruction, location)
            self.executor.execute(instruction, self.state)
        except JumpSignal:
            self._emit_event("after_instruction", self, instruction, location)
            raise
        except ExitSignal:
            raise
        except SASMRuntimeError as error:
            raise self._annotate(error, instruction, location, position)
        except Exception as exc:
            wrapped = SASMRuntimeError(f"Internal interpreter error: {exc}", rewrite_rule="internal")
            raise self._annotate(wrapped, instruction, location, position) from exc
        self._emit_event("after_instruction", self, instruction, location)

    def _annotate(
        self,
        error: SASMRuntimeError,
        instruction: Instruction,
        location: Optional[SourceLocation],
        position: Optional[int],
    ) -> SASMRuntimeError:
        if error.location is None:
            error.location = location
        if error.rewrite_rule is None:
            error.rewrite_rule = instruction.MNEMONIC
        if error.instruction is None:
            error.instruction = instruction.render()
        if error.position is None and position is not None:
            error.position = position + 1
        last = self.logger.last_entry
        if last is not None:
            error.step_index = last.step_index
        return error

    def _emit_event(self, event: str, *args: Any, **kwargs: Any) -> None:
        if not self.hook_registry.has_handlers(event):
            return
        try:
            self.hook_registry.emit(event, *args, **kwargs)
        except SASMRuntimeError:
            raise
        except Exception as exc:
            last = self.logger.last_entry
            raise SASMRuntimeError(
                f"Hook '{event}' failed: {exc}",
                location=last.source_location if last else None,
                rewrite_rule="HOOK",
            )

    def _log_step(
        self,
        *,
        rule: str,
        location: Optional[SourceLocation],
        position: Optional[int],
    ) -> None:
        env_snapshot = self.state.storage.snapshot() if self.verbose else None
        statement = location.statement if location else None
        rewrite: Dict[str, Any] = {"rule": rule}
        if position is not None:
            rewrite["position"] = position
        entry = self.logger.record(
            location=location,
            statement=statement,
            env_snapshot=env_snapshot,
            rewrite_record=rewrite,
        )

        try:
            self.hook_registry.after_step(
                self,
                StepContext(step_index=entry.step_index, rule=rule, position=-1 if position is None else position, location=location),
            )
        except SASMRuntimeError:
            raise
        except Exception as exc:
            raise SASMRuntimeError(
                f"Step rule failed: {exc}",
                location=location,
                rewrite_rule="HOOK",
            )


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    statement: Optional[str]
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self, error: SASMRuntimeError) -> List[TracebackFrame]:
        entry = self.interpreter.logger.last_entry
        location = error.location or (entry.source_location if entry else None)
        statement = location.statement if location else error.instruction
        return [TracebackFrame(name="<program>", location=location, statement=statement, state_entry=entry)]

    def _summary(self, error: SASMRuntimeError) -> str:
        rule = error.rewrite_rule or "runtime"
        if error.position is not None:
            return f"line {error.position}, instruction: {rule}"
        return f"instruction: {rule}"

    def format_text(self, error: SASMRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames(error):
            if frame.location:
                lines.append(f"  File \"{frame.location.file}\", line {frame.location.line}, in {frame.name}")
                if frame.statement:
                    lines.append(f"    {frame.statement}")
            else:
                lines.append(f"  <unknown location> in {frame.name}")
            if frame.state_entry:
                lines.append(
                    f"    State log index: {frame.state_entry.step_index}  State id: {frame.state_entry.state_id}"
                )
                if verbose and frame.state_entry.env_snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in frame.state_entry.env_snapshot.items())
                    lines.append(f"    Env snapshot: {snapshot}")
        lines.append(f"{error.__class__.__name__}: {error.message} ({self._summary(error)})")
        return "\n".join(lines)

    def to_json(self, error: SASMRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames(error)):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name}
            if frame.location:
                entry["source_location"] = {
                    "file": frame.location.file,
                    "line": frame.location.line,
                    "statement": frame.location.statement,
                }
            if frame.state_entry:
                entry["state_id"] = frame.state_entry.state_id
                entry["step_index"] = frame.state_entry.step_index
                if frame.state_entry.env_snapshot is not None:
                    entry["env_snapshot"] = frame.state_entry.env_snapshot
                if frame.state_entry.rewrite_record is not None:
                    entry["rewrite_record"] = frame.state_entry.rewrite_record
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "instruction": error.instruction,
                "failing_position": error.position,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2)
