from __future__ import annotations
import re
from dataclasses import dataclass, fields
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple

import numpy as np

from lexer import (
    IllegalExpression,
    IllegalIdentifier,
    IllegalInstruction,
    QUOTES,
    Lexer,
    MismatchedArgumentTypes,
    MissingArgument,
    MissingArgumentSeparator,
    NotEnoughArguments,
    SASMParseError,
    SASMParseErrorGroup,
    Token,
    TooManyArguments,
    UnexpectedToken,
)


TYPE_NUMBER = "Number"
TYPE_FLOAT = "Float"
TYPE_TEXT = "Text"
TYPE_IDENT = "Identifier"

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

MNEMONIC_WIDTH = 3

_IDENT_RE = re.compile(r"[A-Za-z_]+")
_INT_RE = re.compile(r"-?[0-9]+")
_FLOAT_RE = re.compile(r"-?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


@dataclass(frozen=True)
class Identifier:
    name: str

    @classmethod
    def parse(cls, text: str) -> "Identifier":
        if not _IDENT_RE.fullmatch(text):
            raise IllegalIdentifier(text)
        return cls(text)

    def is_internal(self) -> bool:
        return self.name.startswith("_")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Value:
    """A scalar: Number (int64 as a Python int), Float (numpy float32) or Text."""

    type: str
    value: Any

    @classmethod
    def number(cls, value: int) -> "Value":
        return cls(TYPE_NUMBER, int(value))

    @classmethod
    def floating(cls, value: Any) -> "Value":
        # Literals beyond float32 range become +/-inf.
        with np.errstate(over="ignore"):
            return cls(TYPE_FLOAT, np.float32(value))

    @classmethod
    def text(cls, value: str) -> "Value":
        return cls(TYPE_TEXT, value)

    def zero(self) -> "Value":
        if self.type == TYPE_NUMBER:
            return Value.number(0)
        if self.type == TYPE_FLOAT:
            return Value.floating(0.0)
        return Value.text("")

    def to_text(self) -> str:
        if self.type == TYPE_FLOAT:
            # Shortest decimal that round-trips a float32, without a trailing ".0".
            return np.format_float_positional(self.value, trim="-")
        return str(self.value)

    def to_source(self) -> str:
        if self.type == TYPE_FLOAT:
            return np.format_float_positional(self.value, trim="0")
        if self.type == TYPE_TEXT:
            return quote_text(self.value)
        return str(self.value)


def quote_text(text: str) -> str:
    """Wrap text in the first quote kind that scans back as one string token."""
    for quote in QUOTES:
        candidate = f"{quote}{text}{quote}"
        try:
            tokens = Lexer(candidate).tokenize()
        except SASMParseError:
            continue
        if len(tokens) == 1 and tokens[0].value == candidate:
            return candidate
    # Only reachable for text that never came out of the scanner.
    return f"'{text}'"


class Expression:
    pass


@dataclass(frozen=True)
class Literal(Expression):
    value: Value

    def to_source(self) -> str:
        return self.value.to_source()


@dataclass(frozen=True)
class Ref(Expression):
    ident: Identifier

    def to_source(self) -> str:
        return self.ident.name


def describe(expression: Expression) -> str:
    if isinstance(expression, Ref):
        return TYPE_IDENT
    assert isinstance(expression, Literal)
    return expression.value.type


def parse_expression(text: str) -> Expression:
    """Classify one raw token: integer, float, quoted string, identifier."""
    if _INT_RE.fullmatch(text):
        number = int(text)
        if INT64_MIN <= number <= INT64_MAX:
            return Literal(Value.number(number))
    if _FLOAT_RE.fullmatch(text):
        return Literal(Value.floating(float(text)))
    if len(text) >= 2 and text[0] in "'\"" and text[-1] == text[0]:
        return Literal(Value.text(text[1:-1]))
    try:
        return Ref(Identifier.parse(text))
    except IllegalIdentifier:
        raise IllegalExpression(text)


# ---- Instructions ----


@dataclass(frozen=True)
class Instruction:
    MNEMONIC: ClassVar[str] = ""

    def operands(self) -> List[str]:
        rendered: List[str] = []
        for spec in fields(self):
            operand = getattr(self, spec.name)
            if operand is None:
                continue
            if isinstance(operand, (Literal, Ref)):
                rendered.append(operand.to_source())
            elif isinstance(operand, Identifier):
                rendered.append(operand.name)
            elif isinstance(operand, str):
                rendered.append(Value.text(operand).to_source())
            else:
                rendered.append(str(operand))
        return rendered

    def render(self) -> str:
        args = self.operands()
        if not args:
            return self.MNEMONIC
        return f"{self.MNEMONIC} {', '.join(args)}"

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class CreateVariable(Instruction):
    MNEMONIC: ClassVar[str] = "VAR"
    ident: Identifier


@dataclass(frozen=True)
class Move(Instruction):
    MNEMONIC: ClassVar[str] = "MOV"
    target: Identifier
    source: Expression


@dataclass(frozen=True)
class Increment(Instruction):
    MNEMONIC: ClassVar[str] = "INC"
    ident: Identifier


@dataclass(frozen=True)
class Decrement(Instruction):
    MNEMONIC: ClassVar[str] = "DEC"
    ident: Identifier


@dataclass(frozen=True)
class Dump(Instruction):
    MNEMONIC: ClassVar[str] = "DMP"
    expression: Expression


@dataclass(frozen=True)
class ArithmeticInstruction(Instruction):
    target: Identifier
    operand: Expression


@dataclass(frozen=True)
class Add(ArithmeticInstruction):
    MNEMONIC: ClassVar[str] = "ADD"


@dataclass(frozen=True)
class Subtract(ArithmeticInstruction):
    MNEMONIC: ClassVar[str] = "SUB"


@dataclass(frozen=True)
class Multiply(ArithmeticInstruction):
    MNEMONIC: ClassVar[str] = "MUL"


@dataclass(frozen=True)
class Divide(ArithmeticInstruction):
    MNEMONIC: ClassVar[str] = "DIV"


@dataclass(frozen=True)
class Power(ArithmeticInstruction):
    MNEMONIC: ClassVar[str] = "POW"


@dataclass(frozen=True)
class Compare(Instruction):
    MNEMONIC: ClassVar[str] = "CMP"
    ident: Identifier
    expression: Expression


@dataclass(frozen=True)
class JumpInstruction(Instruction):
    offset: int


@dataclass(frozen=True)
class JumpEqual(JumpInstruction):
    MNEMONIC: ClassVar[str] = "JEQ"


@dataclass(frozen=True)
class JumpNotEqual(JumpInstruction):
    MNEMONIC: ClassVar[str] = "JNE"


@dataclass(frozen=True)
class Jump(JumpInstruction):
    MNEMONIC: ClassVar[str] = "JMP"


@dataclass(frozen=True)
class ReadNumericValue(Instruction):
    MNEMONIC: ClassVar[str] = "RNV"
    ident: Identifier


@dataclass(frozen=True)
class ReadStringValue(Instruction):
    MNEMONIC: ClassVar[str] = "RSV"
    ident: Identifier


@dataclass(frozen=True)
class GenerateRandomNumber(Instruction):
    MNEMONIC: ClassVar[str] = "RNG"
    ident: Identifier
    minimum: Optional[Expression] = None
    maximum: Optional[Expression] = None


@dataclass(frozen=True)
class Push(Instruction):
    MNEMONIC: ClassVar[str] = "PSH"
    ident: Identifier
    source: Expression


@dataclass(frozen=True)
class Pop(Instruction):
    MNEMONIC: ClassVar[str] = "POP"
    ident: Identifier
    target: Optional[Identifier] = None


@dataclass(frozen=True)
class Format(Instruction):
    MNEMONIC: ClassVar[str] = "FMT"
    target: Identifier
    template: str


@dataclass(frozen=True)
class Print(Instruction):
    MNEMONIC: ClassVar[str] = "SAY"
    expression: Expression


@dataclass(frozen=True)
class Length(Instruction):
    MNEMONIC: ClassVar[str] = "LEN"
    target: Identifier
    expression: Expression


@dataclass(frozen=True)
class Clear(Instruction):
    MNEMONIC: ClassVar[str] = "CLR"
    ident: Identifier


@dataclass(frozen=True)
class Sleep(Instruction):
    MNEMONIC: ClassVar[str] = "HLT"
    duration: Expression


@dataclass(frozen=True)
class Delete(Instruction):
    MNEMONIC: ClassVar[str] = "DEL"
    ident: Identifier


@dataclass(frozen=True)
class Die(Instruction):
    MNEMONIC: ClassVar[str] = "DIE"
    code: int = 0


# ---- Argument fetching ----


class Arguments:
    def __init__(self, expressions: List[Expression]) -> None:
        self.expressions = expressions

    def __len__(self) -> int:
        return len(self.expressions)

    def _nth(self, n: int) -> Expression:
        if n >= len(self.expressions):
            raise MissingArgument()
        return self.expressions[n]

    def ident(self, n: int) -> Identifier:
        expr = self._nth(n)
        if not isinstance(expr, Ref):
            raise MismatchedArgumentTypes(got=describe(expr), expected=TYPE_IDENT)
        return expr.ident

    def optional_ident(self, n: int) -> Optional[Identifier]:
        if n >= len(self.expressions):
            return None
        return self.ident(n)

    def any(self, n: int) -> Expression:
        return self._nth(n)

    def number(self, n: int) -> int:
        expr = self._nth(n)
        if not isinstance(expr, Literal) or expr.value.type != TYPE_NUMBER:
            raise MismatchedArgumentTypes(got=describe(expr), expected=TYPE_NUMBER)
        return expr.value.value

    def text(self, n: int) -> str:
        expr = self._nth(n)
        if not isinstance(expr, Literal) or expr.value.type != TYPE_TEXT:
            raise MismatchedArgumentTypes(got=describe(expr), expected=TYPE_TEXT)
        return expr.value.value


InstructionBuilder = Callable[[Arguments], Instruction]


@dataclass
class OpcodeSpec:
    mnemonic: str
    min_args: int
    max_args: int
    build: InstructionBuilder

    def validate(self, supplied: int) -> None:
        if supplied < self.min_args:
            raise NotEnoughArguments(got=supplied, expected=self.min_args)
        if supplied > self.max_args:
            raise TooManyArguments(got=supplied, expected=self.max_args)


OPCODES: Dict[str, OpcodeSpec] = {}


def _opcode(mnemonic: str, min_args: int, max_args: Optional[int] = None):
    def deco(fn: InstructionBuilder) -> InstructionBuilder:
        OPCODES[mnemonic] = OpcodeSpec(
            mnemonic=mnemonic,
            min_args=min_args,
            max_args=min_args if max_args is None else max_args,
            build=fn,
        )
        return fn

    return deco


def _arithmetic(cls: type) -> InstructionBuilder:
    def build(args: Arguments) -> Instruction:
        return cls(args.ident(0), args.any(1))

    return build


def _jump(cls: type) -> InstructionBuilder:
    def build(args: Arguments) -> Instruction:
        return cls(args.number(0))

    return build


for _cls in (Add, Subtract, Multiply, Divide, Power):
    _opcode(_cls.MNEMONIC, 2)(_arithmetic(_cls))
for _cls in (JumpEqual, JumpNotEqual, Jump):
    _opcode(_cls.MNEMONIC, 1)(_jump(_cls))


@_opcode("VAR", 1)
def _build_var(args: Arguments) -> Instruction:
    return CreateVariable(args.ident(0))


@_opcode("MOV", 2)
def _build_mov(args: Arguments) -> Instruction:
    return Move(args.ident(0), args.any(1))


@_opcode("INC", 1)
def _build_inc(args: Arguments) -> Instruction:
    return Increment(args.ident(0))


@_opcode("DEC", 1)
def _build_dec(args: Arguments) -> Instruction:
    return Decrement(args.ident(0))


@_opcode("DMP", 1)
def _build_dmp(args: Arguments) -> Instruction:
    return Dump(args.any(0))


@_opcode("CMP", 2)
def _build_cmp(args: Arguments) -> Instruction:
    return Compare(args.ident(0), args.any(1))


@_opcode("RNV", 1)
def _build_rnv(args: Arguments) -> Instruction:
    return ReadNumericValue(args.ident(0))


@_opcode("RSV", 1)
def _build_rsv(args: Arguments) -> Instruction:
    return ReadStringValue(args.ident(0))


@_opcode("RNG", 1, 3)
def _build_rng(args: Arguments) -> Instruction:
    ident = args.ident(0)
    if len(args) == 1:
        return GenerateRandomNumber(ident)
    # Bounds come in pairs.
    if len(args) == 2:
        raise NotEnoughArguments(got=2, expected=3)
    return GenerateRandomNumber(ident, args.any(1), args.any(2))


@_opcode("PSH", 2)
def _build_psh(args: Arguments) -> Instruction:
    return Push(args.ident(0), args.any(1))


@_opcode("POP", 1, 2)
def _build_pop(args: Arguments) -> Instruction:
    return Pop(args.ident(0), args.optional_ident(1))


@_opcode("FMT", 2)
def _build_fmt(args: Arguments) -> Instruction:
    return Format(args.ident(0), args.text(1))


@_opcode("SAY", 1)
def _build_say(args: Arguments) -> Instruction:
    return Print(args.any(0))


@_opcode("LEN", 2)
def _build_len(args: Arguments) -> Instruction:
    return Length(args.ident(0), args.any(1))


@_opcode("CLR", 1)
def _build_clr(args: Arguments) -> Instruction:
    return Clear(args.ident(0))


@_opcode("HLT", 1)
def _build_hlt(args: Arguments) -> Instruction:
    return Sleep(args.any(0))


@_opcode("DEL", 1)
def _build_del(args: Arguments) -> Instruction:
    return Delete(args.ident(0))


@_opcode("DIE", 0, 1)
def _build_die(args: Arguments) -> Instruction:
    if len(args) == 0:
        return Die()
    return Die(args.number(0))


# ---- Parsing ----


@dataclass
class SourceLocation:
    file: str
    line: int
    statement: str


@dataclass
class Program:
    instructions: List[Instruction]
    locations: List[SourceLocation]

    def __len__(self) -> int:
        return len(self.instructions)


def split_line(line: str) -> Tuple[str, str]:
    """Split a source line into its mnemonic and raw argument tail."""
    if len(line) == MNEMONIC_WIDTH:
        return line, ""
    mnemonic, sep, tail = line.partition(" ")
    if not sep:
        raise MissingArgumentSeparator()
    return mnemonic, tail


class Parser:
    def __init__(self, source: str, filename: str) -> None:
        self.source = source
        self.filename = filename
        self.tokens: List[Token] = []
        self.index = 0

    def parse(self) -> Program:
        """Parse every non-blank line; all failures are raised together."""
        instructions: List[Instruction] = []
        locations: List[SourceLocation] = []
        errors: List[SASMParseError] = []
        for number, raw in enumerate(self.source.splitlines(), start=1):
            line = raw.strip()
            if not line:
                continue
            try:
                instruction = self.parse_line(line)
            except SASMParseError as error:
                error.line = number
                errors.append(error)
                continue
            instructions.append(instruction)
            locations.append(SourceLocation(file=self.filename, line=number, statement=line))
        if errors:
            raise SASMParseErrorGroup(errors)
        return Program(instructions=instructions, locations=locations)

    def parse_line(self, line: str) -> Instruction:
        mnemonic, tail = split_line(line)
        spec = OPCODES.get(mnemonic)
        try:
            args = Arguments(self._parse_arguments(tail))
        except SASMParseError as error:
            # Scanner columns count from the start of the argument tail.
            if error.column is not None:
                error.column += len(mnemonic) + 1
            raise
        if spec is None:
            raise IllegalInstruction(mnemonic)
        spec.validate(len(args))
        return spec.build(args)

    def _parse_arguments(self, tail: str) -> List[Expression]:
        self.tokens = Lexer(tail).tokenize()
        self.index = 0
        expressions: List[Expression] = []
        if not self.tokens:
            return expressions
        while True:
            expressions.append(self._parse_argument())
            if self._at_end():
                return expressions
            self._consume("COMMA")

    def _parse_argument(self) -> Expression:
        if self._at_end() or self._peek().type == "COMMA":
            raise MissingArgument()
        token = self._peek()
        self.index += 1
        return parse_expression(token.value)

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise UnexpectedToken(token.value, token.column)
        self.index += 1
        return token

    def _at_end(self) -> bool:
        return self.index >= len(self.tokens)

    def _peek(self) -> Token:
        return self.tokens[self.index]


def parse_line(line: str) -> Instruction:
    return Parser("", "<string>").parse_line(line.strip())
