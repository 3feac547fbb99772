import numpy as np
import pytest

from lexer import (
    IllegalExpression,
    IllegalIdentifier,
    IllegalInstruction,
    MismatchedArgumentTypes,
    MissingArgument,
    MissingArgumentSeparator,
    MissingStringEndQuote,
    NotEnoughArguments,
    SASMParseErrorGroup,
    TooManyArguments,
    UnexpectedToken,
)
from parser import (
    OPCODES,
    CreateVariable,
    Die,
    Format,
    GenerateRandomNumber,
    Identifier,
    Literal,
    Move,
    Parser,
    Pop,
    Ref,
    Value,
    parse_expression,
    parse_line,
    split_line,
)


def test_identifier_accepts_letters_and_underscores():
    assert Identifier.parse("counter").name == "counter"
    assert Identifier.parse("_PI").is_internal()
    assert not Identifier.parse("x").is_internal()


@pytest.mark.parametrize("text", ["x1", "1x", "", "a-b", "é"])
def test_identifier_rejects_other_characters(text):
    with pytest.raises(IllegalIdentifier):
        Identifier.parse(text)


def test_expression_classification():
    assert parse_expression("42") == Literal(Value.number(42))
    assert parse_expression("-4") == Literal(Value.number(-4))
    assert parse_expression("1.5") == Literal(Value.floating(1.5))
    assert parse_expression("10.13e8").value.type == "Float"
    assert parse_expression("'hi'") == Literal(Value.text("hi"))
    assert parse_expression('"hi"') == Literal(Value.text("hi"))
    assert parse_expression("''") == Literal(Value.text(""))
    assert parse_expression("pi") == Ref(Identifier("pi"))


def test_integer_out_of_range_falls_back_to_float():
    literal = parse_expression("9223372036854775808")
    assert literal.value.type == "Float"
    assert literal.value.value == np.float32(9223372036854775808.0)


@pytest.mark.filterwarnings("error")
def test_float_literal_overflow_is_infinite():
    literal = parse_expression("1e50")
    assert literal.value.type == "Float"
    assert np.isposinf(literal.value.value)
    assert np.isneginf(parse_expression("-1e50").value.value)


def test_int64_bounds_stay_numbers():
    assert parse_expression("9223372036854775807").value.value == 2 ** 63 - 1
    assert parse_expression("-9223372036854775808").value.value == -(2 ** 63)


@pytest.mark.parametrize("text", ["-", ".", "x1", "1.2.3"])
def test_unclassifiable_expression(text):
    with pytest.raises(IllegalExpression):
        parse_expression(text)


def test_split_line():
    assert split_line("DIE") == ("DIE", "")
    assert split_line("MOV x, 5") == ("MOV", "x, 5")
    with pytest.raises(MissingArgumentSeparator):
        split_line("VARx")


def test_parse_simple_instructions():
    assert parse_line("VAR x") == CreateVariable(Identifier("x"))
    assert parse_line("MOV x, 5") == Move(Identifier("x"), Literal(Value.number(5)))
    assert parse_line("MOV x, y") == Move(Identifier("x"), Ref(Identifier("y")))
    assert parse_line("  MOV   x ,   5  ").render() == "MOV x, 5"


def test_optional_arguments():
    assert parse_line("DIE") == Die(0)
    assert parse_line("DIE 3") == Die(3)
    assert parse_line("POP s") == Pop(Identifier("s"))
    assert parse_line("POP s, c") == Pop(Identifier("s"), Identifier("c"))
    assert parse_line("RNG x") == GenerateRandomNumber(Identifier("x"))
    rng = parse_line("RNG x, 1, 6")
    assert rng.minimum == Literal(Value.number(1))
    assert rng.maximum == Literal(Value.number(6))


def test_format_keeps_template_text():
    assert parse_line("FMT s, '{a} and {b}'") == Format(Identifier("s"), "{a} and {b}")


def test_every_mnemonic_is_registered():
    assert sorted(OPCODES) == sorted(
        [
            "VAR", "MOV", "INC", "DEC", "DMP", "ADD", "SUB", "MUL", "DIV", "POW",
            "CMP", "JEQ", "JNE", "JMP", "RNV", "RSV", "RNG", "PSH", "POP", "FMT",
            "SAY", "LEN", "CLR", "HLT", "DEL", "DIE",
        ]
    )


@pytest.mark.parametrize(
    "line",
    [
        "VAR x",
        "MOV x, 5",
        "MOV x, 2.5",
        "MOV s, 'hello, world'",
        "INC x",
        "DEC x",
        "DMP x",
        "DMP 'text'",
        "ADD x, 5",
        "SUB x, y",
        "MUL x, -3",
        "DIV x, 2",
        "POW x, 3",
        "CMP x, 10",
        "JEQ 2",
        "JNE -2",
        "JMP 0",
        "RNV x",
        "RSV s",
        "RNG x",
        "RNG x, 1, 6",
        "PSH s, 'abc'",
        "POP s",
        "POP s, c",
        "FMT s, '{a} and {b}'",
        "SAY \"it's\"",
        "LEN n, s",
        "CLR x",
        "HLT 250",
        "DEL x",
        "DIE 2",
        "SAY 'it\\'s \"x\"'",
        "SAY \"say \\\"hi\\\" it's\"",
    ],
)
def test_rendered_instruction_parses_back(line):
    instruction = parse_line(line)
    rendered = instruction.render()
    assert rendered.split(" ")[0] == line.split(" ")[0]
    assert parse_line(rendered) == instruction


def test_unknown_mnemonic():
    with pytest.raises(IllegalInstruction):
        parse_line("FOO x")
    with pytest.raises(IllegalInstruction):
        parse_line("FOO")
    with pytest.raises(IllegalInstruction):
        parse_line("mov x, 5")


def test_arguments_are_scanned_before_mnemonic_lookup():
    with pytest.raises(UnexpectedToken):
        parse_line("FOO x;")


def test_arity_errors():
    with pytest.raises(NotEnoughArguments) as exc:
        parse_line("MOV x")
    assert (exc.value.got, exc.value.expected) == (1, 2)
    with pytest.raises(NotEnoughArguments):
        parse_line("VAR")
    with pytest.raises(TooManyArguments) as exc:
        parse_line("INC x, y")
    assert (exc.value.got, exc.value.expected) == (2, 1)


def test_rng_bounds_come_in_pairs():
    with pytest.raises(NotEnoughArguments) as exc:
        parse_line("RNG x, 1")
    assert (exc.value.got, exc.value.expected) == (2, 3)


@pytest.mark.parametrize(
    "line, got, expected",
    [
        ("MOV 5, x", "Number", "Identifier"),
        ("JMP x", "Identifier", "Number"),
        ("JMP 1.5", "Float", "Number"),
        ("FMT s, 5", "Number", "Text"),
        ("DIE 'x'", "Text", "Number"),
        ("POP s, 'c'", "Text", "Identifier"),
    ],
)
def test_argument_shape_errors(line, got, expected):
    with pytest.raises(MismatchedArgumentTypes) as exc:
        parse_line(line)
    assert exc.value.got == got
    assert exc.value.expected == expected


def test_missing_argument_between_commas():
    with pytest.raises(MissingArgument):
        parse_line("MOV x,, 5")
    with pytest.raises(MissingArgument):
        parse_line("MOV x,")
    with pytest.raises(MissingArgument):
        parse_line("MOV , 5")


def test_missing_comma():
    with pytest.raises(UnexpectedToken) as exc:
        parse_line("MOV x 5")
    assert exc.value.token == "5"
    assert exc.value.column == 7


def test_unterminated_string_in_line():
    with pytest.raises(MissingStringEndQuote) as exc:
        parse_line("SAY 'hello")
    assert exc.value.column == 5


def test_columns_count_from_line_start():
    with pytest.raises(UnexpectedToken) as exc:
        parse_line("PSH s, 'a'; x")
    assert exc.value.column == 11


def test_parse_program_skips_blank_lines():
    program = Parser("VAR x\n\n   \n  MOV x, 5\n", "<string>").parse()
    assert len(program) == 2
    assert [loc.line for loc in program.locations] == [1, 4]
    assert program.locations[1].statement == "MOV x, 5"
    assert program.locations[1].file == "<string>"


def test_parse_program_collects_every_error():
    with pytest.raises(SASMParseErrorGroup) as exc:
        Parser("VAR x\nFOO\nMOV 1, 2\nSAY 'ok'", "<string>").parse()
    errors = exc.value.errors
    assert [error.line for error in errors] == [2, 3]
    assert isinstance(errors[0], IllegalInstruction)
    assert isinstance(errors[1], MismatchedArgumentTypes)


def test_empty_program():
    assert len(Parser("", "<string>").parse()) == 0
