from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


class SASMError(Exception):
    """Base class for interpreter errors."""


class SASMParseError(SASMError):
    """Raised when a source line cannot be turned into an instruction."""

    def __init__(self, message: str, *, line: Optional[int] = None, column: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column


class IllegalIdentifier(SASMParseError):
    def __init__(self, text: str) -> None:
        super().__init__(f"Invalid identifier: {text}")
        self.text = text


class IllegalExpression(SASMParseError):
    def __init__(self, text: str) -> None:
        super().__init__(f"Invalid expression: {text}")
        self.text = text


class IllegalInstruction(SASMParseError):
    def __init__(self, mnemonic: str) -> None:
        super().__init__(f"Invalid instruction: {mnemonic}")
        self.mnemonic = mnemonic


class MissingArgumentSeparator(SASMParseError):
    def __init__(self) -> None:
        super().__init__("Missing separator for instruction-args")


class MissingArgument(SASMParseError):
    def __init__(self) -> None:
        super().__init__("Missing required argument")


class MismatchedArgumentTypes(SASMParseError):
    def __init__(self, *, got: str, expected: str) -> None:
        super().__init__(f"Expected value of type {expected}, got {got}")
        self.got = got
        self.expected = expected


class MissingStringEndQuote(SASMParseError):
    def __init__(self, column: int) -> None:
        super().__init__("Missing end quotes for string expression", column=column)


class NotEnoughArguments(SASMParseError):
    def __init__(self, *, got: int, expected: int) -> None:
        super().__init__(f"Expected at least {expected} arguments, got {got}")
        self.got = got
        self.expected = expected


class TooManyArguments(SASMParseError):
    def __init__(self, *, got: int, expected: int) -> None:
        super().__init__(f"Expected at most {expected} arguments, got {got}")
        self.got = got
        self.expected = expected


class UnexpectedToken(SASMParseError):
    def __init__(self, token: str, column: int) -> None:
        super().__init__(f"Unexpected token: `{token}`", column=column)
        self.token = token


class SASMParseErrorGroup(SASMError):
    """Every parse failure of a script; each error carries its source line."""

    def __init__(self, errors: List[SASMParseError]) -> None:
        super().__init__(f"{len(errors)} line(s) failed to parse")
        self.errors = errors


@dataclass
class Token:
    type: str
    value: str
    column: int


QUOTES = ("'", '"')
NUMBER_START = "-0123456789."
DIGITS = "0123456789"


class Lexer:
    """Scans the argument tail of one instruction line.

    Produces NUMBER, STRING, IDENT and COMMA tokens. Token values keep their
    source spelling (string tokens include their quotes); classifying them
    into values is the parser's job.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.index = 0

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        text = self.text
        n = len(text)

        while self.index < n:
            ch = text[self.index]
            if ch in " \t\r":
                self.index += 1
                continue
            if ch == ",":
                tokens_append(Token("COMMA", ch, self.index + 1))
                self.index += 1
                continue
            if ch in NUMBER_START:
                tokens_append(self._consume_number())
                continue
            if ch in QUOTES:
                tokens_append(self._consume_string())
                continue
            if ch.isascii() and (ch.isalpha() or ch == "_"):
                tokens_append(self._consume_identifier())
                continue
            raise UnexpectedToken(ch, self.index + 1)
        return tokens

    def _consume_number(self) -> Token:
        start = self.index
        text = self.text
        n = len(text)
        self.index += 1
        while self.index < n:
            ch = text[self.index]
            if ch in DIGITS or ch == ".":
                self.index += 1
                continue
            if ch in "eE":
                self.index += 1
                # Exponent sign directly after the marker.
                if self.index < n and text[self.index] in "+-":
                    self.index += 1
                continue
            break
        return Token("NUMBER", text[start:self.index], start + 1)

    def _consume_string(self) -> Token:
        start = self.index
        text = self.text
        n = len(text)
        opening = text[start]
        self.index += 1
        while self.index < n:
            ch = text[self.index]
            if ch == "\\":
                # The backslash stays in the literal; it only shields the next character.
                self.index += 2
                continue
            if ch == opening:
                self.index += 1
                return Token("STRING", text[start:self.index], start + 1)
            self.index += 1
        raise MissingStringEndQuote(start + 1)

    def _consume_identifier(self) -> Token:
        start = self.index
        text = self.text
        n = len(text)
        self.index += 1
        while self.index < n:
            ch = text[self.index]
            if ch.isascii() and (ch.isalnum() or ch == "_"):
                self.index += 1
                continue
            break
        return Token("IDENT", text[start:self.index], start + 1)
