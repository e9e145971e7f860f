"""Lexer for fingerprint and advisory matching rules."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Sequence


class RuleSyntaxError(ValueError):
    """Raised when a rule cannot be tokenised or parsed."""


class TokenKind(str, enum.Enum):
    """Kinds of lexical units a rule is made of."""

    BODY = "body"
    HEADER = "header"
    ICON = "icon"
    TEXT = "text"

    CONTAINS = "="
    FULL_EQUAL = "=="
    NOT_EQUAL = "!="
    REGEX_EQUAL = "~="

    AND = "&&"
    OR = "||"

    LEFT_BRACKET = "("
    RIGHT_BRACKET = ")"

    VERSION = "version"
    IS_INTERNAL = "is_internal"
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="


@dataclass(frozen=True)
class Token:
    """A single lexical unit: its kind and the text it stands for."""

    kind: TokenKind
    content: str


class TokenStream:
    """A cursor over a sequence of tokens."""

    def __init__(self, tokens: Iterable[Token]) -> None:
        self._tokens = list(tokens)
        self._index = 0

    def next(self) -> Token:
        """Return the next token and advance past it."""
        if self._index >= len(self._tokens):
            raise RuleSyntaxError("unexpected end of rule")
        token = self._tokens[self._index]
        self._index += 1
        return token

    def rewind(self) -> None:
        """Step back by one token."""
        self._index -= 1

    def has_next(self) -> bool:
        """Tell whether any tokens remain."""
        return self._index < len(self._tokens)


# Longer operators come before their prefixes.
_OPERATORS: tuple[tuple[str, TokenKind], ...] = (
    ("==", TokenKind.FULL_EQUAL),
    ("=", TokenKind.CONTAINS),
    ("~=", TokenKind.REGEX_EQUAL),
    ("!=", TokenKind.NOT_EQUAL),
    ("||", TokenKind.OR),
    ("&&", TokenKind.AND),
    (">=", TokenKind.GTE),
    ("<=", TokenKind.LTE),
    (">", TokenKind.GT),
    ("<", TokenKind.LT),
)
_OPERATOR_STARTS = frozenset("=~!|&><")
_BRACKETS = {"(": TokenKind.LEFT_BRACKET, ")": TokenKind.RIGHT_BRACKET}
_WHITESPACE = frozenset(" \t\n\r")

_FINGERPRINT_KEYWORDS = (TokenKind.BODY, TokenKind.HEADER, TokenKind.ICON)
_ADVISORY_KEYWORDS = (TokenKind.VERSION, TokenKind.IS_INTERNAL)


def _read_quoted(text: str, start: int) -> tuple[Token, int]:
    chars: list[str] = []
    pos = start + 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            if pos + 1 >= len(text):
                raise RuleSyntaxError(f"invalid escape at end of input: {text[start:]}")
            chars.append(text[pos + 1])
            pos += 2
        elif char == '"':
            return Token(TokenKind.TEXT, "".join(chars)), pos + 1
        else:
            chars.append(char)
            pos += 1
    raise RuleSyntaxError(f"unterminated quoted text: {text[start:]}")


def _read_operator(text: str, start: int) -> tuple[Token, int]:
    for symbol, kind in _OPERATORS:
        if text.startswith(symbol, start):
            return Token(kind, symbol), start + len(symbol)
    raise RuleSyntaxError("invalid operator")


def _read_keyword(
    text: str, start: int, keywords: Sequence[TokenKind]
) -> tuple[Token, int]:
    for keyword in keywords:
        if text.startswith(keyword.value, start):
            return Token(keyword, keyword.value), start + len(keyword.value)
    raise RuleSyntaxError(f"unknown text:{text[start:]}")


def _tokenize(text: str, keywords: Sequence[TokenKind]) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char == '"':
            token, pos = _read_quoted(text, pos)
        elif char in _OPERATOR_STARTS:
            token, pos = _read_operator(text, pos)
        elif char in _BRACKETS:
            token = Token(_BRACKETS[char], char)
            pos += 1
        elif char in _WHITESPACE:
            pos += 1
            continue
        else:
            token, pos = _read_keyword(text, pos, keywords)
        tokens.append(token)
    return tokens


def parse_tokens(text: str) -> list[Token]:
    """Tokenise a fingerprint rule (keywords body, header and icon)."""
    return _tokenize(text, _FINGERPRINT_KEYWORDS)


def parse_advisor_tokens(text: str) -> list[Token]:
    """Tokenise an advisory rule (keywords version and is_internal)."""
    return _tokenize(text, _ADVISORY_KEYWORDS)


def check_balance(tokens: Iterable[Token]) -> None:
    """Raise RuleSyntaxError unless opening and closing brackets pair up."""
    depth = 0
    for token in tokens:
        if token.kind is TokenKind.LEFT_BRACKET:
            depth += 1
        elif token.kind is TokenKind.RIGHT_BRACKET:
            depth -= 1
    if depth != 0:
        raise RuleSyntaxError("unbalanced parenthesis")