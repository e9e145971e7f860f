"""Rule syntax tree: parsing token sequences and evaluating them."""

from __future__ import annotations

import functools
import logging
import operator
import re
import sys
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from infraguard.tokens import RuleSyntaxError, Token, TokenKind, TokenStream

logger = logging.getLogger(__name__)


@dataclass
class MatchConfig:
    """Response data a fingerprint rule is matched against."""

    body: str = ""
    header: str = ""
    icon: int = 0


@dataclass
class AdvisoryConfig:
    """Component data an advisory rule is matched against."""

    version: str = ""
    is_internal: bool = False


_VERSION_RE = re.compile(
    r"v?([0-9]+(\.[0-9]+)*?)"
    r"(-([0-9]+[0-9A-Za-z\-~]*(\.[0-9A-Za-z\-~]+)*)"
    r"|(-?([A-Za-z\-~]+[0-9A-Za-z\-~]*(\.[0-9A-Za-z\-~]+)*)))?"
    r"(\+([0-9A-Za-z\-~]+(\.[0-9A-Za-z\-~]+)*))?"
)
_NUMERIC_RE = re.compile(r"[0-9]+")


def _compare_part(left: str, right: str) -> int:
    if left == right:
        return 0
    left_numeric = bool(_NUMERIC_RE.fullmatch(left))
    right_numeric = bool(_NUMERIC_RE.fullmatch(right))
    if left == "":
        return -1 if right_numeric else 1
    if right == "":
        return 1 if left_numeric else -1
    if left_numeric and not right_numeric:
        return -1
    if right_numeric and not left_numeric:
        return 1
    if not left_numeric:
        return 1 if left > right else -1
    return 1 if int(left) > int(right) else -1


def _compare_prereleases(left: str, right: str) -> int:
    if left == right:
        return 0
    left_parts = left.split(".")
    right_parts = right.split(".")
    for index in range(max(len(left_parts), len(right_parts))):
        a = left_parts[index] if index < len(left_parts) else ""
        b = right_parts[index] if index < len(right_parts) else ""
        result = _compare_part(a, b)
        if result:
            return result
    return 0


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A dotted version number with optional pre-release and metadata."""

    segments: tuple[int, ...]
    prerelease: str = ""
    metadata: str = ""
    original: str = ""

    @classmethod
    def parse(cls, text: str) -> "Version":
        """Parse a version string, raising ValueError if it is malformed."""
        match = _VERSION_RE.fullmatch(text)
        if match is None:
            raise ValueError(f"malformed version: {text}")
        segments = [int(part) for part in match.group(1).split(".")]
        segments.extend([0] * (3 - len(segments)))
        prerelease = match.group(7) or match.group(4) or ""
        return cls(tuple(segments), prerelease, match.group(10) or "", text)

    def compare(self, other: "Version") -> int:
        """Return -1, 0 or 1 as this version sorts before, equal to or after other."""
        width = max(len(self.segments), len(other.segments))
        mine = self.segments + (0,) * (width - len(self.segments))
        theirs = other.segments + (0,) * (width - len(other.segments))
        for a, b in zip(mine, theirs):
            if a != b:
                return 1 if a > b else -1
        if not self.prerelease and not other.prerelease:
            return 0
        if not self.prerelease:
            return 1
        if not other.prerelease:
            return -1
        return _compare_prereleases(self.prerelease, other.prerelease)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        segments = list(self.segments)
        while segments and segments[-1] == 0:
            segments.pop()
        return hash(tuple(segments))

    def __str__(self) -> str:
        return self.original or ".".join(map(str, self.segments))


_LETTERS_RE = re.compile(r"[A-Za-z]+")
_DOTTED_LETTERS_RE = re.compile(r"\.[A-Za-z]+")


def normalize_version(version: str) -> str:
    """Reduce a version string to digits and dots so it can be compared."""
    if version.startswith("v"):
        version = version[1:]
    if version == "latest":
        return "999"
    if _LETTERS_RE.search(version):
        version = _DOTTED_LETTERS_RE.sub(".0", version)
        version = _LETTERS_RE.sub("", version)
    return version or "0"


@dataclass(frozen=True)
class _Comparison:
    field: TokenKind
    op: TokenKind
    text: str
    pattern: Optional[re.Pattern[str]] = None


@dataclass(frozen=True)
class _Logic:
    op: TokenKind
    left: "_Node"
    right: "_Node"


@dataclass(frozen=True)
class _Group:
    inner: "_Node"


_Node = Union[_Comparison, _Logic, _Group]

_FIELDS = frozenset(
    {TokenKind.BODY, TokenKind.HEADER, TokenKind.ICON, TokenKind.VERSION, TokenKind.IS_INTERNAL}
)
_COMPARISON_OPS = frozenset(
    {
        TokenKind.CONTAINS, TokenKind.FULL_EQUAL, TokenKind.NOT_EQUAL,
        TokenKind.REGEX_EQUAL, TokenKind.GTE, TokenKind.LTE, TokenKind.GT, TokenKind.LT,
    }
)

_VERSION_COMPARATORS: dict[TokenKind, Callable[[Version, Version], bool]] = {
    TokenKind.FULL_EQUAL: operator.eq,
    TokenKind.CONTAINS: operator.eq,
    TokenKind.NOT_EQUAL: operator.ne,
    TokenKind.GT: operator.gt,
    TokenKind.LT: operator.lt,
    TokenKind.GTE: operator.ge,
    TokenKind.LTE: operator.le,
}


def _evaluate(node: _Node, leaf: Callable[[_Comparison], bool]) -> bool:
    if isinstance(node, _Comparison):
        return leaf(node)
    if isinstance(node, _Group):
        return _evaluate(node.inner, leaf)
    if node.op is TokenKind.AND:
        return _evaluate(node.left, leaf) and _evaluate(node.right, leaf)
    if node.op is TokenKind.OR:
        return _evaluate(node.left, leaf) or _evaluate(node.right, leaf)
    raise ValueError(f"unknown logic operator: {node.op.value}")


def _parse_or_zero(version: str) -> Version:
    try:
        return Version.parse(normalize_version(version))
    except ValueError:
        logger.debug("cannot parse version %s, using 0.0.0", version)
        return Version.parse("0.0.0")


@dataclass(frozen=True)
class Rule:
    """A parsed matching rule."""

    root: _Node

    def eval(self, config: MatchConfig) -> bool:
        """Match the rule against response body, headers and icon hash."""

        def leaf(node: _Comparison) -> bool:
            if node.field is TokenKind.BODY:
                subject = config.body
            elif node.field is TokenKind.HEADER:
                subject = config.header
            elif node.field is TokenKind.ICON:
                subject = str(config.icon)
            else:
                raise ValueError(f"unknown left token: {node.field.value}")
            subject = subject.lower()
            text = node.text.lower()
            if node.op is TokenKind.FULL_EQUAL:
                return text == subject
            if node.op is TokenKind.CONTAINS:
                return text in subject
            if node.op is TokenKind.NOT_EQUAL:
                return text not in subject
            if node.op is TokenKind.REGEX_EQUAL and node.pattern is not None:
                return node.pattern.search(subject) is not None
            raise ValueError(f"unknown operator: {node.op.value}")

        return _evaluate(self.root, leaf)

    def advisory_eval(self, config: AdvisoryConfig) -> bool:
        """Match the rule against a component's version and exposure."""

        def leaf(node: _Comparison) -> bool:
            if node.field is TokenKind.VERSION:
                current = _parse_or_zero(config.version)
                compare = _VERSION_COMPARATORS.get(node.op)
                if compare is None:
                    raise ValueError(f"unknown operator: {node.op.value}")
                return compare(current, Version.parse(normalize_version(node.text)))
            if node.field is TokenKind.IS_INTERNAL:
                return config.is_internal
            raise ValueError(f"unknown left token: {node.field.value}")

        return _evaluate(self.root, leaf)

    def format_ast(self) -> str:
        """Render the syntax tree as indented text."""
        lines: list[str] = []

        def walk(node: _Node, level: int) -> None:
            indent = "  " * level
            if isinstance(node, _Comparison):
                if node.pattern is not None:
                    lines.append(
                        f"{indent}    dslExp: {node.field.value} {node.op.value} "
                        f"regex('{node.pattern.pattern}')"
                    )
                else:
                    lines.append(
                        f"{indent}    dslExp: {node.field.value} {node.op.value} '{node.text}'"
                    )
            elif isinstance(node, _Logic):
                lines.append(f"{indent} logicExp: {node.op.value}")
                lines.append(f"{indent}  - left:")
                walk(node.left, level + 1)
                lines.append(f"{indent}  - right:")
                walk(node.right, level + 1)
            else:
                lines.append(f"{indent} bracketExp:")
                walk(node.inner, level + 1)

        walk(self.root, 0)
        return "".join(line + "\n" for line in lines)

    def print_ast(self) -> None:
        """Write the syntax tree to standard output."""
        sys.stdout.write(self.format_ast())


def _parse_primary(stream: TokenStream) -> _Node:
    token = stream.next()
    if token.kind in _FIELDS:
        op = stream.next()
        if op.kind not in _COMPARISON_OPS:
            raise RuleSyntaxError(f"syntax error in {token.content} {op.content}")
        value = stream.next()
        if value.kind is not TokenKind.TEXT:
            raise RuleSyntaxError(
                f"syntax error in {token.content} {op.content} {value.content}"
            )
        if op.kind is TokenKind.REGEX_EQUAL:
            try:
                pattern = re.compile(value.content)
            except re.error as exc:
                raise RuleSyntaxError(f"invalid regex {value.content!r}: {exc}") from exc
            return _Comparison(token.kind, op.kind, "", pattern)
        return _Comparison(token.kind, op.kind, value.content)
    if token.kind is TokenKind.LEFT_BRACKET:
        inner = _parse_expr(stream)
        closing = stream.next() if stream.has_next() else None
        if closing is None or closing.kind is not TokenKind.RIGHT_BRACKET:
            raise RuleSyntaxError("missing or invalid closing bracket")
        return _Group(inner)
    raise RuleSyntaxError(f"unexpected token: {token.content}")


def _parse_expr(stream: TokenStream) -> _Node:
    expr = _parse_primary(stream)
    while stream.has_next():
        token = stream.next()
        if token.kind not in (TokenKind.AND, TokenKind.OR):
            stream.rewind()
            break
        right = _parse_primary(stream)
        # A bracketed operand is evaluated first.
        if isinstance(right, _Group):
            expr = _Logic(token.kind, right, expr)
        else:
            expr = _Logic(token.kind, expr, right)
    return expr


def transform_exp(tokens: Sequence[Token]) -> Rule:
    """Build a rule from a token sequence."""
    stream = TokenStream(tokens)
    root = _parse_expr(stream)
    if stream.has_next():
        raise RuleSyntaxError("unexpected tokens after expression")
    return Rule(root)