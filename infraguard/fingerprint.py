"""Fingerprint templates loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

import yaml

from infraguard.syntax import MatchConfig, Rule, transform_exp
from infraguard.tokens import check_balance, parse_tokens


@dataclass
class FingerPrintInfo:
    """Descriptive data of a fingerprint."""

    name: str = ""
    author: str = ""
    example: list[str] = field(default_factory=list)
    desc: str = ""
    severity: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class Extractor:
    """How to pull a version string out of a response."""

    part: str = ""
    group: str = ""
    regex: str = ""


@dataclass
class HttpRule:
    """A request to send and the matchers to apply to its response."""

    method: str = ""
    path: str = ""
    matchers: list[str] = field(default_factory=list)
    data: str = ""
    extractor: Extractor = field(default_factory=Extractor)
    dsl: list[Rule] = field(default_factory=list, repr=False, compare=False)


@dataclass
class FingerPrint:
    """A complete fingerprint template."""

    info: FingerPrintInfo = field(default_factory=FingerPrintInfo)
    http: list[HttpRule] = field(default_factory=list)
    version: list[HttpRule] = field(default_factory=list)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        raise ValueError(f"expected a scalar, got {type(value).__name__}")
    return str(value)


def _mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be a mapping")
    return value


def _sequence(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{what} must be a list")
    return value


def _info(raw: Any) -> FingerPrintInfo:
    data = _mapping(raw, "info")
    return FingerPrintInfo(
        name=_text(data.get("name")),
        author=_text(data.get("author")),
        example=[_text(item) for item in _sequence(data.get("example"), "example")],
        desc=_text(data.get("desc")),
        severity=_text(data.get("severity")),
        metadata={
            _text(key): _text(value)
            for key, value in _mapping(data.get("metadata"), "metadata").items()
        },
    )


def _http_rule(raw: Any) -> HttpRule:
    data = _mapping(raw, "http rule")
    extractor = _mapping(data.get("extractor"), "extractor")
    return HttpRule(
        method=_text(data.get("method")),
        path=_text(data.get("path")),
        matchers=[_text(item) for item in _sequence(data.get("matchers"), "matchers")],
        data=_text(data.get("data")),
        extractor=Extractor(
            part=_text(extractor.get("part")),
            group=_text(extractor.get("group")),
            regex=_text(extractor.get("regex")),
        ),
    )


def compile_rule(rule: str) -> Rule:
    """Tokenise, check and parse a fingerprint matcher."""
    tokens = parse_tokens(rule)
    check_balance(tokens)
    return transform_exp(tokens)


def parse_fingerprint(data: Union[bytes, str]) -> FingerPrint:
    """Load a fingerprint from YAML text and compile its HTTP matchers."""
    document = _mapping(yaml.safe_load(data), "fingerprint")
    fingerprint = FingerPrint(
        info=_info(document.get("info")),
        http=[_http_rule(item) for item in _sequence(document.get("http"), "http")],
        version=[_http_rule(item) for item in _sequence(document.get("version"), "version")],
    )
    for rule in fingerprint.http:
        rule.dsl = [compile_rule(matcher) for matcher in rule.matchers]
    return fingerprint


def evaluate(config: MatchConfig, rule: Rule) -> bool:
    """Tell whether a response matches a compiled rule."""
    return rule.eval(config)