"""Scan results, callback payloads and the security score."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from infraguard.preload import FpResult

_HIGH_SEVERITIES = frozenset({"HIGH", "CRITICAL"})


@dataclass
class VulnInfo:
    """Descriptive data of a vulnerability."""

    cve_name: str = ""
    severity: str = ""
    summary: str = ""
    details: str = ""
    security_advise: str = ""


@dataclass
class Advisory:
    """A vulnerability that applies to a detected component."""

    info: VulnInfo = field(default_factory=VulnInfo)
    references: list[str] = field(default_factory=list)


def _fingerprint_dict(fp: FpResult) -> dict[str, str]:
    data = {"name": fp.name}
    if fp.version:
        data["version"] = fp.version
    if fp.type:
        data["type"] = fp.type
    return data


def _info_dict(info: VulnInfo) -> dict[str, str]:
    return {
        "cve": info.cve_name,
        "severity": info.severity,
        "summary": info.summary,
        "details": info.details,
        "security_advise": info.security_advise,
    }


def _advisory_dict(advisory: Advisory) -> dict[str, Any]:
    return {"info": _info_dict(advisory.info), "references": list(advisory.references)}


@dataclass
class HttpResult:
    """What scanning one URL produced."""

    url: str
    title: str = ""
    content_length: int = 0
    status_code: int = 0
    response_time: str = ""
    fingers: list[FpResult] = field(default_factory=list)
    advisories: list[Advisory] = field(default_factory=list)
    summary_line: str = field(default="", repr=False)

    def to_json(self) -> str:
        """Serialise the result as a JSON object."""
        return json.dumps(
            {
                "url": self.url,
                "title": self.title,
                "content-length": self.content_length,
                "status-code": self.status_code,
                "response-time": self.response_time,
                "fingerprints": [_fingerprint_dict(fp) for fp in self.fingers],
                "advisories": [_advisory_dict(ad) for ad in self.advisories],
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )


@dataclass
class CallbackScanResult:
    """A per-target result handed to a progress callback."""

    target_url: str
    status_code: int
    title: str
    fingerprint: str
    vulnerabilities: list[VulnInfo] = field(default_factory=list)


@dataclass
class CallbackProcessInfo:
    """Scan progress handed to a progress callback."""

    current: int
    total: int


@dataclass
class CallbackReportInfo:
    """The final security score and risk counts."""

    sec_score: int = 0
    high_risk: int = 0
    medium_risk: int = 0
    low_risk: int = 0


@dataclass
class FpInfos:
    """A fingerprint with the advisories known for it."""

    fp_name: str
    vuls: list[Advisory] = field(default_factory=list)
    desc: str = ""


def format_fingerprints(fingers: Iterable[FpResult]) -> str:
    """Render fingerprints as name[:type][:version], run together."""
    parts = []
    for fp in fingers:
        text = fp.name
        if fp.type:
            text += ":" + fp.type
        if fp.version:
            text += ":" + fp.version
        parts.append(text)
    return "".join(parts)


def calc_sec_score(results: Sequence[HttpResult]) -> CallbackReportInfo:
    """Score a scan from 0 to 100, weighting advisories by severity."""
    high = middle = low = 0
    for result in results:
        for advisory in result.advisories:
            severity = advisory.info.severity
            if severity in _HIGH_SEVERITIES:
                high += 1
            elif severity == "MEDIUM":
                middle += 1
            else:
                low += 1
    total = high + middle + low
    if not results and total == 0:
        return CallbackReportInfo()
    if total == 0:
        return CallbackReportInfo(sec_score=100)
    weighted = (high / total) * 0.7 + (middle / total) * 0.5 + (low / total) * 0.3
    score = min(max(100 - weighted * 100, 0.0), 100.0)
    return CallbackReportInfo(
        sec_score=int(math.floor(score + 0.5)),
        high_risk=high,
        medium_risk=middle,
        low_risk=low,
    )