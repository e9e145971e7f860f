import json

import pytest

from infraguard.preload import FpResult
from infraguard.results import (
    Advisory,
    CallbackReportInfo,
    HttpResult,
    VulnInfo,
    calc_sec_score,
    format_fingerprints,
)


def _result(*severities):
    return HttpResult(
        url="http://127.0.0.1:5000",
        advisories=[Advisory(VulnInfo(cve_name=f"CVE-{i}", severity=s)) for i, s in enumerate(severities)],
    )


def test_to_json_field_names_and_omitted_fields():
    result = HttpResult(
        url="http://127.0.0.1:5000",
        title="MLflow",
        content_length=42,
        status_code=200,
        response_time="1s",
        fingers=[FpResult("mlflow"), FpResult("ollama", "0.1.0", "llm")],
        summary_line="hidden",
    )
    data = json.loads(result.to_json())
    assert data["url"] == "http://127.0.0.1:5000"
    assert data["content-length"] == 42
    assert data["status-code"] == 200
    assert data["response-time"] == "1s"
    assert data["fingerprints"] == [
        {"name": "mlflow"},
        {"name": "ollama", "version": "0.1.0", "type": "llm"},
    ]
    assert data["advisories"] == []
    assert "hidden" not in result.to_json()


def test_to_json_includes_advisories():
    result = HttpResult(
        url="http://localhost",
        advisories=[Advisory(VulnInfo(cve_name="CVE-1", severity="HIGH"), ["ref"])],
    )
    advisory = json.loads(result.to_json())["advisories"][0]
    assert advisory["info"]["severity"] == "HIGH"
    assert advisory["references"] == ["ref"]


def test_format_fingerprints():
    fingers = [FpResult("a", "1.0", "t"), FpResult("b")]
    assert format_fingerprints(fingers) == "a:t:1.0b"
    assert format_fingerprints([]) == ""


def test_score_without_results():
    assert calc_sec_score([]) == CallbackReportInfo(0, 0, 0, 0)


def test_score_without_advisories():
    assert calc_sec_score([_result()]) == CallbackReportInfo(100, 0, 0, 0)


@pytest.mark.parametrize(
    "severity, score",
    [("HIGH", 30), ("MEDIUM", 50), ("LOW", 70)],
)
def test_score_single_severity(severity, score):
    assert calc_sec_score([_result(severity)]).sec_score == score


def test_score_counts_severities():
    report = calc_sec_score([_result("CRITICAL", "HIGH"), _result("MEDIUM", "unknown")])
    assert (report.high_risk, report.medium_risk, report.low_risk) == (2, 1, 1)
    assert 0 <= report.sec_score <= 100


def test_score_orders_by_severity():
    high = calc_sec_score([_result("HIGH")]).sec_score
    mixed = calc_sec_score([_result("HIGH", "LOW")]).sec_score
    low = calc_sec_score([_result("LOW")]).sec_score
    assert high < mixed < low